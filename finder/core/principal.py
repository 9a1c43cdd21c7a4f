"""Caller identity and the effective principal used for quota and cache keys."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from finder.config import get_settings


class CallerRole(StrEnum):
    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True)
class Caller:
    """Authenticated caller as forwarded by the gateway."""

    user_id: int
    tenant_id: int
    role: CallerRole = CallerRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == CallerRole.ADMIN


def effective_principal(caller: Caller) -> tuple[int, int]:
    """(principal_id, tenant_id) that owns quota, cache entries and keys.

    Administrative callers act as the configured system identity.
    """
    if caller.is_admin:
        settings = get_settings()
        return settings.system_principal_id, settings.system_tenant_id
    return caller.user_id, caller.tenant_id
