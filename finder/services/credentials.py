"""Credential service: per-principal provider API keys.

Keys are stored as cipher tokens and only decrypted when a search needs
them.  When a principal has no usable key the shared key from settings is
the fallback.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from finder.config import get_settings
from finder.core.credential_cipher import CredentialCipher, get_cipher
from finder.core.errors import NotFound, SearchError, ValidationError
from finder.core.logging import get_logger
from finder.core.quota import utc_now
from finder.models.api_key import ApiKey
from finder.providers.base import ProviderID
from finder.schemas.api_key import ApiKeyRead

logger = get_logger(__name__)

KEYED_SERVICES = (ProviderID.GOOGLE_PLACES, ProviderID.YELP)
MIN_KEY_LENGTH = 10


class CredentialService:
    def __init__(
        self,
        cipher: CredentialCipher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._cipher = cipher
        self._now = clock

    @property
    def cipher(self) -> CredentialCipher | None:
        if self._cipher is None:
            self._cipher = get_cipher()
        return self._cipher

    async def _active_keys(
        self,
        db: AsyncSession,
        principal_id: int,
        service: str | None = None,
    ) -> list[ApiKey]:
        stmt = (
            select(ApiKey)
            .where(ApiKey.principal_id == principal_id)
            .where(ApiKey.is_active.is_(True))
            .order_by(ApiKey.created_at)
        )
        if service is not None:
            stmt = stmt.where(ApiKey.service == service)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    def _decrypt(self, key: ApiKey) -> str | None:
        cipher = self.cipher
        plain = cipher.decrypt(key.key_value) if cipher else None
        if plain is None:
            logger.warning(
                "api_key_unreadable",
                service=key.service,
                key_name=key.key_name,
            )
        return plain

    async def list_keys(self, db: AsyncSession, principal_id: int) -> list[ApiKeyRead]:
        """Active keys that can still be decrypted. Key material is not returned."""
        return [
            ApiKeyRead(
                service=key.service,
                key_name=key.key_name,
                is_active=key.is_active,
                daily_limit=key.daily_limit,
                usage_count=key.usage_count,
                last_used_at=key.last_used_at,
            )
            for key in await self._active_keys(db, principal_id)
            if self._decrypt(key) is not None
        ]

    async def resolve_key(
        self,
        db: AsyncSession,
        principal_id: int,
        service: str,
    ) -> str | None:
        """Decrypted key the principal owns for ``service``, recording its use."""
        for key in await self._active_keys(db, principal_id, service):
            plain = self._decrypt(key)
            if plain is not None:
                key.usage_count += 1
                key.last_used_at = self._now()
                return plain
        return None

    def shared_key(self, service: str) -> str | None:
        """Service-wide fallback key from settings."""
        settings = get_settings()
        shared = {
            ProviderID.GOOGLE_PLACES.value: settings.google_places_api_key,
            ProviderID.YELP.value: settings.yelp_api_key,
        }
        return shared.get(str(service)) or None

    async def save_key(
        self,
        db: AsyncSession,
        principal_id: int,
        service: str,
        key_name: str,
        key_value: str,
        daily_limit: int | None = None,
    ) -> ApiKey:
        if service not in KEYED_SERVICES:
            valid = ", ".join(s.value for s in KEYED_SERVICES)
            raise ValidationError(f"Invalid service. Must be one of: {valid}")
        if not key_name.strip():
            raise ValidationError("key_name must not be empty")
        if len(key_value) < MIN_KEY_LENGTH:
            raise ValidationError("Invalid API key format")

        cipher = self.cipher
        if cipher is None:
            raise SearchError("API key encryption is not configured")

        token = cipher.encrypt(key_value)
        stmt = (
            pg_insert(ApiKey)
            .values(
                principal_id=principal_id,
                service=service,
                key_name=key_name.strip(),
                key_value=token,
                daily_limit=daily_limit,
                is_active=True,
                usage_count=0,
            )
            .on_conflict_do_update(
                constraint="uq_api_keys_principal_service_name",
                set_={
                    "key_value": token,
                    "daily_limit": daily_limit,
                    "is_active": True,
                    "updated_at": func.now(),
                },
            )
            .returning(ApiKey)
        )
        result = await db.execute(stmt)
        logger.info("api_key_saved", service=service, key_name=key_name, principal_id=principal_id)
        return result.scalar_one()

    async def delete_key(
        self,
        db: AsyncSession,
        principal_id: int,
        service: str,
        key_name: str,
    ) -> None:
        result = await db.execute(
            delete(ApiKey)
            .where(ApiKey.principal_id == principal_id)
            .where(ApiKey.service == service)
            .where(ApiKey.key_name == key_name)
        )
        if not result.rowcount:
            raise NotFound(f"No API key named {key_name!r} for {service}")
        logger.info("api_key_deleted", service=service, key_name=key_name, principal_id=principal_id)


credential_service = CredentialService()
