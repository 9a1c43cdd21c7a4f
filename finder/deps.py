"""FastAPI dependencies: database session, caller identity, services."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from finder.core.logging import principal_id_var, tenant_id_var
from finder.core.principal import Caller, CallerRole
from finder.database import get_db
from finder.services.business_finder import BusinessFinderService, business_finder_service
from finder.services.credentials import CredentialService, credential_service
from finder.services.rate_limit import RateLimitService, client_ip, rate_limit_service

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_caller(
    x_user_id: Annotated[str | None, Header()] = None,
    x_tenant_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Caller:
    """Identity forwarded by the authenticating gateway."""
    try:
        user_id = int(x_user_id) if x_user_id else None
        tenant_id = int(x_tenant_id) if x_tenant_id else None
    except ValueError:
        user_id = tenant_id = None

    if user_id is None or tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid caller identity",
        )

    role = CallerRole.ADMIN if (x_user_role or "").lower() == CallerRole.ADMIN else CallerRole.USER
    principal_id_var.set(str(user_id))
    tenant_id_var.set(str(tenant_id))
    return Caller(user_id=user_id, tenant_id=tenant_id, role=role)


CurrentCaller = Annotated[Caller, Depends(get_current_caller)]


async def require_admin(caller: CurrentCaller) -> Caller:
    if not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return caller


AdminCaller = Annotated[Caller, Depends(require_admin)]


def get_client_ip(request: Request) -> str:
    return client_ip(request)


ClientIp = Annotated[str, Depends(get_client_ip)]


def get_business_finder() -> BusinessFinderService:
    return business_finder_service


def get_rate_limiter() -> RateLimitService:
    return rate_limit_service


def get_credentials() -> CredentialService:
    return credential_service


BusinessFinder = Annotated[BusinessFinderService, Depends(get_business_finder)]
RateLimiter = Annotated[RateLimitService, Depends(get_rate_limiter)]
Credentials = Annotated[CredentialService, Depends(get_credentials)]
