"""FastAPI middleware for observability context injection."""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from finder.core.logging import get_logger, principal_id_var, request_id_var, tenant_id_var

logger = get_logger(__name__)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Binds request_id, tenant_id and principal_id for structured logging."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(request_id)

        # Identity headers are set by the upstream gateway
        raw_tenant = request.headers.get("x-tenant-id")
        if raw_tenant:
            tenant_id_var.set(raw_tenant)

        raw_user = request.headers.get("x-user-id")
        if raw_user:
            principal_id_var.set(raw_user)

        start = time.monotonic()
        response = await call_next(request)
        response.headers["x-request-id"] = request_id

        logger.info(
            "request_finished",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return response
