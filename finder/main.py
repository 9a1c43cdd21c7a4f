"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from finder import __version__
from finder.api.v1.router import api_router
from finder.core.errors import SearchError
from finder.core.logging import get_logger, setup_logging
from finder.core.middleware import ObservabilityMiddleware
from finder.database import engine

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("app_started", version=__version__)
    yield
    await engine.dispose()


app = FastAPI(
    title="Business Finder",
    version=__version__,
    lifespan=lifespan,
)
app.add_middleware(ObservabilityMiddleware)
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(SearchError)
async def search_error_handler(request: Request, exc: SearchError) -> JSONResponse:
    log = logger.warning if exc.is_client_error else logger.error
    log(
        "search_error",
        path=request.url.path,
        error=exc.code,
        status_code=exc.status_code,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
