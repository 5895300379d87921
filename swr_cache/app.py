"""FastAPI application exposing the cache over HTTP."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from swr_cache import __version__
from swr_cache.api import discovery_document, error_envelope
from swr_cache.cache.pipeline import SWRCache
from swr_cache.config import Settings, get_settings
from swr_cache.errors import SWRError
from swr_cache.errors.logger import ErrorCategory, ErrorSeverity


def create_app(settings: Settings | None = None, cache: SWRCache | None = None) -> FastAPI:
    """Build the application around one :class:`SWRCache`.

    Background revalidations still running at shutdown are awaited before the
    origin client is closed.
    """
    settings = settings or get_settings()
    swr = cache or SWRCache(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await swr.close()

    # Docs routes are disabled so every path reaches the cache.
    app = FastAPI(
        title="swr-cache",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.cache = swr

    @app.exception_handler(SWRError)
    async def handle_swr_error(request: Request, exc: SWRError) -> JSONResponse:
        return JSONResponse(error_envelope(exc.message), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        swr.error_logger.log_exception(
            exc,
            category=ErrorCategory.SYSTEM,
            severity=ErrorSeverity.CRITICAL,
            metadata={"path": request.url.path},
        )
        return JSONResponse(error_envelope("Internal error"), status_code=500)

    @app.get("/")
    async def discovery() -> dict:
        return discovery_document()

    @app.get("/{path:path}")
    async def serve(path: str, request: Request) -> Response:
        result = await swr.handle(path, query=request.url.query)
        return Response(
            content=result.body,
            status_code=result.status_code,
            headers=result.headers,
        )

    return app
