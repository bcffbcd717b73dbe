from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookshelf import __version__, config
from bookshelf.middleware import AccessLogMiddleware
from bookshelf.routers import books
from bookshelf.services.access_log import AccessLogShipper
from bookshelf.services.gelf import GelfClient
from bookshelf.store import BookStore


def _format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        # Integer parts are JSON character offsets or list indexes, not field names.
        loc = ".".join(part for part in error.get("loc", ())[1:] if isinstance(part, str))
        messages.append(f"{loc}: {error['msg']}" if loc else error["msg"])
    return "; ".join(messages)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": _format_validation_errors(exc)})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def default_shipper() -> AccessLogShipper:
    client = None
    if config.ACCESS_LOG_ENABLED:
        client = GelfClient(
            config.GELF_TRANSPORT,
            config.GELF_HOST,
            config.GELF_PORT,
            timeout=config.GELF_TIMEOUT,
        )
    return AccessLogShipper(
        client,
        source=config.GELF_SOURCE,
        level=config.GELF_LEVEL,
        queue_size=config.ACCESS_LOG_QUEUE_SIZE,
        required=config.GELF_REQUIRED,
    )


def create_app(store: BookStore | None = None, shipper: AccessLogShipper | None = None) -> FastAPI:
    store = store if store is not None else BookStore()
    shipper = shipper if shipper is not None else default_shipper()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await shipper.start()
        try:
            yield
        finally:
            await shipper.stop(config.ACCESS_LOG_DRAIN_TIMEOUT)

    app = FastAPI(
        title="Bookshelf",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.store = store
    app.add_middleware(
        AccessLogMiddleware,
        shipper=shipper,
        trust_proxy_headers=config.TRUST_PROXY_HEADERS,
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.include_router(books.router)
    return app
