"""FastAPI application: routers, request-id middleware, JSON error handlers."""

import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from photomatch import __version__
from photomatch.api.routes import health, image_search
from photomatch.logging import configure_logging
from photomatch.models.contracts import ErrorResponse

configure_logging()

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

app = FastAPI(
    title="photomatch API",
    version=__version__,
    docs_url="/docs",
    redoc_url=None,
)


def _error_response(request: Request, status: int, error: str, details: str) -> JSONResponse:
    """Build an {error, details} body that still carries the request id.

    Exception handlers run outside the middleware's response path, so the
    header is set here as well.
    """
    response = JSONResponse(
        status_code=status,
        content=ErrorResponse(error=error, details=details).model_dump(),
    )
    response.headers[REQUEST_ID_HEADER] = getattr(
        request.state, "request_id", request.headers.get(REQUEST_ID_HEADER, "")
    )
    return response


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        where = ".".join(str(p) for p in err["loc"])
        parts.append(f"{where}: {err['msg']}")
    return "; ".join(parts)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag the request with an id, reusing the caller's X-Request-ID if sent.

    The id is bound into structlog context vars for every log line of the
    request and returned in the response header.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    details = _describe_validation_errors(exc)
    logger.info("request_validation_failed", details=details)
    return _error_response(request, 422, "Invalid request", details)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return _error_response(request, 500, "Unable to process image search", type(exc).__name__)


app.include_router(health.router)
app.include_router(image_search.router, prefix="/api/v1")
