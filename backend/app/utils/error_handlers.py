"""
Centralized error handling and user-friendly error messages.
"""
import logging

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import FoodTruckError, NoMatchError, ProviderError, ResolutionError, SchemaError, SearchError, SourceFetchError

logger = logging.getLogger(__name__)


# User-friendly error messages
ERROR_MESSAGES = {
    # Query endpoint
    "missing_query": "missing query",
    "no_matches": "No food trucks found.",

    # External providers
    "provider_timeout": "The AI provider is taking longer than expected. Please try again.",

    # General
    "server_error": "Something went wrong on our end. Please try again later.",
}

_STATUS_BY_ERROR: list[tuple[type[FoodTruckError], int]] = [
    (ProviderError, 502),
    (SearchError, 503),
    (SchemaError, 503),
    (SourceFetchError, 502),
    (ResolutionError, 400),
]


def get_error_message(error_key: str, default: str | None = None) -> str:
    """Get a user-friendly error message."""
    return ERROR_MESSAGES.get(error_key, default or ERROR_MESSAGES["server_error"])


def create_error_response(
    status_code: int,
    message: str,
    details: dict | None = None
) -> JSONResponse:
    """Create a standardized error response."""
    content = {
        "success": False,
        "error": message,
    }

    if details:
        content["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content
    )


def handle_food_truck_error(error: FoodTruckError, operation: str = "") -> JSONResponse:
    """Map a domain error onto a JSON error response; the process keeps serving."""
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            status_code = code
            break

    details: dict = {"error_type": type(error).__name__}
    if isinstance(error, ProviderError):
        details["kind"] = error.kind
        if error.code is not None:
            details["code"] = str(error.code)
        if error.kind == ProviderError.TRANSPORT:
            logger.warning("Provider timeout/transport error during %s: %s", operation, error)
            return create_error_response(504, get_error_message("provider_timeout"), details)

    logger.error("%s during %s: %s", type(error).__name__, operation, error)
    return create_error_response(status_code, str(error) or get_error_message("server_error"), details)


def register_exception_handlers(app) -> None:  # noqa: ANN001
    @app.exception_handler(NoMatchError)
    async def no_match_handler(request, exc: NoMatchError):  # noqa: ANN001
        # Valid terminal state, not a failure.
        return JSONResponse(status_code=200, content={"success": True, "response": get_error_message("no_matches")})

    @app.exception_handler(FoodTruckError)
    async def food_truck_error_handler(request, exc: FoodTruckError):  # noqa: ANN001
        return handle_food_truck_error(exc, f"{request.method} {request.url.path}")

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request, exc: RequestValidationError):  # noqa: ANN001
        # Non-JSON bodies and non-string queries get the same answer as a missing query.
        logger.info("rejected %s %s: %s", request.method, request.url.path, exc.errors())
        return create_error_response(400, get_error_message("missing_query"))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc: StarletteHTTPException):  # noqa: ANN001
        """Routing and HTTP errors (404, 405, ...) in the same envelope as everything else."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": exc.detail,
                "status_code": exc.status_code,
            },
            headers=getattr(exc, "headers", None),
        )
