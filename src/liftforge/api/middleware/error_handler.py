"""Error handling for the FastAPI application.

Domain exceptions, request validation failures and unexpected errors are all
converted into the error envelope
``{"success": false, "error": ..., "code": ..., "details": ...}``.
"""

from typing import Any, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from liftforge.experiments.errors import ExperimentError
from liftforge.observability.logging import get_logger

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = "1"


def error_response(
    status_code: int,
    message: str,
    code: str,
    details: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Build an error envelope response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "code": code,
            "details": jsonable_encoder(details or {}),
        },
        headers=headers,
    )


def _field_violations(errors: Sequence[Any]) -> list[dict[str, str]]:
    violations = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        violations.append(
            {
                "code": error.get("type", "invalid"),
                "field": ".".join(location),
                "message": error.get("msg", "Invalid value"),
            }
        )
    return violations


def setup_error_handlers(app: FastAPI) -> None:
    """Configure exception handlers for the FastAPI application.

    Args:
        app: The FastAPI application instance to configure
    """

    @app.exception_handler(ExperimentError)
    async def handle_experiment_error(request: Request, exc: ExperimentError) -> JSONResponse:
        """Handle ExperimentError exceptions and subclasses.

        Retryable errors carry a ``Retry-After`` header.
        """
        if exc.status_code >= 500:
            logger.error("request_error", code=exc.code, error=exc.message, path=request.url.path)
        else:
            logger.info("request_rejected", code=exc.code, error=exc.message, path=request.url.path)

        headers = {"Retry-After": RETRY_AFTER_SECONDS} if exc.retryable else None
        return error_response(exc.status_code, exc.message, exc.code, exc.details, headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request parsing failures as 400 validation errors."""
        return error_response(
            400,
            "Request validation failed",
            "validation_error",
            {"violations": _field_violations(exc.errors())},
        )

    @app.exception_handler(PydanticValidationError)
    async def handle_validation_error(
        request: Request, exc: PydanticValidationError
    ) -> JSONResponse:
        """Handle model validation failures raised while serving a request."""
        return error_response(
            400,
            "Request validation failed",
            "validation_error",
            {"violations": _field_violations(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def handle_generic_error(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions without exposing internals."""
        logger.exception("unexpected_error", path=request.url.path)
        return error_response(500, "An internal server error occurred", "internal_error")
