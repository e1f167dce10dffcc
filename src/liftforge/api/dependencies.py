"""FastAPI dependencies and response helpers."""

from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from liftforge.service import ExperimentationService


def get_service(request: Request) -> ExperimentationService:
    """Return the service attached to the running application."""
    return request.app.state.service


def success(data: Any, status_code: int = 200) -> JSONResponse:
    """Wrap data in the success envelope ``{"success": true, "data": ...}``.

    Pydantic models are serialized with their camelCase aliases.
    """
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": jsonable_encoder(data, by_alias=True)},
    )
