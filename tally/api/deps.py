"""TALLY — Shared API Dependencies.

Caller identity arrives in the ``X-User-Id`` header; session management and
login live in the host application.
"""

from typing import Optional

from fastapi import Header, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from tally.core.collaborators import Authorizer, default_authorizer
from tally.core.errors import OperationResult


def get_caller_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Dependency — the calling user's id, if any."""
    return x_user_id


def get_authorizer() -> Authorizer:
    """Dependency — override in the host app to plug in real permissions."""
    return default_authorizer


def forbid(message: str = "Not allowed") -> HTTPException:
    return HTTPException(status_code=403, detail=message)


def respond(result: OperationResult) -> JSONResponse:
    """Render an OperationResult as a JSON envelope with a matching status."""
    return JSONResponse(
        status_code=result.status_code,
        content={
            "success": result.success,
            "error": result.error,
            "error_type": result.error_type,
            "data": jsonable_encoder(result.data),
        },
    )
