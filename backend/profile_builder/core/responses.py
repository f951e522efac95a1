"""Response envelope models.

Every success body is wrapped as {"data": ...} and every error body as
{"error": {...}}, so the host UI can branch on a single key.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Success envelope: {"data": <pipeline state, diff or draft>}."""

    data: T


class ErrorDetail(BaseModel):
    """Body of the error envelope.

    Attributes:
        code: Machine-readable error code (see core.errors).
        message: Text safe to show to the user.
        details: Per-field details; a rejected answer carries
            {"field": "value", "question_id": ...}.
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Error envelope: {"error": ErrorDetail}. Built by the handlers in main.py."""

    error: ErrorDetail
