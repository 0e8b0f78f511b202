"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel, ConfigDict


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    error: str
    message: str
    details: dict[str, Any] | None = None


class InsufficientCreditsError(BaseModel):
    error: Literal["INSUFFICIENT_CREDITS"]
    message: str
    cost: int


class NotFoundError(BaseModel):
    error: Literal["JOB_NOT_FOUND"]
    message: str


class ValidationErrorResponse(BaseModel):
    error: Literal["INVALID_PARAMETER", "UNKNOWN_MODEL"]
    message: str
    details: dict[str, Any] | None = None


class ProviderSubmissionError(BaseModel):
    error: Literal["PROVIDER_SUBMISSION_FAILED"]
    message: str
    details: dict[str, Any] | None = None
