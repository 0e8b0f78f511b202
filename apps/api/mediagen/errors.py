"""Application exception types."""

from typing import Any

from mediagen.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict | None = None,
        **fields: Any,
    ) -> None:
        self.status_code = status_code
        self.code = code
        self.payload = ErrorResponse(error=code, message=message, details=details, **fields)
        super().__init__(message)


class InvalidParameter(ApiError):
    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(status_code=400, code="INVALID_PARAMETER", message=message, details=details)


class UnknownModel(ApiError):
    def __init__(self, model_id: str) -> None:
        super().__init__(
            status_code=400,
            code="UNKNOWN_MODEL",
            message=f"Unknown video model: {model_id}",
            details={"model_id": model_id},
        )


class InsufficientCredits(ApiError):
    """Recoverable: the caller can top up and retry."""

    def __init__(self, cost: int, balance: int | None = None) -> None:
        self.cost = cost
        self.balance = balance
        super().__init__(
            status_code=402,
            code="INSUFFICIENT_CREDITS",
            message="Not enough credits for this generation",
            cost=cost,
        )


class InvalidSignature(ApiError):
    def __init__(self, message: str = "Invalid signature") -> None:
        super().__init__(status_code=401, code="INVALID_SIGNATURE", message=message)


class MalformedPayload(ApiError):
    def __init__(self, message: str = "Invalid payload") -> None:
        super().__init__(status_code=400, code="MALFORMED_PAYLOAD", message=message)


class JobNotFound(ApiError):
    def __init__(self, message: str = "Job not found") -> None:
        super().__init__(status_code=404, code="JOB_NOT_FOUND", message=message)


class Forbidden(ApiError):
    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(status_code=403, code="FORBIDDEN", message=message)


class ProviderSubmissionFailure(ApiError):
    """Raised only after the charge for the job has been compensated."""

    def __init__(self, job_id: str, message: str = "Failed to start video generation") -> None:
        self.job_id = job_id
        super().__init__(
            status_code=500,
            code="PROVIDER_SUBMISSION_FAILED",
            message=message,
            details={"job_id": job_id},
        )


class MaterializationFailure(Exception):
    """Background-only failure while downloading or storing a provider result."""

    code = "MATERIALIZATION_FAILED"


class MaterializationTimeout(MaterializationFailure):
    """The materialization deadline passed; the job is left for the sweeper."""


__all__ = [
    "ApiError",
    "Forbidden",
    "InsufficientCredits",
    "InvalidParameter",
    "InvalidSignature",
    "JobNotFound",
    "MalformedPayload",
    "MaterializationFailure",
    "MaterializationTimeout",
    "ProviderSubmissionFailure",
    "UnknownModel",
]
