"""Provider callback schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel


class ProviderVideo(BaseModel):
    url: str
    content_type: str | None = None
    file_name: str | None = None
    file_size: int | None = None


class ProviderResult(BaseModel):
    """Result payload of a finished image-to-video request."""

    video: ProviderVideo
    seed: int | None = None


class FalWebhookPayload(BaseModel):
    request_id: str
    gateway_request_id: str | None = None
    status: Literal["OK", "ERROR"]
    payload: dict[str, Any] | None = None
    error: str | None = None
    payload_error: str | None = None


class WebhookAck(BaseModel):
    received: bool = True
    status: Literal["already_processed", "failed", "processing"]
