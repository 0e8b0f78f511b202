"""Job API schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


class SubmitJobRequest(CamelModel):
    model_id: str | None = None
    source_asset_id: str = Field(min_length=1)
    end_asset_id: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)


class SubmitJobResponse(CamelModel):
    job_id: str
    status: JobStatus


class Job(CamelModel):
    id: str
    model_id: str
    status: JobStatus
    external_request_id: str | None = None
    source_asset_id: str
    end_asset_id: str | None = None
    result_asset_id: str | None = None
    thumbnail_asset_id: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    cost: int = 0
    error: str | None = None
    error_type: str | None = None
    provider_seed: int | None = None
    created_at: datetime
    completed_at: datetime | None = None


class JobView(Job):
    """Job enriched with transient asset URLs for the owner."""

    source_asset_url: str | None = None
    end_asset_url: str | None = None
    result_asset_url: str | None = None
    thumbnail_asset_url: str | None = None


class JobList(CamelModel):
    jobs: list[JobView]
    total: int
    limit: int
    offset: int


class CostEstimate(CamelModel):
    cost: int
    model_id: str
    params: dict[str, Any]
