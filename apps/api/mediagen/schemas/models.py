"""Video model catalog schemas."""

from typing import Any

from mediagen.schemas.job import CamelModel


class ModelParamInfo(CamelModel):
    name: str
    label: str
    type: str
    required: bool = False
    default: Any = None
    options: list[str | int] | None = None
    description: str | None = None
    min: float | None = None
    max: float | None = None
    max_items: int | None = None


class ImageParamsInfo(CamelModel):
    source_image: str
    end_image: str | None = None


class VideoModelInfo(CamelModel):
    id: str
    name: str
    description: str | None = None
    image_params: ImageParamsInfo
    params: list[ModelParamInfo]


class ModelCatalog(CamelModel):
    default_model_id: str
    models: list[VideoModelInfo]
