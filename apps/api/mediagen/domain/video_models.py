"""Video model registry and declarative parameter validation.

Each model declares its parameters once; a single validate-and-merge routine
interprets the declaration ("replace and fill"): defaults are filled in,
user values replace them after type, enum, bound and length checks.

Parameter status:
- ``active``: shown to clients and merged normally.
- ``hidden``: not shown; user input is ignored and the default always wins.
- ``disabled``: ignored entirely and never sent to the provider.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
import math
from typing import Any

from mediagen.domain.pricing import PricingRule
from mediagen.errors import InvalidParameter, UnknownModel


class ParamType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    STRING_ARRAY = "string_array"


class ParamStatus(str, Enum):
    ACTIVE = "active"
    HIDDEN = "hidden"
    DISABLED = "disabled"


@dataclass(frozen=True, slots=True)
class ModelParam:
    name: str
    type: ParamType
    required: bool = False
    default: Any = None
    options: tuple[str | int, ...] = ()
    label: str | None = None
    description: str | None = None
    min: float | None = None
    max: float | None = None
    max_items: int | None = None
    status: ParamStatus = ParamStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class ImageParams:
    source: str
    end: str | None = None


@dataclass(frozen=True, slots=True)
class VideoModel:
    id: str
    name: str
    image_params: ImageParams
    params: tuple[ModelParam, ...]
    pricing: PricingRule
    description: str | None = None


_SAFETY_CHECKER = ModelParam(
    name="enable_safety_checker",
    label="Safety Checker",
    type=ParamType.BOOLEAN,
    default=False,
    description="If enabled, the safety checker will filter inappropriate content",
    status=ParamStatus.HIDDEN,
)

SEEDANCE_V15_PRO = VideoModel(
    id="fal-ai/bytedance/seedance/v1.5/pro/image-to-video",
    name="Seedance v1.5 Pro",
    description="ByteDance's high-quality image-to-video generation model with audio support",
    image_params=ImageParams(source="image_url", end="end_image_url"),
    params=(
        ModelParam(name="prompt", label="Prompt", type=ParamType.STRING, required=True),
        ModelParam(name="image_url", label="Source Image", type=ParamType.STRING, required=True),
        ModelParam(name="end_image_url", label="End Image", type=ParamType.STRING),
        ModelParam(
            name="aspect_ratio",
            label="Aspect Ratio",
            type=ParamType.ENUM,
            default="16:9",
            options=("21:9", "16:9", "4:3", "1:1", "3:4", "9:16"),
        ),
        ModelParam(
            name="resolution",
            label="Resolution",
            type=ParamType.ENUM,
            default="720p",
            options=("480p", "720p", "1080p"),
        ),
        ModelParam(
            name="duration",
            label="Duration (seconds)",
            type=ParamType.ENUM,
            default="5",
            options=("4", "5", "6", "7", "8", "9", "10", "11", "12"),
        ),
        ModelParam(name="camera_fixed", label="Fixed Camera", type=ParamType.BOOLEAN, default=False),
        ModelParam(
            name="seed",
            label="Seed",
            type=ParamType.NUMBER,
            min=-1,
            description="Random seed to control video generation. Use -1 for random.",
        ),
        _SAFETY_CHECKER,
        ModelParam(name="generate_audio", label="Generate Audio", type=ParamType.BOOLEAN, default=True),
    ),
    pricing=PricingRule(
        credits_per_second=8,
        resolution_multipliers={"480p": 0.5, "720p": 1.0, "1080p": 2.25},
    ),
)

HAILUO_23_FAST_PRO = VideoModel(
    id="fal-ai/minimax/hailuo-2.3-fast/pro/image-to-video",
    name="Hailuo 2.3 Fast Pro",
    description="MiniMax's fast image-to-video model with 1080p output and prompt optimization",
    image_params=ImageParams(source="image_url"),
    params=(
        ModelParam(name="prompt", label="Prompt", type=ParamType.STRING, required=True),
        ModelParam(name="prompt_optimizer", label="Prompt Optimizer", type=ParamType.BOOLEAN, default=True),
        ModelParam(name="image_url", label="Source Image", type=ParamType.STRING, required=True),
    ),
    pricing=PricingRule(credits_per_second=5, fixed_duration_seconds=6),
)

WAN_V26 = VideoModel(
    id="wan/v2.6/image-to-video",
    name="Wan v2.6",
    description="High-quality image-to-video with up to 15s duration and intelligent multi-shot segmentation",
    image_params=ImageParams(source="image_url"),
    params=(
        ModelParam(name="prompt", label="Prompt", type=ParamType.STRING, required=True),
        ModelParam(name="image_url", label="Source Image", type=ParamType.STRING, required=True),
        ModelParam(
            name="resolution",
            label="Resolution",
            type=ParamType.ENUM,
            default="1080p",
            options=("720p", "1080p"),
        ),
        ModelParam(
            name="duration",
            label="Duration (seconds)",
            type=ParamType.ENUM,
            default="5",
            options=("5", "10", "15"),
        ),
        ModelParam(name="negative_prompt", label="Negative Prompt", type=ParamType.STRING, default=""),
        ModelParam(
            name="enable_prompt_expansion",
            label="Prompt Expansion",
            type=ParamType.BOOLEAN,
            default=True,
        ),
        ModelParam(name="multi_shots", label="Multi-Shot Mode", type=ParamType.BOOLEAN, default=False),
        ModelParam(name="seed", label="Seed", type=ParamType.NUMBER),
        _SAFETY_CHECKER,
    ),
    pricing=PricingRule(
        credits_per_second=10,
        resolution_multipliers={"720p": 1.0, "1080p": 1.5},
    ),
)

KLING_V26_PRO = VideoModel(
    id="fal-ai/kling-video/v2.6/pro/image-to-video",
    name="Kling Video v2.6 Pro",
    description="Top-tier image-to-video with cinematic visuals, fluid motion, and native audio generation",
    image_params=ImageParams(source="start_image_url", end="end_image_url"),
    params=(
        ModelParam(name="prompt", label="Prompt", type=ParamType.STRING, required=True),
        ModelParam(name="start_image_url", label="Source Image", type=ParamType.STRING, required=True),
        ModelParam(name="end_image_url", label="End Image", type=ParamType.STRING),
        ModelParam(
            name="duration",
            label="Duration (seconds)",
            type=ParamType.ENUM,
            default="5",
            options=("5", "10"),
        ),
        ModelParam(
            name="negative_prompt",
            label="Negative Prompt",
            type=ParamType.STRING,
            default="blur, distort, and low quality",
        ),
        ModelParam(name="generate_audio", label="Generate Audio", type=ParamType.BOOLEAN, default=True),
        ModelParam(
            name="voice_ids",
            label="Voice IDs",
            type=ParamType.STRING_ARRAY,
            max_items=2,
            status=ParamStatus.DISABLED,
        ),
    ),
    pricing=PricingRule(credits_per_second=7, audio_multiplier=1.5),
)

VEO_31_FIRST_LAST_FRAME = VideoModel(
    id="fal-ai/veo3.1/first-last-frame-to-video",
    name="Veo 3.1 First-Last-Frame",
    description="Google DeepMind's video generation from first and last frames with optional audio",
    image_params=ImageParams(source="first_frame_url", end="last_frame_url"),
    params=(
        ModelParam(name="prompt", label="Prompt", type=ParamType.STRING, required=True),
        ModelParam(name="first_frame_url", label="First Frame", type=ParamType.STRING, required=True),
        ModelParam(name="last_frame_url", label="Last Frame", type=ParamType.STRING, required=True),
        ModelParam(
            name="aspect_ratio",
            label="Aspect Ratio",
            type=ParamType.ENUM,
            default="auto",
            options=("auto", "16:9", "9:16"),
        ),
        ModelParam(
            name="duration",
            label="Duration",
            type=ParamType.ENUM,
            default="8s",
            options=("4s", "6s", "8s"),
        ),
        ModelParam(
            name="resolution",
            label="Resolution",
            type=ParamType.ENUM,
            default="720p",
            options=("720p", "1080p", "4k"),
        ),
        ModelParam(name="negative_prompt", label="Negative Prompt", type=ParamType.STRING),
        ModelParam(name="generate_audio", label="Generate Audio", type=ParamType.BOOLEAN, default=True),
        ModelParam(name="seed", label="Seed", type=ParamType.NUMBER),
        ModelParam(name="auto_fix", label="Auto Fix", type=ParamType.BOOLEAN, default=False),
    ),
    pricing=PricingRule(
        credits_per_second=20,
        resolution_multipliers={"720p": 1.0, "1080p": 1.0, "4k": 2.0},
        audio_multiplier=1.5,
    ),
)

VIDEO_MODELS: tuple[VideoModel, ...] = (
    SEEDANCE_V15_PRO,
    HAILUO_23_FAST_PRO,
    WAN_V26,
    KLING_V26_PRO,
    VEO_31_FIRST_LAST_FRAME,
)
DEFAULT_VIDEO_MODEL_ID = SEEDANCE_V15_PRO.id

_MODELS_BY_ID: dict[str, VideoModel] = {model.id: model for model in VIDEO_MODELS}


def get_video_model(model_id: str) -> VideoModel | None:
    return _MODELS_BY_ID.get(model_id)


def require_video_model(model_id: str) -> VideoModel:
    model = get_video_model(model_id)
    if model is None:
        raise UnknownModel(model_id)
    return model


def model_defaults(model: VideoModel) -> dict[str, Any]:
    """Defaults of every non-disabled parameter."""
    return {
        param.name: param.default
        for param in model.params
        if param.status is not ParamStatus.DISABLED and param.default is not None
    }


def validate_and_merge_params(
    model: VideoModel,
    user_params: Mapping[str, Any],
    *,
    enforce_required: bool = True,
) -> dict[str, Any]:
    """Validate ``user_params`` against the model schema and fill defaults.

    Unknown keys are dropped. Raises ``InvalidParameter`` on the first
    violation.
    """
    merged = model_defaults(model)

    for param in model.params:
        if param.status is not ParamStatus.ACTIVE:
            continue

        value = user_params.get(param.name)
        if value is None:
            if enforce_required and param.required and param.name not in merged:
                raise InvalidParameter(
                    f"Missing required parameter: {param.name}",
                    details={"param": param.name},
                )
            continue

        merged[param.name] = _coerce(param, value)

    return merged


def _coerce(param: ModelParam, value: Any) -> Any:
    if param.type is ParamType.STRING:
        if not isinstance(value, str):
            raise _invalid(param, f"Parameter {param.name} must be a string")
        return value

    if param.type is ParamType.NUMBER:
        return _coerce_number(param, value)

    if param.type is ParamType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if value == "true":
            return True
        if value == "false":
            return False
        raise _invalid(param, f"Parameter {param.name} must be a boolean")

    if param.type is ParamType.ENUM:
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            for option in param.options:
                if str(option) == str(value):
                    return option
        options = ", ".join(str(option) for option in param.options)
        raise _invalid(param, f"Parameter {param.name} must be one of: {options}")

    if param.type is ParamType.STRING_ARRAY:
        if not isinstance(value, list):
            raise _invalid(param, f"Parameter {param.name} must be an array of strings")
        if not all(isinstance(item, str) for item in value):
            raise _invalid(param, f"Parameter {param.name} must contain only strings")
        if param.max_items is not None and len(value) > param.max_items:
            raise _invalid(param, f"Parameter {param.name} allows maximum {param.max_items} items")
        return list(value)

    raise _invalid(param, f"Parameter {param.name} has an unsupported type")


def _coerce_number(param: ModelParam, value: Any) -> int | float:
    if isinstance(value, bool):
        raise _invalid(param, f"Parameter {param.name} must be a number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise _invalid(param, f"Parameter {param.name} must be a number") from None
    if not isinstance(value, (int, float)) or math.isnan(value) or math.isinf(value):
        raise _invalid(param, f"Parameter {param.name} must be a number")
    if param.min is not None and value < param.min:
        raise _invalid(param, f"Parameter {param.name} must be at least {param.min:g}")
    if param.max is not None and value > param.max:
        raise _invalid(param, f"Parameter {param.name} must be at most {param.max:g}")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _invalid(param: ModelParam, message: str) -> InvalidParameter:
    return InvalidParameter(message, details={"param": param.name})


def catalog_entry(model: VideoModel) -> dict[str, Any]:
    """Client-facing model description; hidden and disabled params are omitted."""
    return {
        "id": model.id,
        "name": model.name,
        "description": model.description,
        "image_params": {"source_image": model.image_params.source, "end_image": model.image_params.end},
        "params": [
            {
                "name": param.name,
                "label": param.label or param.name,
                "type": param.type.value,
                "required": param.required,
                "default": param.default,
                "options": list(param.options) or None,
                "description": param.description,
                "min": param.min,
                "max": param.max,
                "max_items": param.max_items,
            }
            for param in model.params
            if param.status is ParamStatus.ACTIVE
        ],
    }
