"""
Clip generation options and the one function that merges caller overrides
into the defaults.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_PLATFORMS = ["youtube_shorts", "tiktok", "instagram_reels", "twitter"]


class ClipGenerationOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_duration: float = Field(default=15, gt=0)
    max_duration: float = Field(default=60, gt=0)
    target_clip_count: int = Field(default=10, ge=1)
    platforms: List[str] = Field(default_factory=lambda: list(DEFAULT_PLATFORMS), min_length=1)
    include_captions: bool = True
    include_transitions: bool = True
    virality_threshold: float = Field(default=70, ge=0, le=100)
    overlap_prevention: bool = True

    @field_validator("platforms")
    @classmethod
    def _known_platforms(cls, value: List[str]) -> List[str]:
        unknown = [p for p in value if p not in DEFAULT_PLATFORMS]
        if unknown:
            raise ValueError(f"unknown platforms: {', '.join(unknown)}")
        return value

    @model_validator(mode="after")
    def _check_durations(self) -> "ClipGenerationOptions":
        if self.min_duration > self.max_duration:
            raise ValueError("min_duration must be <= max_duration")
        return self


def merge_options(
    overrides: Optional[Mapping[str, Any]] = None,
    base: Optional[ClipGenerationOptions] = None,
) -> ClipGenerationOptions:
    """
    Apply ``overrides`` on top of ``base`` (defaults when omitted).

    Raises:
        pydantic.ValidationError: unknown keys or invalid values
        TypeError: overrides is not a mapping
    """
    if overrides is not None and not isinstance(overrides, Mapping):
        raise TypeError(f"options must be a mapping, not {type(overrides).__name__}")
    data: Dict[str, Any] = (base or ClipGenerationOptions()).model_dump()
    data.update(overrides or {})
    return ClipGenerationOptions.model_validate(data)
