from __future__ import annotations

import keyword
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

DEFAULT_OPEN_MARKER = "<?"
DEFAULT_CLOSE_MARKER = "?>"
DEFAULT_CONTEXT_PARAM_NAME = "arg"

_FLAT_DELIMITER_KEYS = ("open_marker", "close_marker", "context_param_name")

# Names the generated render function uses internally
RESERVED_NAMES = frozenset({"_buf", "_escape"})


class DelimiterConfig(BaseModel):
    """Markers bounding a directive and the name bound to the render argument.

    Immutable once built; a compiler keeps one for its whole lifetime.
    """
    model_config = ConfigDict(frozen=True)

    open_marker: str = Field(default=DEFAULT_OPEN_MARKER, description="Marker opening a directive")
    close_marker: str = Field(default=DEFAULT_CLOSE_MARKER, description="Marker closing a directive")
    context_param_name: str = Field(
        default=DEFAULT_CONTEXT_PARAM_NAME,
        description="Parameter name the context value is bound to inside templates",
    )

    @field_validator("open_marker", "close_marker")
    @classmethod
    def _validate_marker(cls, v: str) -> str:
        if not v:
            raise ValueError("markers must be non-empty")
        return v

    @field_validator("context_param_name")
    @classmethod
    def _validate_param_name(cls, v: str) -> str:
        if not v.isidentifier() or keyword.iskeyword(v):
            raise ValueError(f"'context_param_name' must be a Python identifier, got {v!r}")
        if v in RESERVED_NAMES:
            raise ValueError(f"'context_param_name' must not be one of {sorted(RESERVED_NAMES)}")
        return v

    @model_validator(mode="after")
    def _validate_distinct(self) -> "DelimiterConfig":
        if self.open_marker == self.close_marker:
            raise ValueError("'open_marker' and 'close_marker' must differ")
        return self


class PagesConfig(BaseModel):
    """Top-level configuration for loading and rendering templates.

    Delimiter options may be given either nested under 'delimiters' or flat at
    the top level (open_marker, close_marker, context_param_name).
    """
    delimiters: DelimiterConfig = Field(default_factory=DelimiterConfig)
    work_area: Path | None = Field(
        default=None,
        description="Directory where generated modules are written; in-memory when omitted",
    )
    source_location: Path | None = Field(default=None, description="Template to load on construction")
    strict_render: bool = Field(
        default=False,
        description="Raise instead of returning an empty string when rendering an invalidated template",
    )

    @model_validator(mode="before")
    @classmethod
    def _fold_flat_delimiters(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = {k: data[k] for k in _FLAT_DELIMITER_KEYS if k in data}
        if not flat:
            return data
        data = {k: v for k, v in data.items() if k not in flat}
        nested = data.get("delimiters") or {}
        if isinstance(nested, DelimiterConfig):
            nested = nested.model_dump()
        data["delimiters"] = {**nested, **flat}
        return data


def load_config(path: str | Path) -> PagesConfig:
    """Load YAML config from 'path' and validate into a PagesConfig model."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    try:
        return PagesConfig.model_validate(data)
    except ValidationError as e:
        # Re-raise with a cleaner message for CLI users
        raise ValueError(str(e))
