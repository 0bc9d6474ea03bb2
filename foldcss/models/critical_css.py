"""Models for critical CSS extraction workflows."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from foldcss.core.config import settings
from foldcss.css.matchers import ForceIncludeEntry

from .job import JobStatus


class ForceIncludeValue(BaseModel):
    """Selector that is always kept. ``pattern`` values are regular expressions."""

    kind: Literal["exact", "pattern"] = "exact"
    value: str
    flags: str = Field(default="", pattern=r"^[ims]*$")

    @model_validator(mode="after")
    def validate_pattern(self) -> "ForceIncludeValue":
        """Reject ``pattern`` values that are not valid regular expressions."""

        if self.kind == "pattern":
            try:
                re.compile(self.value)
            except re.error as exc:
                raise ValueError(f"Invalid force include pattern {self.value!r}: {exc}") from exc
        return self


class CriticalCSSRequest(BaseModel):
    """Options for one extraction run."""

    url: str = Field(..., min_length=1, description="Page to render.")
    css_string: Optional[str] = Field(default=None, description="Full stylesheet text.")
    css_file_path: Optional[str] = Field(default=None, description="Path of a stylesheet to read instead.")
    width: int = Field(default_factory=lambda: settings.default_viewport_width, gt=0)
    height: int = Field(default_factory=lambda: settings.default_viewport_height, gt=0)
    force_include: List[ForceIncludeValue] = Field(default_factory=list)
    strict: bool = False
    timeout: int = Field(default_factory=lambda: settings.extraction_timeout_ms, gt=0, description="Milliseconds.")
    render_wait_time: int = Field(default_factory=lambda: settings.render_wait_time_ms, ge=0)
    page_load_skip_timeout: Optional[int] = Field(default=None, gt=0)
    block_js_requests: bool = Field(default_factory=lambda: settings.block_js_requests)
    custom_page_headers: Dict[str, str] = Field(default_factory=dict)
    keep_larger_media_queries: bool = False
    max_elements_to_check_per_selector: Optional[int] = Field(default=None, gt=0)
    properties_to_remove: List[str] = Field(default_factory=lambda: list(settings.properties_to_remove))
    max_embedded_base64_length: int = Field(default_factory=lambda: settings.max_embedded_base64_length, ge=0)
    user_agent: str = Field(default_factory=lambda: settings.user_agent)

    @field_validator("force_include", mode="before")
    @classmethod
    def coerce_force_include(cls, value: Any) -> List[dict]:
        """Accept plain strings and compiled patterns next to tagged entries."""

        if value is None:
            return []
        return [ForceIncludeEntry.coerce(item).to_dict() for item in value]

    @field_validator("properties_to_remove")
    @classmethod
    def validate_patterns(cls, value: List[str]) -> List[str]:
        """Reject property patterns that are not valid regular expressions."""

        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid property pattern {pattern!r}: {exc}") from exc
        return value

    @model_validator(mode="after")
    def ensure_stylesheet(self) -> "CriticalCSSRequest":
        """Validate that a stylesheet source is provided."""

        if not self.css_string and not self.css_file_path:
            raise ValueError("Either 'css_string' or 'css_file_path' must be provided.")
        return self

    def force_include_entries(self) -> List[ForceIncludeEntry]:
        return [ForceIncludeEntry.coerce(entry.model_dump()) for entry in self.force_include]


class CriticalCSSResult(BaseModel):
    """Result payload for completed CSS extraction jobs."""

    critical_css: str
    viewport: Dict[str, int] = Field(default_factory=dict)
    duration_ms: int = 0
    attempts: int = 1


class CriticalCSSJobStatusResponse(BaseModel):
    """API response for CSS job status queries."""

    job_id: str
    status: JobStatus
    url: str
    created_at: datetime
    updated_at: datetime
    result: Optional[CriticalCSSResult] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
