"""Error taxonomy for critical CSS extraction."""

from __future__ import annotations


class CriticalCSSError(Exception):
    """Base class for extraction failures. ``kind`` identifies the category."""

    kind = "error"


class InputError(CriticalCSSError):
    """The stylesheet is missing, empty or cannot be read."""

    kind = "input"


class EngineCrashError(CriticalCSSError):
    """The browser process died while a run was in flight."""

    kind = "engine_crash"


class PipelineTimeoutError(CriticalCSSError):
    """The run exceeded the configured wall-clock bound."""

    kind = "timeout"


class QueryError(CriticalCSSError):
    """A single selector visibility query failed."""

    kind = "query"

    def __init__(self, selector: str, message: str) -> None:
        super().__init__(f"{selector}: {message}")
        self.selector = selector


class SerializationError(CriticalCSSError):
    """The stylesheet tree cannot be written back as CSS text."""

    kind = "serialization"
