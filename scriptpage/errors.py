from __future__ import annotations

import traceback
from pathlib import Path


class ScriptPageError(Exception):
    """Base class for errors raised while loading or rendering templates."""


class TemplateNotFoundError(ScriptPageError):
    """The template source location does not resolve to readable text."""

    def __init__(self, location: str | Path, reason: str | None = None) -> None:
        self.location = location
        message = f"Template not found: {location}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class TemplateLoadError(ScriptPageError):
    """A generated module could not be loaded as runnable code.

    Carries the artifact reference (file path or in-memory name) and the
    underlying exception. The formatted cause is part of the message so the
    broken line of generated code is visible without digging into __cause__.
    """

    def __init__(self, artifact: str | Path, cause: BaseException) -> None:
        self.artifact = artifact
        self.cause = cause
        detail = "".join(traceback.format_exception_only(type(cause), cause)).rstrip()
        super().__init__(f"{artifact}\n{detail}")


class StaleRenderError(ScriptPageError):
    """Rendering was requested for a template whose compiled entry was dropped."""

    def __init__(self, identity: str) -> None:
        self.identity = identity
        super().__init__(f"No compiled template for {identity!r}; reload it before rendering")
