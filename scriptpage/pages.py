from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .cache import RenderHandle, TemplateCache
from .config import PagesConfig
from .store import ArtifactStore, FileArtifactStore, MemoryArtifactStore

logger = logging.getLogger(__name__)


def build_store(config: PagesConfig) -> ArtifactStore:
    """Pick the artifact store a config asks for: files under work_area, else memory."""
    if config.work_area is not None:
        return FileArtifactStore(config.work_area)
    return MemoryArtifactStore()


def build_cache(config: PagesConfig) -> TemplateCache:
    return TemplateCache(
        delimiters=config.delimiters,
        store=build_store(config),
        strict=config.strict_render,
    )


class Pages:
    """One template bound to a TemplateCache.

    Several Pages sharing a cache share compiled templates: constructing a
    second Pages for an already loaded location does not read or compile it
    again. Without a configured source_location the instance starts unbound
    and renders empty output until load() is called.
    """

    def __init__(self, config: PagesConfig | None = None, cache: TemplateCache | None = None) -> None:
        self.config = config or PagesConfig()
        self.cache = cache if cache is not None else build_cache(self.config)
        self.handle: RenderHandle | None = None
        if self.config.source_location is not None:
            self.load(self.config.source_location)

    @classmethod
    def create(cls, config: PagesConfig | dict[str, Any] | None = None, cache: TemplateCache | None = None) -> "Pages":
        if isinstance(config, dict):
            config = PagesConfig.model_validate(config)
        return cls(config, cache)

    @property
    def location(self) -> Path | None:
        return self.handle.location if self.handle else None

    @property
    def identity(self) -> str | None:
        return self.handle.identity if self.handle else None

    @property
    def artifact(self) -> str | Path | None:
        return self.cache.artifact(self.handle) if self.handle else None

    @property
    def is_cached(self) -> bool:
        return self.handle is not None and self.handle in self.cache

    def load(self, location: str | Path) -> "Pages":
        self.handle = self.cache.load(location)
        return self

    def reload(self) -> "Pages":
        if self.handle is None:
            logger.debug("reload() on an unbound Pages, nothing to do")
            return self
        self.handle = self.cache.reload(self.handle)
        return self

    def clear(self) -> None:
        """Drop this template's compiled entry from the shared cache."""
        if self.handle is not None:
            self.cache.invalidate(self.handle)

    def render(self, context: Any = None) -> str:
        if self.handle is None:
            return ""
        return self.cache.render(self.handle, context)
