from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator

from .compiler import Compiler
from .config import DelimiterConfig
from .errors import StaleRenderError
from .store import ArtifactStore, MemoryArtifactStore, RenderFunction, read_source

logger = logging.getLogger(__name__)

# Every character that can carry path structure gets its own substitute, and
# '_' is escaped first, so two different paths never map to the same name.
_IDENTITY_MAP = str.maketrans({
    "_": "_5f",
    "-": "_2d",
    ":": "_3a",
    "\\": "_5c",
    "/": "__",
    ".": "-",
})


def make_identity(location: str | Path) -> str:
    """Derive the cache key and artifact base name for a template location."""
    if not str(location):
        raise ValueError("template location must be non-empty")
    return str(Path(location).resolve()).translate(_IDENTITY_MAP)


@dataclass(frozen=True)
class RenderHandle:
    """A caller-held reference to one template in a TemplateCache."""
    location: Path
    identity: str
    cache: "TemplateCache" = field(repr=False, compare=False)

    def render(self, context: Any = None) -> str:
        return self.cache.render(self, context)

    def reload(self) -> "RenderHandle":
        return self.cache.reload(self)

    def invalidate(self) -> None:
        self.cache.invalidate(self)

    @property
    def is_cached(self) -> bool:
        return self.identity in self.cache


@dataclass
class _Entry:
    render: RenderFunction
    artifact: str | Path


class TemplateCache:
    """Compiled templates keyed by identity.

    An entry is created by the first load of a location and reused verbatim by
    every later load until it is invalidated; the source is not read again in
    between, so edits to it are not picked up until reload. There is no
    eviction. A lock serializes the check-compile-insert sequence so two
    threads never compile or write the same artifact at once.
    """

    def __init__(
        self,
        delimiters: DelimiterConfig | None = None,
        store: ArtifactStore | None = None,
        reader: Callable[[str | Path], str] = read_source,
        strict: bool = False,
    ) -> None:
        self.compiler = Compiler(delimiters)
        self.store: ArtifactStore = store if store is not None else MemoryArtifactStore()
        self.reader = reader
        self.strict = strict
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.RLock()

    @property
    def delimiters(self) -> DelimiterConfig:
        return self.compiler.delimiters

    def __contains__(self, key: object) -> bool:
        if isinstance(key, RenderHandle):
            key = key.identity
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __enter__(self) -> "TemplateCache":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def identities(self) -> Iterator[str]:
        return iter(list(self._entries))

    def handle(self, location: str | Path) -> RenderHandle:
        """Build a handle for 'location' without loading anything."""
        path = Path(location).resolve()
        return RenderHandle(location=path, identity=make_identity(path), cache=self)

    def artifact(self, target: RenderHandle | str) -> str | Path | None:
        """Return where the compiled module for 'target' was persisted, if loaded."""
        entry = self._entries.get(self._identity_of(target))
        return entry.artifact if entry else None

    def load(self, location: str | Path) -> RenderHandle:
        handle = self.handle(location)
        with self._lock:
            if handle.identity in self._entries:
                logger.debug("Cache hit for %s", handle.location)
                return handle
            source = self.reader(handle.location)
            code = self.compiler.compile(source, origin=str(handle.location))
            artifact = self.store.persist(handle.identity, code)
            # Another cache sharing the store may still hold the old module
            self.store.unload(artifact)
            render = self.store.load_runnable(artifact)
            self._entries[handle.identity] = _Entry(render=render, artifact=artifact)
            logger.info("Compiled %s", handle.location)
        return handle

    def reload(self, handle: RenderHandle) -> RenderHandle:
        with self._lock:
            self.invalidate(handle)
            return self.load(handle.location)

    def invalidate(self, target: RenderHandle | str) -> None:
        """Drop the entry for 'target' and unload its module; absent entries are ignored."""
        identity = self._identity_of(target)
        with self._lock:
            entry = self._entries.pop(identity, None)
            if entry is None:
                return
            self.store.unload(entry.artifact)
            logger.info("Invalidated %s", identity)

    def render(self, handle: RenderHandle | str, context: Any = None) -> str:
        identity = self._identity_of(handle)
        entry = self._entries.get(identity)
        if entry is None:
            if self.strict:
                raise StaleRenderError(identity)
            logger.debug("No compiled entry for %s, rendering empty output", identity)
            return ""
        return entry.render(context)

    def clear(self) -> None:
        with self._lock:
            for identity in list(self._entries):
                self.invalidate(identity)

    def close(self) -> None:
        self.clear()

    @staticmethod
    def _identity_of(target: RenderHandle | str) -> str:
        return target.identity if isinstance(target, RenderHandle) else target
