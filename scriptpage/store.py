from __future__ import annotations

import hashlib
import importlib
import importlib.util
import linecache
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Protocol

from .errors import TemplateLoadError, TemplateNotFoundError

logger = logging.getLogger(__name__)

RenderFunction = Callable[[Any], str]

BOM = "\ufeff"
ARTIFACT_SUFFIX = ".py"
MODULE_PREFIX = "_scriptpage_"
WORK_AREA_MODE = 0o755


def strip_bom(text: str) -> str:
    return text[1:] if text.startswith(BOM) else text


def read_source(location: str | Path) -> str:
    """Read template text from 'location' as UTF-8, without a leading BOM."""
    path = Path(location)
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return strip_bom(f.read())
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError, PermissionError) as e:
        raise TemplateNotFoundError(path, e.strerror) from e
    except UnicodeDecodeError as e:
        raise TemplateNotFoundError(path, f"not valid UTF-8: {e.reason}") from e


class ArtifactStore(Protocol):
    """Where generated modules live and how they become callables."""

    def persist(self, identity: str, code: str) -> str | Path:
        ...

    def load_runnable(self, ref: str | Path) -> RenderFunction:
        ...

    def unload(self, ref: str | Path) -> None:
        ...


def _module_name(path: Path) -> str:
    # Same identity under two work areas must not share a sys.modules slot
    digest = hashlib.sha1(str(path.parent).encode("utf-8")).hexdigest()[:10]
    return f"{MODULE_PREFIX}{digest}_{path.stem}"


def _render_of(module: ModuleType, ref: str | Path) -> RenderFunction:
    render = getattr(module, "render", None)
    if not callable(render):
        raise TemplateLoadError(ref, AttributeError("generated module defines no render()"))
    return render


class FileArtifactStore:
    """Writes each generated module to '<work_area>/<identity>.py' and imports it.

    Loaded modules are registered in sys.modules and reused until unloaded,
    the same way a regular import would be.
    """

    def __init__(self, work_area: str | Path) -> None:
        self.work_area = Path(work_area).resolve()

    def artifact_path(self, identity: str) -> Path:
        return self.work_area / f"{identity}{ARTIFACT_SUFFIX}"

    def persist(self, identity: str, code: str) -> Path:
        if not self.work_area.exists():
            self.work_area.mkdir(mode=WORK_AREA_MODE, parents=True)
            logger.info("Created work area %s", self.work_area)
        path = self.artifact_path(identity)
        path.write_text(code, encoding="utf-8")
        logger.debug("Wrote %s (%d bytes)", path, len(code))
        return path

    def load_runnable(self, ref: str | Path) -> RenderFunction:
        path = Path(ref)
        name = _module_name(path)
        module = sys.modules.get(name)
        if module is not None:
            return _render_of(module, path)

        spec = importlib.util.spec_from_file_location(name, path)
        if spec is None:
            raise TemplateLoadError(path, ImportError(f"cannot build a module spec for {path}"))
        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        try:
            # Compile from the text on disk; bytecode caches keyed on mtime
            # can miss a same-size rewrite within one second.
            source = path.read_text(encoding="utf-8")
            exec(compile(source, str(path), "exec"), module.__dict__)
        except Exception as e:
            del sys.modules[name]
            raise TemplateLoadError(path, e) from e
        linecache.checkcache(str(path))
        return _render_of(module, path)

    def unload(self, ref: str | Path) -> None:
        path = Path(ref)
        if sys.modules.pop(_module_name(path), None) is not None:
            logger.debug("Unloaded %s", path)
        importlib.invalidate_caches()

    def remove(self, ref: str | Path) -> None:
        """Unload and delete a persisted artifact; missing files are ignored."""
        self.unload(ref)
        Path(ref).unlink(missing_ok=True)


class MemoryArtifactStore:
    """Keeps generated modules in memory and executes them on load.

    References look like '<scriptpage:identity>' and are registered with
    linecache so tracebacks through template code show the generated lines.
    """

    def __init__(self) -> None:
        self._sources: dict[str, str] = {}
        self._loaded: dict[str, ModuleType] = {}

    @staticmethod
    def reference(identity: str) -> str:
        return f"<scriptpage:{identity}>"

    def persist(self, identity: str, code: str) -> str:
        ref = self.reference(identity)
        self._sources[ref] = code
        linecache.cache[ref] = (len(code), None, code.splitlines(True), ref)
        return ref

    def source(self, ref: str) -> str | None:
        return self._sources.get(ref)

    def load_runnable(self, ref: str | Path) -> RenderFunction:
        ref = str(ref)
        module = self._loaded.get(ref)
        if module is None:
            code = self._sources.get(ref)
            if code is None:
                raise TemplateLoadError(ref, LookupError("nothing persisted under this reference"))
            module = ModuleType(MODULE_PREFIX + ref.strip("<>").split(":", 1)[-1])
            try:
                exec(compile(code, ref, "exec"), module.__dict__)
            except Exception as e:
                raise TemplateLoadError(ref, e) from e
            self._loaded[ref] = module
        return _render_of(module, ref)

    def unload(self, ref: str | Path) -> None:
        self._loaded.pop(str(ref), None)

    def remove(self, ref: str | Path) -> None:
        self.unload(ref)
        self._sources.pop(str(ref), None)
        linecache.cache.pop(str(ref), None)
