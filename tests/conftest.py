"""Shared fixtures for the scriptpage test suite."""

import itertools
import os
import sys
from pathlib import Path

import pytest

# Ensure repository root is on sys.path so tests can import scriptpage.*
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from scriptpage.cache import TemplateCache  # noqa: E402
from scriptpage.store import FileArtifactStore  # noqa: E402


@pytest.fixture
def write_template(tmp_path: Path):
    """Write text to a template file under tmp_path and return its path."""
    def _write(text: str, name: str = "template.npg") -> Path:
        path = tmp_path / name
        # newline="" keeps \r and \r\n exactly as given
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        return path
    return _write


@pytest.fixture
def work_area(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def cache():
    """In-memory template cache, cleared after the test."""
    with TemplateCache() as c:
        yield c


@pytest.fixture
def file_cache(work_area: Path):
    """Template cache persisting generated modules under the work area."""
    with TemplateCache(store=FileArtifactStore(work_area)) as c:
        yield c


@pytest.fixture
def render_text(cache: TemplateCache, write_template):
    """Compile a template from text and render it once."""
    counter = itertools.count()

    def _render(text: str, context=None) -> str:
        path = write_template(text, name=f"render_{next(counter)}.npg")
        return cache.load(path).render(context)
    return _render
