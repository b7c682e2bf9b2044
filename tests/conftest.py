"""
Shared pytest fixtures for the Chronicle test suite.

Provides:
    - project_root: path to the repository root
    - sample_entries: a small registry (two characters, two locations)
    - settings: default settings with Tier 2 disabled
    - temp_project: a temporary writing project with registry and settings
    - write_scene: helper that writes a scene and sets its modification time
    - engine: a ChronicleEngine over temp_project, closed after the test
    - read_record: helper that loads a persisted entity record as raw JSON
"""

import json
import os
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure chronicle/ is importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chronicle.config import Settings  # noqa: E402
from chronicle.engine import ChronicleEngine  # noqa: E402
from chronicle.models.base import RegistryEntry  # noqa: E402


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def project_root():
    """Return the absolute path to the repository root."""
    return str(PROJECT_ROOT)


@pytest.fixture
def sample_registry_data():
    """Raw registry JSON as an editor export would write it."""
    return {
        "entities": [
            {"name": "Elena", "aliases": ["Ellie"], "type": "character"},
            {"name": "Marcus", "aliases": [], "type": "character"},
            {"name": "The Vault", "aliases": ["Vault"], "type": "location"},
            {"name": "Harbor", "aliases": ["the docks"], "type": "location"},
        ]
    }


@pytest.fixture
def sample_entries(sample_registry_data):
    """Return the sample registry as RegistryEntry models."""
    return [RegistryEntry.model_validate(e) for e in sample_registry_data["entities"]]


@pytest.fixture
def settings():
    """Default settings (Tier 2 disabled, window radius 1)."""
    return Settings()


@pytest.fixture
def temp_project(tmp_path, sample_registry_data):
    """Create a temporary writing project.

    Layout::

        <root>/_chronicle/registry.json
        <root>/_chronicle/settings.json
        <root>/scenes/

    Returns the path to the project root.
    """
    root = tmp_path / "novel"
    chronicle_dir = root / "_chronicle"
    chronicle_dir.mkdir(parents=True)
    (root / "scenes").mkdir()

    with open(chronicle_dir / "registry.json", "w", encoding="utf-8") as fh:
        json.dump(sample_registry_data, fh, indent=2)
    with open(chronicle_dir / "settings.json", "w", encoding="utf-8") as fh:
        json.dump({"llm_enabled": False}, fh)

    return str(root)


@pytest.fixture
def write_scene(temp_project):
    """Return a helper ``write(rel_path, text, mtime=None) -> rel_path``."""

    def write(rel_path, text, mtime=None):
        path = os.path.join(temp_project, *rel_path.split("/"))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return rel_path

    return write


@pytest.fixture
def engine(temp_project, settings):
    """Return a ChronicleEngine over the temp project; closed on teardown."""
    eng = ChronicleEngine(temp_project, settings=settings)
    yield eng
    eng.close()


@pytest.fixture
def read_record(temp_project):
    """Return a helper that loads a persisted entity record as raw JSON."""

    def read(name):
        path = os.path.join(temp_project, "_chronicle", "bible", f"{name}.json")
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)

    return read
