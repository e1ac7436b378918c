"""Shared pytest setup: golden YAML parametrization and logging cleanup."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

DEFAULT_GOLDEN_PATTERN = "golden/*.yaml"


def pytest_configure(config: Any) -> None:
    """Register the golden_test marker."""
    config.addinivalue_line(
        "markers",
        "golden_test(pattern): parameterize test with YAML files matching pattern",
    )


def _iter_marker_patterns(node: Any) -> Iterator[str]:
    """Yield pattern strings from golden_test markers on `node`."""
    for m in node.iter_markers(name="golden_test"):
        yield m.args[0] if m.args else DEFAULT_GOLDEN_PATTERN


def _load_record(path: Path) -> dict[str, Any]:
    """Load one golden record, keeping load errors visible to the test."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        return {"__yaml_load_error__": str(e), "__path__": str(path)}
    if not isinstance(data, dict):
        return {"__yaml_load_error__": "record is not a mapping", "__path__": str(path)}
    data.setdefault("__path__", str(path))
    data.setdefault("__name__", path.name)
    return data


def pytest_generate_tests(metafunc: Any) -> None:
    """Generate tests (parametrization) from YAML golden files."""
    if "golden" not in metafunc.fixturenames:
        return

    patterns = list(_iter_marker_patterns(metafunc.definition)) or [DEFAULT_GOLDEN_PATTERN]
    root = Path(metafunc.config.rootpath)

    files: list[Path] = []
    for pat in patterns:
        files.extend(sorted(root.glob(pat)))

    metafunc.parametrize("golden", [_load_record(p) for p in files], ids=[p.name for p in files])


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    """Drop handlers installed by processor.init_logging and restore the level.

    pytest's own capture handlers are subclasses and are left alone.
    """
    root = logging.getLogger()
    level = root.level
    yield
    for h in list(root.handlers):
        if type(h) in (logging.StreamHandler, logging.FileHandler):
            h.close()
            root.removeHandler(h)
    root.setLevel(level)
