"""Pre-trip inspection walkthrough practice engine."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["__version__"]


def _source_checkout_version() -> str | None:
    """Read the version from the nearest pyproject.toml when running from a checkout."""
    for base in Path(__file__).resolve().parents:
        pyproject = base / "pyproject.toml"
        if not pyproject.exists():
            continue
        with pyproject.open("rb") as handle:
            data = tomllib.load(handle)
        project = data.get("project", {})
        if project.get("name") != "pretrip":
            continue
        found = project.get("version")
        return str(found) if found else None
    return None


def _installed_version() -> str:
    try:
        return version("pretrip")
    except PackageNotFoundError:
        return "0+unknown"


__version__ = _source_checkout_version() or _installed_version()
