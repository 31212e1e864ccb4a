from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from pretrip.models import RecallPrompt, Script, Section, Step  # noqa: E402
from pretrip.progress import ProgressStore  # noqa: E402

OIL_TEXT = "Check engine oil level, must be between 20 and 45 PSI"


def _tmp_path_fixture() -> Iterator[Path]:
    """Provide a per-test temporary directory under ``.tmp_pytest/`` in the repo.

    Overrides pytest's builtin ``tmp_path`` so SQLite files and override
    directories stay inside the working tree.
    """
    base = ROOT / ".tmp_pytest"
    base.mkdir(parents=True, exist_ok=True)
    path = base / str(uuid4())
    path.mkdir(parents=True, exist_ok=False)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        try:
            next(base.iterdir())
        except StopIteration:
            base.rmdir()
        except FileNotFoundError:
            pass


tmp_path = pytest.fixture(name="tmp_path")(_tmp_path_fixture)


@pytest.fixture
def store() -> Iterator[ProgressStore]:
    progress = ProgressStore(":memory:")
    try:
        yield progress
    finally:
        progress.close()


@pytest.fixture
def oil_script() -> Script:
    """One critical section holding a single pass/fail oil check."""
    step = Step(
        id="oil",
        text=OIL_TEXT,
        must_say=True,
        pass_fail=True,
        tokens=("engine", "20", "45"),
        recall=RecallPrompt(question="What is the upper oil pressure limit?", answers=("45",)),
    )
    return Script(
        id="walkthrough-test",
        class_code="class-a",
        label="Test Class",
        sections=(
            Section(title="Warm Up", steps=(Step(id="warm", text="Walk around the truck."),)),
            Section(title="Engine Compartment", steps=(step,), critical=True),
        ),
    )
