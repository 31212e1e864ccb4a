import random
import sqlite3
from datetime import datetime
from pathlib import Path

import pytest

from pretrip.drills import FillClozeDrill, OrderStepsDrill, PhraseMode, TypePhraseDrill, VisualRecallDrill
from pretrip.errors import PersistenceFailed, ScriptNotFound
from pretrip.models import DrillKind, MasteredEvent
from pretrip.progress import ProgressStore
from pretrip.resolver import InMemoryScriptRepository
from pretrip.service import PracticeSession, WalkthroughService
from pretrip.settings import Settings


def _settings(tmp_path: Path, **overrides: object) -> Settings:
    return Settings(db_path=str(tmp_path / "progress.db"), **overrides)


async def _complete_all(session: PracticeSession) -> None:
    fill = session.drill(DrillKind.FILL_CLOZE)
    assert isinstance(fill, FillClozeDrill)
    assert (await session.submit(DrillKind.FILL_CLOZE, fill.answers)).completed_now is True

    order = session.drill(DrillKind.ORDER_STEPS)
    assert isinstance(order, OrderStepsDrill)
    assert (await session.submit(DrillKind.ORDER_STEPS, list(order.canonical))).completed_now is True

    phrase = session.drill(DrillKind.TYPE_PHRASE)
    assert isinstance(phrase, TypePhraseDrill)
    assert (await session.submit("typePhrase", phrase.phrase.upper())).completed_now is True

    recall = session.drill(DrillKind.VISUAL_RECALL)
    assert isinstance(recall, VisualRecallDrill)
    assert (await session.submit(DrillKind.VISUAL_RECALL, f"It is {recall.answers[0]}")).completed_now is True


@pytest.mark.asyncio
async def test_practice_session_reaches_mastery_once(tmp_path: Path) -> None:
    service = WalkthroughService(_settings(tmp_path))
    try:
        session = await service.open_practice("sam", "A", rng=random.Random(0))
        assert session.script.id == "walkthrough-class-a"
        assert session.resolved.is_custom is False
        assert session.completed_count() == 0

        events: list[MasteredEvent] = []
        session.subscribe(events.append)
        await _complete_all(session)

        assert session.completed_count() == 4
        assert session.is_mastered() is True
        assert len(events) == 1
        assert session.warnings == []

        again = await session.submit(DrillKind.FILL_CLOZE, ["nope"])
        assert again.completed_now is False
        assert len(events) == 1
    finally:
        service.close()


@pytest.mark.asyncio
async def test_reopened_session_restores_completed_drills(tmp_path: Path) -> None:
    service = WalkthroughService(_settings(tmp_path))
    try:
        first = await service.open_practice("sam", "B")
        order = first.drill(DrillKind.ORDER_STEPS)
        assert isinstance(order, OrderStepsDrill)
        await first.submit(DrillKind.ORDER_STEPS, list(order.canonical))

        second = await service.open_practice(" sam ", "class-b")
        assert second.drill(DrillKind.ORDER_STEPS).is_complete() is True
        assert second.drill(DrillKind.FILL_CLOZE).is_complete() is False
        assert second.progress.completed_kinds() == [DrillKind.ORDER_STEPS]

        records = service.list_progress("sam")
        assert [(record.script_id, record.completed_count()) for record in records] == [("walkthrough-class-b", 1)]
    finally:
        service.close()


@pytest.mark.asyncio
async def test_org_override_is_practiced_instead_of_default(tmp_path: Path) -> None:
    repository = InMemoryScriptRepository(
        defaults={"class-a": {"id": "default-a", "sections": [{"section": "Cab", "steps": [{"script": "Default."}]}]}},
        org_scripts={
            ("acme", "class-a"): {
                "id": "acme-a",
                "sections": [{"section": "Acme", "critical": True, "steps": [{"script": "Acme step."}]}],
            }
        },
    )
    service = WalkthroughService(_settings(tmp_path), repository=repository, store=ProgressStore(":memory:"))
    try:
        session = await service.open_practice("sam", "A", "acme")
        assert session.resolved.is_custom is True
        assert session.script.id == "acme-a"
        phrase = session.drill(DrillKind.TYPE_PHRASE)
        assert isinstance(phrase, TypePhraseDrill)
        assert phrase.phrase == "Acme step."
    finally:
        service.close()


@pytest.mark.asyncio
async def test_phrase_mode_comes_from_settings(tmp_path: Path) -> None:
    service = WalkthroughService(_settings(tmp_path, type_phrase_mode="lenient"))
    try:
        session = await service.open_practice("sam", "PASSENGER-BUS")
        phrase = session.drill(DrillKind.TYPE_PHRASE)
        assert isinstance(phrase, TypePhraseDrill)
        assert phrase.mode is PhraseMode.LENIENT
    finally:
        service.close()


@pytest.mark.asyncio
async def test_missing_script_and_blank_learner(tmp_path: Path) -> None:
    service = WalkthroughService(_settings(tmp_path))
    try:
        with pytest.raises(ScriptNotFound):
            await service.open_practice("sam", "TANKER")
        with pytest.raises(ValueError):
            await service.open_practice("  ", "A")
    finally:
        service.close()


class _ReadOnlyStore(ProgressStore):
    async def write_completion(self, learner_id: str, script_id: str, kind: DrillKind, at: datetime) -> None:
        raise sqlite3.OperationalError("attempt to write a readonly database")

    async def write_mastery(self, learner_id: str, script_id: str, at: datetime) -> None:
        raise sqlite3.OperationalError("attempt to write a readonly database")


@pytest.mark.asyncio
async def test_save_failures_surface_as_warnings(tmp_path: Path) -> None:
    service = WalkthroughService(_settings(tmp_path), store=_ReadOnlyStore(":memory:"))
    try:
        session = await service.open_practice("sam", "A")
        events: list[MasteredEvent] = []
        session.subscribe(events.append)
        await _complete_all(session)

        assert session.is_mastered() is True
        assert len(events) == 1
        assert len(session.warnings) == 5
        assert all(isinstance(item, PersistenceFailed) for item in session.warnings)
        assert service.list_progress("sam") == []
    finally:
        service.close()
