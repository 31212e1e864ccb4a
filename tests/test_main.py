import sqlite3
from collections.abc import Callable
from datetime import datetime

import pretrip.main as main
from pretrip.models import DrillKind
from pretrip.progress import ProgressStore
from pretrip.resolver import InMemoryScriptRepository
from pretrip.service import WalkthroughService
from pretrip.settings import Settings

OIL_SCRIPT = {
    "id": "walkthrough-oil",
    "label": "Oil Check",
    "sections": [
        {"section": "Walk-Around", "steps": [{"id": "walk", "script": "Walk around the truck."}]},
        {
            "section": "Engine Compartment",
            "critical": True,
            "steps": [
                {
                    "id": "oil",
                    "label": "Oil",
                    "script": "Check engine oil level, must be between 20 and 45 PSI",
                    "mustSay": True,
                    "passFail": True,
                    "tokens": ["engine", "20", "45"],
                    "recall": {"question": "What is the upper limit?", "answers": ["45"]},
                }
            ],
        },
    ],
}


class DummyService:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def list_progress(self, learner_id: str) -> list[object]:
        return []


def _inputs(values: list[str]) -> Callable[[str], str]:
    iterator = iter(values)
    return lambda _prompt: next(iterator)


def _service(store: ProgressStore | None = None, repository: object | None = None) -> WalkthroughService:
    return WalkthroughService(
        Settings(db_path=":memory:"),
        repository=repository or InMemoryScriptRepository(defaults={"class-a": OIL_SCRIPT}),
        store=store or ProgressStore(":memory:"),
    )


def test_quit_at_learner_prompt_closes_service() -> None:
    service = DummyService()
    output: list[str] = []
    code = main.play_shell(_inputs(["q"]), output.append, service=service)  # type: ignore[arg-type]
    assert code == 0
    assert service.closed is True


def test_learner_is_required_and_status_shows_empty_progress() -> None:
    service = DummyService()
    output: list[str] = []
    code = main.play_shell(_inputs(["", "sam", "2", "x", "q"]), output.append, service=service)  # type: ignore[arg-type]
    assert code == 0
    assert "Learner id is required." in output
    assert "No progress saved yet." in output
    assert "Invalid choice." in output


def test_full_practice_session_reaches_mastery() -> None:
    service = _service()
    output: list[str] = []
    inputs = [
        "1",
        "A",
        "",
        "1",
        "motor",
        "20",
        "45",
        "Engine",
        "20",
        "45",
        "2",
        "c",
        "3",
        "check engine oil level, must be between 20 and 45 psi",
        "4",
        "I think 45",
        "1",
        "b",
        "q",
    ]
    code = main.play_shell(_inputs(inputs), output.append, learner_id="sam", service=service)
    assert code == 0

    assert "\nEngine Compartment [CRITICAL]" in output
    assert "- Oil: Check engine oil level, must be between 20 and 45 PSI [MUST SAY] [PASS/FAIL]" in output
    assert "- Check [1] oil level, must be between [2] and [3] PSI" in output
    assert "Not quite. Try again!" in output
    assert "Correct order!" in output
    assert "Perfect! You memorized it." in output
    assert output.count(main.MASTERED_MESSAGE) == 1
    assert "4/4 drills completed" in output
    assert "This drill is already complete." in output


def test_practice_progress_is_listed_after_session() -> None:
    store = ProgressStore(":memory:")
    service = _service(store=store)
    output: list[str] = []
    inputs = ["1", "A", "", "2", "c", "b", "2", "q"]
    main.play_shell(_inputs(inputs), output.append, learner_id="sam", service=service)
    assert "1/4 drills completed" in output
    assert any(line.startswith("walkthrough-oil") and "in progress" in line for line in output)


def test_unknown_class_shows_non_blaming_message() -> None:
    output: list[str] = []
    main.play_shell(_inputs(["1", "TANKER", "", "q"]), output.append, learner_id="sam", service=_service())
    assert main.NOT_FOUND_MESSAGE in output


class _OfflineRepository:
    async def fetch_org_script(self, org_id: str, class_token: str) -> None:
        raise ConnectionError("offline")

    async def fetch_default_script(self, class_token: str) -> None:
        raise ConnectionError("offline")


def test_repository_failure_asks_to_retry() -> None:
    output: list[str] = []
    service = _service(repository=_OfflineRepository())
    main.play_shell(_inputs(["1", "A", "acme", "q"]), output.append, learner_id="sam", service=service)
    assert main.RETRY_MESSAGE in output


class _ReadOnlyStore(ProgressStore):
    async def write_completion(self, learner_id: str, script_id: str, kind: DrillKind, at: datetime) -> None:
        raise sqlite3.OperationalError("attempt to write a readonly database")


def test_save_failure_shows_warning_but_keeps_completion() -> None:
    output: list[str] = []
    service = _service(store=_ReadOnlyStore(":memory:"))
    inputs = ["1", "A", "", "2", "c", "b", "q"]
    main.play_shell(_inputs(inputs), output.append, learner_id="sam", service=service)
    assert main.SAVE_WARNING in output
    assert "1/4 drills completed" in output


def test_drill_can_be_left_with_exit_command() -> None:
    output: list[str] = []
    inputs = ["1", "A", "", "1", ":b", "3", ":q", "q"]
    main.play_shell(_inputs(inputs), output.append, learner_id="sam", service=_service())
    assert "0/4 drills completed" in output
    assert "Hint: Check engine oil level, must be between 20 and 45 PSI" in output


def test_org_prompt_honours_back_and_quit() -> None:
    output: list[str] = []
    main.play_shell(_inputs(["1", "A", ":b", "q"]), output.append, learner_id="sam", service=_service())
    assert "\n=== Oil Check Walkthrough ===" not in output
    assert output.count("\n=== Practice ===") == 1

    output = []
    service = _service()
    code = main.play_shell(_inputs(["1", "A", ":q"]), output.append, learner_id="sam", service=service)
    assert code == 0
    assert "\n=== Oil Check Walkthrough ===" not in output


def test_run_parses_learner_flag(monkeypatch) -> None:
    captured: dict[str, object] = {}
    monkeypatch.setattr(main, "configure_logging", lambda level: captured.__setitem__("level", level))
    monkeypatch.setattr(main, "play_shell", lambda **kwargs: captured.update(kwargs) or 0)
    monkeypatch.setenv("PRETRIP_LOG_LEVEL", "DEBUG")
    assert main.run(["practice", "--learner", "sam"]) == 0
    assert captured == {"level": "DEBUG", "learner_id": "sam"}
