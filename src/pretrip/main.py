"""CLI entrypoint for pre-trip walkthrough practice."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Callable
from typing import Any

from .drills import FillClozeDrill, OrderStepsDrill, PhraseMode, TypePhraseDrill, VisualRecallDrill
from .errors import PersistenceFailed, ResolutionFailed, ScriptNotFound, ScriptValidationError
from .logsetup import configure_logging
from .models import DrillKind, MasteredEvent, Script, Verdict
from .service import PracticeSession, WalkthroughService
from .settings import Settings

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
BACK_COMMANDS = {":back", ":b", "back"}
MENU_QUIT_COMMANDS = {"q"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}
MENU_BACK_COMMANDS = {"b"}

DRILL_TITLES = {
    DrillKind.FILL_CLOZE: "Fill in the blanks",
    DrillKind.ORDER_STEPS: "Put the steps in order",
    DrillKind.TYPE_PHRASE: "Type the pass/fail phrase",
    DrillKind.VISUAL_RECALL: "Visual recall",
}
NOT_FOUND_MESSAGE = "No walkthrough is available for that class yet. Pick another class or contact your instructor."
RETRY_MESSAGE = "Could not load the walkthrough right now. Please try again in a moment."
PROGRESS_RETRY_MESSAGE = "Could not load your saved progress right now. Please try again in a moment."
INVALID_SCRIPT_MESSAGE = "This walkthrough could not be loaded. Please contact your instructor."
SAVE_WARNING = "Your progress could not be saved yet. It is kept for this session."
MASTERED_MESSAGE = "All four drills complete. Walkthrough mastered!"


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _service() -> WalkthroughService:
    """Create app service from environment settings."""
    return WalkthroughService(Settings())


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="pretrip", description="CDL pre-trip walkthrough practice")
    parser.add_argument("command", nargs="?", default="practice", choices=["practice"])
    parser.add_argument("--learner", default=None, help="learner id; prompted when omitted")
    args = parser.parse_args(argv)
    configure_logging(Settings().log_level)
    return play_shell(learner_id=args.learner)


def play_shell(
    input_fn: InputFn = input,
    print_fn: PrintFn = print,
    *,
    learner_id: str | None = None,
    service: WalkthroughService | None = None,
) -> int:
    """Run persistent menu-driven shell."""
    service = service or _service()
    try:
        learner = (learner_id or "").strip() or _select_learner(input_fn, print_fn)
        if learner is None:
            return 0
        try:
            while True:
                print_fn("\n=== Pre-Trip Walkthrough ===")
                print_fn(f"Learner: {learner}")
                print_fn("1) Practice a walkthrough")
                print_fn("2) Progress")
                print_fn("b) Switch learner")
                print_fn("q) Quit")
                choice = input_fn("Choose: ").strip().lower()

                if choice == "1":
                    _practice_flow(service, learner, input_fn, print_fn)
                elif choice == "2":
                    _status_flow(service, learner, print_fn)
                elif choice in MENU_BACK_COMMANDS:
                    switched = _select_learner(input_fn, print_fn)
                    if switched is None:
                        return 0
                    learner = switched
                elif choice in MENU_QUIT_COMMANDS:
                    return 0
                else:
                    print_fn("Invalid choice.")
        except QuitApp:
            return 0
    finally:
        service.close()


def _select_learner(input_fn: InputFn, print_fn: PrintFn) -> str | None:
    """Ask for a learner id until one is given."""
    while True:
        print_fn("\n=== Learner ===")
        value = input_fn("Learner id (q to quit): ").strip()
        if value.lower() in MENU_QUIT_COMMANDS:
            return None
        if value:
            return value
        print_fn("Learner id is required.")


def _status_flow(service: WalkthroughService, learner_id: str, print_fn: PrintFn) -> None:
    """Print saved progress per script."""
    print_fn("\n=== Walkthrough Progress ===")
    records = service.list_progress(learner_id)
    if not records:
        print_fn("No progress saved yet.")
        return
    rows = [
        (
            record.script_id,
            f"{record.completed_count()}/4",
            "mastered" if record.mastered_at is not None or record.all_complete() else "in progress",
        )
        for record in records
    ]
    script_width = max(len("Script"), max(len(row[0]) for row in rows))
    drills_width = len("Drills")
    header = f"{'Script':<{script_width}} {'Drills':>{drills_width}} Status"
    print_fn(header)
    print_fn("-" * len(header))
    for script_id, drills, status in rows:
        print_fn(f"{script_id:<{script_width}} {drills:>{drills_width}} {status}")


def _practice_flow(service: WalkthroughService, learner_id: str, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Resolve a walkthrough for the learner and host its drills."""
    print_fn("\n=== Practice ===")
    class_code = input_fn("Class code (e.g. A, B, PASSENGER-BUS): ").strip()
    lowered = class_code.lower()
    if lowered in MENU_BACK_COMMANDS or lowered in BACK_COMMANDS:
        return
    if lowered in MENU_QUIT_COMMANDS or lowered in FLOW_EXIT_COMMANDS:
        raise QuitApp()
    org_id = input_fn("School/organization id (blank = none): ").strip()
    if _is_exit(org_id):
        if org_id.lower() in FLOW_EXIT_COMMANDS:
            raise QuitApp()
        return

    try:
        session = asyncio.run(service.open_practice(learner_id, class_code, org_id or None))
    except ScriptNotFound:
        print_fn(NOT_FOUND_MESSAGE)
        return
    except ResolutionFailed:
        print_fn(RETRY_MESSAGE)
        return
    except ScriptValidationError:
        print_fn(INVALID_SCRIPT_MESSAGE)
        return
    except PersistenceFailed:
        print_fn(PROGRESS_RETRY_MESSAGE)
        return

    mastered: list[MasteredEvent] = []
    session.subscribe(mastered.append)
    _render_script(session, print_fn)
    _session_flow(session, mastered, input_fn, print_fn)


def _render_script(session: PracticeSession, print_fn: PrintFn) -> None:
    """Print the full script with critical, must-say, and pass/fail markers."""
    script: Script = session.script
    print_fn(f"\n=== {script.label} Walkthrough ===")
    if session.resolved.is_custom:
        print_fn("Your school's version of this walkthrough.")
    for section in script.sections:
        marker = " [CRITICAL]" if section.critical else ""
        print_fn(f"\n{section.title}{marker}")
        for step in section.steps:
            tags = []
            if step.must_say:
                tags.append("[MUST SAY]")
            if step.pass_fail:
                tags.append("[PASS/FAIL]")
            label = f"{step.label}: " if step.label else ""
            suffix = f" {' '.join(tags)}" if tags else ""
            print_fn(f"- {label}{step.text}{suffix}")


def _session_flow(
    session: PracticeSession,
    mastered: list[MasteredEvent],
    input_fn: InputFn,
    print_fn: PrintFn,
) -> None:
    """Drill menu for one practice session."""
    kinds = list(DrillKind)
    while True:
        print_fn(f"\n{session.completed_count()}/4 drills completed")
        for idx, kind in enumerate(kinds, start=1):
            mark = "x" if session.drill(kind).is_complete() else " "
            print_fn(f"{idx}) [{mark}] {DRILL_TITLES[kind]}")
        print_fn("s) Show script")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = input_fn("Choose drill: ").strip().lower()
        if choice in MENU_BACK_COMMANDS:
            return
        if choice in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if choice == "s":
            _render_script(session, print_fn)
            continue
        if not choice.isdigit() or not (1 <= int(choice) <= len(kinds)):
            print_fn("Invalid choice.")
            continue

        kind = kinds[int(choice) - 1]
        drill = session.drill(kind)
        if drill.is_complete():
            print_fn("This drill is already complete.")
            continue
        print_fn(f"\n=== {DRILL_TITLES[kind]} ===")
        print_fn("Type :b or :q to leave the drill.")
        if isinstance(drill, FillClozeDrill):
            _fill_cloze_flow(session, drill, input_fn, print_fn)
        elif isinstance(drill, OrderStepsDrill):
            _order_steps_flow(session, drill, input_fn, print_fn)
        elif isinstance(drill, TypePhraseDrill):
            _type_phrase_flow(session, drill, input_fn, print_fn)
        elif isinstance(drill, VisualRecallDrill):
            _visual_recall_flow(session, drill, input_fn, print_fn)

        if mastered:
            print_fn(MASTERED_MESSAGE)
            mastered.clear()


def _is_exit(value: str) -> bool:
    lowered = value.strip().lower()
    return lowered in BACK_COMMANDS or lowered in FLOW_EXIT_COMMANDS


def _submit(session: PracticeSession, kind: DrillKind, attempt: Any, print_fn: PrintFn) -> Verdict:
    """Submit one attempt and report the verdict plus any save warning."""
    before = len(session.warnings)
    verdict = asyncio.run(session.submit(kind, attempt))
    print_fn(verdict.message)
    if len(session.warnings) > before:
        print_fn(SAVE_WARNING)
    return verdict


def _fill_cloze_flow(session: PracticeSession, drill: FillClozeDrill, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Ask for every blank in order, then grade all of them together."""
    if drill.blank_count == 0:
        for template in drill.templates:
            print_fn(f"- {template.masked()}")
        if _is_exit(input_fn("Press Enter once you have reviewed these lines: ")):
            return
        _submit(session, drill.kind, [], print_fn)
        return

    while True:
        number = 0
        for template in drill.templates:
            labels = [f"[{number + offset + 1}]" for offset in range(len(template.answers))]
            number += len(labels)
            print_fn(f"- {template.fill(labels)}")
        entries: list[str] = []
        for index in range(1, drill.blank_count + 1):
            value = input_fn(f"Blank {index}: ").strip()
            if _is_exit(value):
                return
            entries.append(value)
        if _submit(session, drill.kind, entries, print_fn).correct:
            return


def _order_steps_flow(session: PracticeSession, drill: OrderStepsDrill, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Rearrange the shuffled steps with move commands, then check."""
    print_fn("Commands: u N (up), d N (down), m FROM TO (move), r (reshuffle), c (check)")
    while True:
        for idx, text in enumerate(drill.order, start=1):
            print_fn(f"{idx}) {text}")
        raw = input_fn("Order command: ").strip()
        if _is_exit(raw):
            return
        parts = raw.lower().split()
        try:
            if parts == ["c"]:
                if _submit(session, drill.kind, None, print_fn).correct:
                    return
                continue
            if parts == ["r"]:
                drill.reshuffle()
                continue
            if len(parts) == 2 and parts[0] in {"u", "d"} and parts[1].isdigit():
                drill.move(int(parts[1]) - 1, -1 if parts[0] == "u" else 1)
                continue
            if len(parts) == 3 and parts[0] == "m" and parts[1].isdigit() and parts[2].isdigit():
                drill.move_to(int(parts[1]) - 1, int(parts[2]) - 1)
                continue
        except IndexError:
            print_fn("No step at that position.")
            continue
        print_fn("Invalid command.")


def _type_phrase_flow(session: PracticeSession, drill: TypePhraseDrill, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Type the target phrase word for word."""
    hint = f"Hint: {drill.phrase}"
    if drill.mode is PhraseMode.LENIENT:
        hint += " (punctuation ignored)"
    print_fn(hint)
    while True:
        value = input_fn("Type the phrase: ")
        if _is_exit(value):
            return
        if _submit(session, drill.kind, value, print_fn).correct:
            return


def _visual_recall_flow(
    session: PracticeSession,
    drill: VisualRecallDrill,
    input_fn: InputFn,
    print_fn: PrintFn,
) -> None:
    """Answer a short recall question."""
    if drill.image:
        print_fn(f"Image: {drill.image}")
    print_fn(drill.question)
    while True:
        value = input_fn("Answer: ")
        if _is_exit(value):
            return
        if _submit(session, drill.kind, value, print_fn).correct:
            return


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
