"""Interactive memorization drills over a resolved walkthrough script.

Every drill shares one state machine: a submission either completes the drill
or leaves it open for another attempt. Completion is monotonic. Once a drill
is complete, further submissions are no-ops and attempts to change its answer
state raise ``DrillCompleteError``.
"""

from __future__ import annotations

import random
import re
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Iterable, Sequence
from enum import StrEnum
from typing import Any

from .cloze import ClozeTemplate, answers_match, build_step_blanks, normalize_answer
from .errors import DrillCompleteError
from .logsetup import DOMAIN_DRILLS, get_domain_logger
from .models import DrillKind, RecallPrompt, Script, Section, Step, Verdict

logger = get_domain_logger(__name__, DOMAIN_DRILLS)

ALREADY_COMPLETE_MESSAGE = "Already complete."
FALLBACK_RECALL = RecallPrompt(question="At what PSI should the low air warning activate?", answers=("60",))


class PhraseMode(StrEnum):
    """Comparison mode for the typing drill."""

    STRICT = "strict"
    LENIENT = "lenient"


class Drill(ABC):
    """Base drill: grade a submission, complete on the first correct one."""

    kind: DrillKind
    success_message = "Correct!"
    retry_message = "Not quite. Try again!"

    def __init__(self, *, completed: bool = False) -> None:
        self._complete = completed

    def is_complete(self) -> bool:
        return self._complete

    def submit(self, attempt: Any = None) -> Verdict:
        """Grade one attempt and return a verdict."""
        if self._complete:
            return Verdict(correct=True, message=ALREADY_COMPLETE_MESSAGE)
        correct = self._grade(attempt)
        logger.debug("Graded %s attempt: correct=%s", self.kind, correct)
        if not correct:
            return Verdict(correct=False, message=self.retry_message)
        self._complete = True
        return Verdict(correct=True, message=self.success_message, completed_now=True)

    def _ensure_open(self) -> None:
        if self._complete:
            raise DrillCompleteError(f"The {self.kind} drill is already complete.")

    @abstractmethod
    def _grade(self, attempt: Any) -> bool:
        """Return whether the attempt is fully correct."""


class FillClozeDrill(Drill):
    """Fill every blank across all supplied steps.

    Steps whose text has no blankable tokens are shown as plain, ungraded
    lines. The attempt is a flat sequence of entries in blank order across all
    graded lines.
    """

    kind = DrillKind.FILL_CLOZE

    def __init__(self, steps: Sequence[Step], *, completed: bool = False) -> None:
        super().__init__(completed=completed)
        self.steps = tuple(steps)
        self.templates: tuple[ClozeTemplate, ...] = tuple(build_step_blanks(step) for step in self.steps)

    @property
    def answers(self) -> list[str]:
        return [answer for template in self.templates for answer in template.answers]

    @property
    def blank_count(self) -> int:
        return len(self.answers)

    def _grade(self, attempt: Any) -> bool:
        answers = self.answers
        if not answers:
            # Nothing to fill in: the lines are review-only.
            return True
        if isinstance(attempt, str):
            entries = [attempt]
        else:
            entries = [str(item) for item in attempt or []]
        return answers_match(entries, answers)


class OrderStepsDrill(Drill):
    """Rearrange a shuffled working copy back into canonical order."""

    kind = DrillKind.ORDER_STEPS
    success_message = "Correct order!"

    def __init__(
        self,
        steps: Sequence[str],
        *,
        rng: random.Random | None = None,
        completed: bool = False,
    ) -> None:
        super().__init__(completed=completed)
        self.canonical = tuple(steps)
        self._rng = rng or random.Random()
        self._order = self.canonical if completed else self._shuffled()

    @property
    def order(self) -> tuple[str, ...]:
        return self._order

    def move(self, index: int, offset: int) -> tuple[str, ...]:
        """Swap the item at ``index`` with its neighbour at ``index + offset``.

        ``offset`` must be -1 or 1. Moving past either end is a no-op.
        """
        self._ensure_open()
        if offset not in (-1, 1):
            raise ValueError("Offset must be -1 or 1.")
        self._check_index(index)
        target = index + offset
        if not (0 <= target < len(self._order)):
            return self._order
        items = list(self._order)
        items[index], items[target] = items[target], items[index]
        self._order = tuple(items)
        return self._order

    def move_to(self, source: int, target: int) -> tuple[str, ...]:
        """Remove the item at ``source`` and reinsert it at ``target``."""
        self._ensure_open()
        self._check_index(source)
        self._check_index(target)
        items = list(self._order)
        moved = items.pop(source)
        items.insert(target, moved)
        self._order = tuple(items)
        return self._order

    def reshuffle(self) -> tuple[str, ...]:
        """Draw a new permutation that differs from the current one when possible."""
        self._ensure_open()
        previous = self._order
        candidate = self._shuffled()
        if len(set(self.canonical)) > 1:
            while candidate == previous:
                candidate = self._shuffled()
        self._order = candidate
        return self._order

    def _shuffled(self) -> tuple[str, ...]:
        items = list(self.canonical)
        self._rng.shuffle(items)
        return tuple(items)

    def _check_index(self, index: int) -> None:
        if not (0 <= index < len(self._order)):
            raise IndexError(f"Step position {index} is out of range.")

    def _grade(self, attempt: Any) -> bool:
        if attempt is not None:
            proposed = tuple(str(item) for item in attempt)
            if Counter(proposed) != Counter(self.canonical):
                raise ValueError("Submitted order must contain exactly the drill's steps.")
            self._order = proposed
        return self._order == self.canonical


_PUNCTUATION = re.compile(r"[^\w\s]|_")


def normalize_phrase(value: str, mode: PhraseMode = PhraseMode.STRICT) -> str:
    """Casefold and collapse whitespace; lenient mode also drops punctuation."""
    text = str(value).casefold()
    if mode is PhraseMode.LENIENT:
        text = _PUNCTUATION.sub("", text)
    return " ".join(text.split())


class TypePhraseDrill(Drill):
    """Type one target phrase word for word."""

    kind = DrillKind.TYPE_PHRASE
    success_message = "Perfect! You memorized it."
    retry_message = "Not quite right. Try again!"

    def __init__(
        self,
        phrase: str,
        *,
        mode: PhraseMode | str = PhraseMode.STRICT,
        completed: bool = False,
    ) -> None:
        super().__init__(completed=completed)
        if not str(phrase or "").strip():
            raise ValueError("Typing drill needs a non-empty phrase.")
        self.phrase = phrase
        self.mode = PhraseMode(mode)

    def _grade(self, attempt: Any) -> bool:
        return normalize_phrase(str(attempt or ""), self.mode) == normalize_phrase(self.phrase, self.mode)


class VisualRecallDrill(Drill):
    """Answer a short question; any accepted answer contained in the entry passes."""

    kind = DrillKind.VISUAL_RECALL

    def __init__(
        self,
        question: str,
        answers: str | Iterable[str],
        *,
        image: str | None = None,
        completed: bool = False,
    ) -> None:
        super().__init__(completed=completed)
        values = [answers] if isinstance(answers, str) else list(answers)
        self.answers = tuple(str(item) for item in values if str(item).strip())
        if not self.answers:
            raise ValueError("Visual recall drill needs at least one accepted answer.")
        self.question = question
        self.image = image

    def _grade(self, attempt: Any) -> bool:
        entry = normalize_answer(str(attempt or ""))
        return any(normalize_answer(answer) in entry for answer in self.answers)


def focus_section(script: Script) -> Section | None:
    """Return the first critical section with steps, else the first with steps."""
    candidates = [section for section in script.sections if section.steps]
    for section in candidates:
        if section.critical:
            return section
    return candidates[0] if candidates else None


def _recall_prompt(script: Script, section: Section) -> RecallPrompt:
    for step in list(section.steps) + script.steps():
        if step.recall is not None:
            return step.recall
    return FALLBACK_RECALL


def build_drills(
    script: Script,
    *,
    completed: Iterable[DrillKind] = (),
    mode: PhraseMode | str = PhraseMode.STRICT,
    rng: random.Random | None = None,
) -> dict[DrillKind, Drill]:
    """Build the four drills over the script's focus section."""
    section = focus_section(script)
    if section is None:
        raise ValueError(f"Walkthrough '{script.id}' has no steps to practice.")
    done = set(completed)
    steps = list(section.steps)
    phrase_step = next((step for step in steps if step.pass_fail), steps[0])
    recall = _recall_prompt(script, section)
    logger.debug("Building drills for %s from section '%s'", script.id, section.title)
    return {
        DrillKind.FILL_CLOZE: FillClozeDrill(steps, completed=DrillKind.FILL_CLOZE in done),
        DrillKind.ORDER_STEPS: OrderStepsDrill(
            [step.text for step in steps], rng=rng, completed=DrillKind.ORDER_STEPS in done
        ),
        DrillKind.TYPE_PHRASE: TypePhraseDrill(
            phrase_step.text, mode=mode, completed=DrillKind.TYPE_PHRASE in done
        ),
        DrillKind.VISUAL_RECALL: VisualRecallDrill(
            recall.question,
            recall.answers,
            image=recall.image,
            completed=DrillKind.VISUAL_RECALL in done,
        ),
    }
