"""Core domain models for walkthrough scripts and drill progress."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class DrillKind(StrEnum):
    """The four memorization drills, in canonical order."""

    FILL_CLOZE = "fillCloze"
    ORDER_STEPS = "orderSteps"
    TYPE_PHRASE = "typePhrase"
    VISUAL_RECALL = "visualRecall"


@dataclass(frozen=True)
class RecallPrompt:
    """Short-answer question shown next to an optional image."""

    question: str
    answers: tuple[str, ...]
    image: str | None = None


@dataclass(frozen=True)
class Step:
    """One spoken or performed inspection action."""

    id: str
    text: str
    label: str | None = None
    must_say: bool = False
    pass_fail: bool = False
    tokens: tuple[str, ...] | None = None
    recall: RecallPrompt | None = None


@dataclass(frozen=True)
class Section:
    """Named grouping of steps."""

    title: str
    steps: tuple[Step, ...]
    critical: bool = False


@dataclass(frozen=True)
class Script:
    """Full ordered inspection walkthrough for one class code."""

    id: str
    class_code: str
    label: str
    sections: tuple[Section, ...]
    version: int = 1

    def steps(self) -> list[Step]:
        """Return every step in canonical order."""
        return [step for section in self.sections for step in section.steps]

    def is_empty(self) -> bool:
        """Return whether the script has no steps at all."""
        return not any(section.steps for section in self.sections)


@dataclass(frozen=True)
class Verdict:
    """Result of one drill submission."""

    correct: bool
    message: str
    completed_now: bool = False


@dataclass(frozen=True)
class MasteredEvent:
    """Emitted once when a learner completes all four drills for a script."""

    learner_id: str
    script_id: str
    mastered_at: datetime


@dataclass
class ProgressRecord:
    """Per-learner, per-script drill completion state."""

    learner_id: str
    script_id: str
    completed_at: dict[DrillKind, datetime] = field(default_factory=dict)
    mastered_at: datetime | None = None

    def is_complete(self, kind: DrillKind) -> bool:
        return kind in self.completed_at

    def completed_kinds(self) -> list[DrillKind]:
        return [kind for kind in DrillKind if kind in self.completed_at]

    def completed_count(self) -> int:
        return len(self.completed_kinds())

    def all_complete(self) -> bool:
        return all(kind in self.completed_at for kind in DrillKind)

    def as_flags(self) -> dict[DrillKind, bool]:
        """Return completion as a kind -> bool mapping covering every kind."""
        return {kind: kind in self.completed_at for kind in DrillKind}
