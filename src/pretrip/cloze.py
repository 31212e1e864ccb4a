"""Turn step text into fill-in-the-blank templates."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .models import Step

QUANTITY_PATTERN = re.compile(
    r"\b\d+(?:\.\d+)?\s?(?:(?:psi|seconds|sec|minutes|inches|inch|ft|in)\b|°)",
    re.IGNORECASE,
)
DOMAIN_PHRASES = (
    "engine off",
    "key on",
    "parking brake",
    "service brake",
    "spring brake",
    "low air",
)


@dataclass(frozen=True)
class Literal:
    """Plain text run inside a cloze template."""

    text: str


@dataclass(frozen=True)
class Blank:
    """Placeholder for the answer at ``index``."""

    index: int


Segment = Literal | Blank


@dataclass(frozen=True)
class ClozeTemplate:
    """Segments of one line plus the answer for each blank."""

    segments: tuple[Segment, ...]
    answers: tuple[str, ...]

    @property
    def has_blanks(self) -> bool:
        return bool(self.answers)

    def fill(self, entries: Sequence[str]) -> str:
        """Substitute entries into the blanks, in blank order."""
        if len(entries) != len(self.answers):
            raise ValueError(f"Expected {len(self.answers)} entries, got {len(entries)}.")
        parts = [item.text if isinstance(item, Literal) else entries[item.index] for item in self.segments]
        return "".join(parts)

    def masked(self, placeholder: str = "____") -> str:
        """Render the line with every blank replaced by a placeholder."""
        return self.fill([placeholder] * len(self.answers))


def build_pattern(tokens: Iterable[str]) -> re.Pattern[str] | None:
    """Compile one case-insensitive alternation over the tokens.

    Alternatives are tried longest first so that, at the leftmost match
    position, the longest token wins. A match may not start or end inside a
    word.
    """
    unique = _dedupe(token.strip() for token in tokens if token and token.strip())
    if not unique:
        return None
    alternatives = sorted(unique, key=len, reverse=True)
    body = "|".join(re.escape(token) for token in alternatives)
    return re.compile(rf"(?<!\w)(?:{body})(?!\w)", re.IGNORECASE)


def build_blanks(text: str, tokens: Iterable[str]) -> ClozeTemplate:
    """Replace every non-overlapping token match in ``text`` with a blank.

    Zero matches is a valid outcome: the template then holds the original text
    as a single literal and no answers.
    """
    plain = ClozeTemplate(segments=(Literal(text),) if text else (), answers=())
    pattern = build_pattern(tokens)
    if pattern is None or not text:
        return plain

    segments: list[Segment] = []
    answers: list[str] = []
    cursor = 0
    for match in pattern.finditer(text):
        if match.start() > cursor:
            segments.append(Literal(text[cursor : match.start()]))
        segments.append(Blank(len(answers)))
        answers.append(match.group(0))
        cursor = match.end()

    if not answers:
        return plain
    if cursor < len(text):
        segments.append(Literal(text[cursor:]))
    return ClozeTemplate(segments=tuple(segments), answers=tuple(answers))


def auto_tokens(text: str) -> list[str]:
    """Suggest blankable tokens for a step that defines none.

    Picks number-plus-unit quantities first, then a fixed set of brake and
    engine-state phrases. Best effort: an empty list is a normal result.
    """
    if not text:
        return []
    found = [match.group(0) for match in QUANTITY_PATTERN.finditer(text)]
    for phrase in DOMAIN_PHRASES:
        match = re.search(rf"\b{re.escape(phrase)}\b", text, re.IGNORECASE)
        if match:
            found.append(match.group(0))
    return _dedupe(found)


def step_tokens(step: Step) -> list[str]:
    """Return explicit step tokens, or derived ones when the step has none."""
    if step.tokens:
        return list(step.tokens)
    return auto_tokens(step.text)


def build_step_blanks(step: Step) -> ClozeTemplate:
    return build_blanks(step.text, step_tokens(step))


def normalize_answer(value: str) -> str:
    return str(value).strip().casefold()


def answers_match(entries: Sequence[str], answers: Sequence[str]) -> bool:
    """Exact match per blank after trim + casefold; no partial credit."""
    if len(entries) != len(answers):
        return False
    return all(normalize_answer(entry) == normalize_answer(answer) for entry, answer in zip(entries, answers))


def _dedupe(values: Iterable[str]) -> list[str]:
    """Drop case-insensitive duplicates, keeping first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        key = value.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(value)
    return out
