"""Load walkthrough scripts from bundled JSON resources and raw payloads."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any

from .errors import ScriptValidationError
from .models import RecallPrompt, Script, Section, Step

CONTENT_PACKAGE = "pretrip.content.scripts"

CODE_TO_TOKEN = {
    "A": "class-a",
    "A-WO-AIR-ELEC": "class-a-wo-air-elec",
    "A-WO-HYD-ELEC": "class-a-wo-hyd-elec",
    "B": "class-b",
    "PASSENGER-BUS": "passenger-bus",
}

TOKEN_LABELS = {
    "class-a": "Class A (Full: Air/Hydraulic/Electric)",
    "class-a-wo-air-elec": "Class A (Without Air/Electric Lines)",
    "class-a-wo-hyd-elec": "Class A (Without Hydraulic/Electric Lines)",
    "class-b": "Class B",
    "passenger-bus": "Passenger Bus",
}

HUMAN_CLASS_REWRITES = (
    (re.compile(r"\bclass\s+([ab])\b"), r"class-\1"),
    (re.compile(r"\s+no\s+air(?:/|and)?electric"), "-wo-air-elec"),
    (re.compile(r"\s+no\s+hyd(?:/|and)?electric"), "-wo-hyd-elec"),
)
_NON_TOKEN_CHARS = re.compile(r"[^a-z0-9-]")


def normalize_class_code(code: str | None) -> str:
    """Map a CDL class code, token, or human class name to its canonical kebab-case token."""
    if code is None:
        return ""
    stripped = str(code).strip()
    as_code = "-".join(stripped.upper().replace("_", "-").split())
    if as_code in CODE_TO_TOKEN:
        return CODE_TO_TOKEN[as_code]
    text = stripped.lower()
    for pattern, replacement in HUMAN_CLASS_REWRITES:
        text = pattern.sub(replacement, text)
    return _NON_TOKEN_CHARS.sub("", "-".join(text.replace("_", "-").split()))


def class_label(code: str | None) -> str:
    """Return a human label for a class code, falling back to the raw value."""
    token = normalize_class_code(code)
    return TOKEN_LABELS.get(token, str(code or "").strip())


def script_from_dict(
    raw: Mapping[str, Any] | list[Any],
    *,
    class_code: str | None = None,
    script_id: str | None = None,
) -> Script:
    """Build a validated script from a raw payload.

    Accepts a dataset object with ``sections`` (preferred), the ``script``
    alias, a legacy flat ``steps`` list, or a bare list of sections. All
    structural problems are collected and raised together.
    """
    meta: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    token = normalize_class_code(class_code or meta.get("classCode") or meta.get("class_code"))
    name = str(script_id or meta.get("id") or token or "walkthrough")
    problems: list[str] = []

    raw_sections = _coerce_sections(raw)
    if raw_sections is None:
        raise ScriptValidationError(name, [f"{name} must contain a 'sections' list."])

    sections: list[Section] = []
    for s_idx, raw_section in enumerate(raw_sections):
        section = _section_from_dict(raw_section, f"{name}[{s_idx}]", s_idx + 1, problems)
        if section is not None:
            sections.append(section)

    _check_unique_step_ids(name, sections, problems)
    if problems:
        raise ScriptValidationError(name, problems)

    version = meta.get("version", 1)
    return Script(
        id=name,
        class_code=token,
        label=str(meta.get("label") or class_label(token) or name),
        sections=tuple(sections),
        version=int(version) if isinstance(version, int | str) and str(version).isdigit() else 1,
    )


def _coerce_sections(raw: Mapping[str, Any] | list[Any]) -> list[Any] | None:
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, Mapping):
        return None
    if isinstance(raw.get("sections"), list):
        return list(raw["sections"])
    if isinstance(raw.get("script"), list):
        return list(raw["script"])
    if isinstance(raw.get("steps"), list):
        return [{"section": "Custom", "steps": raw["steps"]}]
    return None


def _section_from_dict(raw: Any, path: str, position: int, problems: list[str]) -> Section | None:
    if not isinstance(raw, Mapping):
        problems.append(f"{path} must be an object.")
        return None

    title = raw.get("section", raw.get("title"))
    if not isinstance(title, str) or not title.strip():
        problems.append(f"{path}.section must be a non-empty string.")
        title = ""

    critical = False
    for flag in ("critical", "passFail"):
        value = raw.get(flag, False)
        if not isinstance(value, bool):
            problems.append(f"{path}.{flag} must be boolean when present.")
            continue
        critical = critical or value

    raw_steps = raw.get("steps")
    if not isinstance(raw_steps, list):
        problems.append(f"{path}.steps must be an array.")
        return None

    steps: list[Step] = []
    for st_idx, raw_step in enumerate(raw_steps):
        step = _step_from_dict(raw_step, f"{path}.steps[{st_idx}]", f"{position}.{st_idx + 1}", problems)
        if step is not None:
            steps.append(step)
    return Section(title=title.strip(), steps=tuple(steps), critical=critical)


def _step_from_dict(raw: Any, path: str, default_id: str, problems: list[str]) -> Step | None:
    if not isinstance(raw, Mapping):
        problems.append(f"{path} must be an object.")
        return None

    before = len(problems)
    text = raw.get("script", raw.get("text"))
    if not isinstance(text, str) or not text.strip():
        problems.append(f"{path}.script is required (string).")

    label = raw.get("label", raw.get("stepLabel"))
    if label is not None and not isinstance(label, str):
        problems.append(f"{path}.label must be a string when provided.")

    flags: dict[str, bool] = {}
    for flag in ("mustSay", "passFail"):
        value = raw.get(flag, False)
        if not isinstance(value, bool):
            problems.append(f"{path}.{flag} must be boolean when present.")
            value = False
        flags[flag] = value

    tokens = _tokens_from_raw(raw.get("tokens"), path, problems)
    recall = _recall_from_dict(raw, path, problems)

    step_id = raw.get("id")
    if step_id is not None and (not isinstance(step_id, str | int) or not str(step_id).strip()):
        problems.append(f"{path}.id must be a non-empty string when provided.")

    if len(problems) > before:
        return None
    return Step(
        id=str(step_id).strip() if step_id is not None else default_id,
        text=str(text).strip(),
        label=label.strip() if isinstance(label, str) and label.strip() else None,
        must_say=flags["mustSay"],
        pass_fail=flags["passFail"],
        tokens=tokens,
        recall=recall,
    )


def _tokens_from_raw(raw: Any, path: str, problems: list[str]) -> tuple[str, ...] | None:
    """Return explicit tokens, or None when they should be derived from text."""
    if raw is None:
        return None
    if not isinstance(raw, list):
        problems.append(f"{path}.tokens must be an array of strings when present.")
        return None
    tokens: list[str] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, str):
            problems.append(f"{path}.tokens[{idx}] must be a string.")
            continue
        if item.strip():
            tokens.append(item.strip())
    return tuple(tokens) if tokens else None


def _recall_from_dict(raw: Mapping[str, Any], path: str, problems: list[str]) -> RecallPrompt | None:
    recall = raw.get("recall")
    if recall is None:
        if raw.get("question") is None:
            return None
        media = raw.get("media")
        image = media.get("img") if isinstance(media, Mapping) else raw.get("mediaUrl")
        recall = {"question": raw.get("question"), "answers": raw.get("answers", raw.get("answer")), "image": image}

    if not isinstance(recall, Mapping):
        problems.append(f"{path}.recall must be an object when present.")
        return None

    question = recall.get("question")
    if not isinstance(question, str) or not question.strip():
        problems.append(f"{path}.recall.question is required (string).")
        return None

    raw_answers = recall.get("answers", recall.get("answer"))
    if isinstance(raw_answers, str | int | float):
        raw_answers = [raw_answers]
    if not isinstance(raw_answers, list):
        raw_answers = []
    answers = [str(item).strip() for item in raw_answers if str(item).strip()]
    if not answers:
        problems.append(f"{path}.recall needs at least one accepted answer.")
        return None

    image = recall.get("image")
    if image is not None and not isinstance(image, str):
        problems.append(f"{path}.recall.image must be a string when present.")
        return None
    return RecallPrompt(question=question.strip(), answers=tuple(answers), image=image or None)


def _check_unique_step_ids(name: str, sections: list[Section], problems: list[str]) -> None:
    """Step ids must be unique within one script."""
    seen: set[str] = set()
    for section in sections:
        for step in section.steps:
            if step.id in seen:
                problems.append(f"{name} has duplicate step id '{step.id}'.")
            seen.add(step.id)


def read_default_payloads() -> dict[str, dict[str, Any]]:
    """Read bundled default payloads keyed by class token."""
    payloads: dict[str, dict[str, Any]] = {}
    for entry in resources.files(CONTENT_PACKAGE).iterdir():
        if entry.name.endswith(".json"):
            raw = json.loads(entry.read_text(encoding="utf-8-sig"))
            _add_payload(payloads, raw, entry.name)
    return payloads


def load_default_scripts() -> dict[str, Script]:
    """Load and validate bundled default scripts keyed by class token."""
    return {token: script_from_dict(raw, class_code=token) for token, raw in read_default_payloads().items()}


def load_scripts_from_dir(path: Path) -> dict[str, Script]:
    """Load scripts from a directory for tests/tools."""
    payloads: dict[str, dict[str, Any]] = {}
    for file_path in sorted(path.glob("*.json")):
        raw = json.loads(file_path.read_text(encoding="utf-8-sig"))
        _add_payload(payloads, raw, file_path.name)
    return {token: script_from_dict(raw, class_code=token) for token, raw in payloads.items()}


def _add_payload(payloads: dict[str, dict[str, Any]], raw: Any, source: str) -> None:
    if not isinstance(raw, dict):
        raise ValueError(f"Walkthrough file '{source}' must contain a JSON object.")
    token = normalize_class_code(raw.get("classCode") or Path(source).stem)
    if token in payloads:
        raise ValueError(f"Duplicate walkthrough class: {token}")
    payloads[token] = raw
