"""Error taxonomy for script resolution, drills, and progress persistence."""

from __future__ import annotations


class PretripError(Exception):
    """Base class for engine errors."""


class ScriptNotFound(PretripError, LookupError):
    """Lookup succeeded but no script exists for the class code."""

    def __init__(self, class_code: str, org_id: str | None = None) -> None:
        self.class_code = class_code
        self.org_id = org_id
        super().__init__(f"No walkthrough script found for class '{class_code}'.")


class ResolutionFailed(PretripError):
    """The script repository errored or timed out."""


class ScriptValidationError(PretripError, ValueError):
    """Script payload is structurally malformed."""

    def __init__(self, name: str, problems: list[str]) -> None:
        self.name = name
        self.problems = list(problems)
        summary = "; ".join(self.problems)
        super().__init__(f"Walkthrough '{name}' is invalid: {summary}")


class PersistenceFailed(PretripError):
    """A progress read or write did not reach storage."""


class DrillCompleteError(PretripError, RuntimeError):
    """A completed drill was asked to change its answer state."""
