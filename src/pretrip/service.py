"""Application service tying script resolution, drills, and progress together."""

from __future__ import annotations

import random
from typing import Any

from .aggregator import MasteredListener, ProgressAggregator
from .drills import Drill, build_drills
from .errors import PersistenceFailed
from .models import DrillKind, ProgressRecord, Script, Verdict
from .progress import ProgressStore
from .resolver import FileScriptRepository, ResolvedScript, ScriptRepository, ScriptResolver
from .settings import Settings


class PracticeSession:
    """One learner practicing one resolved script."""

    def __init__(
        self,
        learner_id: str,
        resolved: ResolvedScript,
        drills: dict[DrillKind, Drill],
        aggregator: ProgressAggregator,
    ) -> None:
        self.learner_id = learner_id
        self.resolved = resolved
        self.drills = drills
        self._aggregator = aggregator

    @property
    def script(self) -> Script:
        return self.resolved.script

    @property
    def progress(self) -> ProgressRecord:
        return self._aggregator.record

    @property
    def warnings(self) -> list[PersistenceFailed]:
        """Persistence failures collected during this session."""
        return self._aggregator.warnings

    def drill(self, kind: DrillKind | str) -> Drill:
        return self.drills[DrillKind(kind)]

    def subscribe(self, listener: MasteredListener) -> None:
        self._aggregator.subscribe(listener)

    async def submit(self, kind: DrillKind | str, attempt: Any = None) -> Verdict:
        """Grade an attempt and record the drill when this submission completes it."""
        drill = self.drill(kind)
        verdict = drill.submit(attempt)
        if verdict.completed_now:
            await self._aggregator.mark_complete(drill.kind)
        return verdict

    def completed_count(self) -> int:
        return self.progress.completed_count()

    def is_mastered(self) -> bool:
        return self._aggregator.all_complete()


class WalkthroughService:
    """Coordinates script lookup and per-learner drill progress."""

    def __init__(
        self,
        settings: Settings | None = None,
        repository: ScriptRepository | None = None,
        store: ProgressStore | None = None,
    ) -> None:
        """Initialize service from settings, with optional collaborator overrides."""
        self.settings = settings or Settings()
        self.repository = repository or FileScriptRepository(self.settings.org_scripts_dir or None)
        self.progress = store or ProgressStore(self.settings.db_path)
        self.resolver = ScriptResolver(self.repository, timeout=self.settings.resolve_timeout_seconds)

    async def open_practice(
        self,
        learner_id: str,
        class_code: str,
        org_id: str | None = None,
        *,
        rng: random.Random | None = None,
    ) -> PracticeSession:
        """Resolve the learner's script and build drills seeded with saved progress.

        Propagates ``ScriptNotFound``, ``ResolutionFailed``,
        ``ScriptValidationError`` and ``PersistenceFailed``.
        """
        learner = learner_id.strip()
        if not learner:
            raise ValueError("Learner id is required.")
        resolved = await self.resolver.resolve(class_code, org_id)
        aggregator = ProgressAggregator(self.progress, timeout=self.settings.persist_timeout_seconds)
        record = await aggregator.load(learner, resolved.script.id)
        drills = build_drills(
            resolved.script,
            completed=record.completed_kinds(),
            mode=self.settings.type_phrase_mode,
            rng=rng,
        )
        return PracticeSession(learner, resolved, drills, aggregator)

    def list_progress(self, learner_id: str) -> list[ProgressRecord]:
        """Return saved progress for every script the learner has practiced."""
        return self.progress.list_records(learner_id.strip())

    def close(self) -> None:
        """Close underlying resources."""
        self.progress.close()
