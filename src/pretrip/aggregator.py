"""Track drill completion for one learner and script, and detect mastery."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Protocol

from .errors import PersistenceFailed
from .logsetup import DOMAIN_PROGRESS, get_domain_logger
from .models import DrillKind, MasteredEvent, ProgressRecord

logger = get_domain_logger(__name__, DOMAIN_PROGRESS)

MasteredListener = Callable[[MasteredEvent], None]


class ProgressBackend(Protocol):
    """Persistence collaborator keyed by (learner_id, script_id)."""

    async def load(self, learner_id: str, script_id: str) -> ProgressRecord: ...

    async def write_completion(self, learner_id: str, script_id: str, kind: DrillKind, at: datetime) -> None: ...

    async def write_mastery(self, learner_id: str, script_id: str, at: datetime) -> None: ...


class ProgressAggregator:
    """Local mirror of one progress record with write-behind persistence.

    Local state is updated before any write is attempted and is never rolled
    back. Failed writes are logged and collected in ``warnings``.
    """

    def __init__(
        self,
        backend: ProgressBackend,
        *,
        timeout: float = 5.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend
        self._timeout = timeout
        self._clock = clock or (lambda: datetime.now(UTC))
        self._record: ProgressRecord | None = None
        self._listeners: list[MasteredListener] = []
        self.warnings: list[PersistenceFailed] = []

    @property
    def record(self) -> ProgressRecord:
        if self._record is None:
            raise RuntimeError("Progress has not been loaded yet.")
        return self._record

    def subscribe(self, listener: MasteredListener) -> None:
        """Register a callback for the one-time mastered event."""
        self._listeners.append(listener)

    async def load(self, learner_id: str, script_id: str) -> ProgressRecord:
        """Load the persisted record. Never emits a mastered event."""
        try:
            record = await asyncio.wait_for(self._backend.load(learner_id, script_id), timeout=self._timeout)
        except Exception as exc:
            raise PersistenceFailed(f"Could not load progress for {learner_id}/{script_id}.") from exc
        self._record = record
        logger.debug("Loaded progress %s/%s: %d/4 drills", learner_id, script_id, record.completed_count())
        if record.all_complete() and record.mastered_at is None:
            # An earlier mastery write was lost; restore it without announcing again.
            record.mastered_at = max(record.completed_at.values())
            await self._persist(self._backend.write_mastery(learner_id, script_id, record.mastered_at), "mastery")
        return record

    def all_complete(self) -> bool:
        return self._record is not None and self._record.all_complete()

    async def mark_complete(self, kind: DrillKind | str) -> ProgressRecord:
        """Mark one drill complete. Repeat calls for the same kind are no-ops."""
        record = self.record
        kind = DrillKind(kind)
        if record.is_complete(kind):
            return record

        now = self._clock()
        record.completed_at[kind] = now
        mastered = record.all_complete() and record.mastered_at is None
        if mastered:
            record.mastered_at = now
            self._emit(MasteredEvent(learner_id=record.learner_id, script_id=record.script_id, mastered_at=now))

        await self._persist(
            self._backend.write_completion(record.learner_id, record.script_id, kind, now),
            f"{kind} completion",
        )
        if mastered:
            await self._persist(self._backend.write_mastery(record.learner_id, record.script_id, now), "mastery")
        return record

    def _emit(self, event: MasteredEvent) -> None:
        logger.info("Learner %s mastered %s", event.learner_id, event.script_id)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Mastered listener failed for %s/%s", event.learner_id, event.script_id)

    async def _persist(self, pending: Awaitable[None], what: str) -> None:
        record = self.record
        try:
            await asyncio.wait_for(pending, timeout=self._timeout)
        except Exception as exc:
            failure = PersistenceFailed(f"Could not save {what} for {record.learner_id}/{record.script_id}.")
            failure.__cause__ = exc
            self.warnings.append(failure)
            logger.warning("%s Keeping local progress.", failure, exc_info=exc)
