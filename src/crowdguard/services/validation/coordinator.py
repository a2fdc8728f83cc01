"""
Validation Coordinator

Runs crowd validation for every active emergency:
- Creates one session per emergency and keeps the active-session registry
- Starts one collection task per evidence source and one deadline timer
- Finalizes each session exactly once: persist, evict, then notify
- Supports external cancellation and graceful shutdown

A failing source, persistence call or notification is logged and isolated
to its own session.
"""

import asyncio
import functools
import logging
import threading
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from crowdguard.core.logging import get_structured_logger
from crowdguard.models.emergency import (
    Emergency, Evidence, FinalizeReason, ValidationOutcome
)
from .deadline import DeadlineTimer
from .errors import (
    DuplicateFinalizeAttempt, PersistenceError, SourceCollectionError, UnknownEmergencyError
)
from .notification import LoggingNotificationGateway, NotificationGateway
from .persistence import InMemoryPersistenceGateway, PersistenceGateway
from .scoring import TrustScorer
from .session import ValidationSession
from .settings import ValidationConfig
from .sources.base import EvidenceSource


@dataclass
class SessionRun:
    """Runtime state the coordinator keeps for one active session"""
    session: ValidationSession
    loop: asyncio.AbstractEventLoop
    timer: Optional[DeadlineTimer] = None
    tasks: List[asyncio.Task] = field(default_factory=list)
    source_errors: List[SourceCollectionError] = field(default_factory=list)
    completed: asyncio.Event = field(default_factory=asyncio.Event)


class SessionRegistry:
    """Thread-safe map of emergency id to active session run"""

    def __init__(self):
        self._lock = threading.Lock()
        self._runs: Dict[str, SessionRun] = {}

    def add_if_absent(self, emergency_id: str, run: SessionRun) -> Tuple[SessionRun, bool]:
        """Insert a run unless one is active; returns (active run, inserted)"""
        with self._lock:
            existing = self._runs.get(emergency_id)
            if existing is not None:
                return existing, False
            self._runs[emergency_id] = run
            return run, True

    def get(self, emergency_id: str) -> Optional[SessionRun]:
        with self._lock:
            return self._runs.get(emergency_id)

    def remove(self, emergency_id: str, run: SessionRun) -> bool:
        """Remove a run only if it is still the registered one"""
        with self._lock:
            if self._runs.get(emergency_id) is run:
                del self._runs[emergency_id]
                return True
            return False

    def runs(self) -> List[SessionRun]:
        with self._lock:
            return list(self._runs.values())

    def __contains__(self, emergency_id: str) -> bool:
        with self._lock:
            return emergency_id in self._runs

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)


class ValidationCoordinator:
    """Fans validation out to evidence sources and finalizes sessions"""

    def __init__(
        self,
        sources: Iterable[EvidenceSource] = (),
        persistence: Optional[PersistenceGateway] = None,
        notifier: Optional[NotificationGateway] = None,
        config: Optional[ValidationConfig] = None,
        max_recent_outcomes: int = 1000
    ):
        self.logger = logging.getLogger(__name__)
        self.slog = get_structured_logger('validation.coordinator')

        self.config = config or ValidationConfig()
        self.scorer = TrustScorer(self.config.trust_weights)
        self.sources: List[EvidenceSource] = list(sources)
        self.persistence = persistence or InMemoryPersistenceGateway()
        self.notifier = notifier or LoggingNotificationGateway()

        self.registry = SessionRegistry()
        self.max_recent_outcomes = max_recent_outcomes
        self.recent_outcomes: "OrderedDict[str, ValidationOutcome]" = OrderedDict()
        self.outcome_counts: Counter = Counter()

        self._finalize_tasks: Set[asyncio.Task] = set()
        self._notify_tasks: Set[asyncio.Task] = set()

    async def initiate(self, emergency: Emergency) -> ValidationSession:
        """
        Start validating an emergency

        Args:
            emergency: The emergency to validate

        Returns:
            The active session; an existing one if validation is already running.
            A session that already reached a terminal status is first allowed to
            finish persisting and be evicted, then a new session is started.
        """
        loop = asyncio.get_running_loop()

        session = ValidationSession(
            emergency,
            self.scorer,
            threshold=self.config.validation_threshold,
            max_wait=self.config.max_wait
        )
        run = SessionRun(session=session, loop=loop)
        session.on_finalize = functools.partial(self._on_session_finalized, run)

        while True:
            active, created = self.registry.add_if_absent(emergency.id, run)
            if created:
                break
            if not active.session.is_terminal:
                self.logger.debug(f"Validation already running for emergency {emergency.id}")
                return active.session
            # Finalized but not yet evicted
            await active.completed.wait()

        run.timer = DeadlineTimer(
            self.config.max_wait_seconds,
            functools.partial(session.force_finalize, FinalizeReason.DEADLINE),
            loop
        ).start()

        for source in self.sources:
            task = loop.create_task(
                self._collect(run, source),
                name=f"collect-{source.name}-{emergency.id}"
            )
            run.tasks.append(task)

        self.slog.info(
            "validation_started",
            emergency_id=emergency.id,
            category=emergency.category,
            sources=[source.name for source in self.sources],
            deadline_ms=self.config.max_validation_wait_ms
        )
        return session

    def get_session(self, emergency_id: str) -> ValidationSession:
        """
        Get the active session of an emergency

        Raises:
            UnknownEmergencyError: If no session is active for the emergency
        """
        run = self.registry.get(emergency_id)
        if run is None:
            raise UnknownEmergencyError(emergency_id)
        return run.session

    def is_active(self, emergency_id: str) -> bool:
        return emergency_id in self.registry

    def submit_evidence(self, emergency_id: str, evidence: Evidence, strict: bool = False) -> bool:
        """
        Push externally received evidence into an active session

        Returns:
            False if the emergency has no active session (raises instead when strict)
        """
        run = self.registry.get(emergency_id)
        if run is None:
            if strict:
                raise UnknownEmergencyError(emergency_id)
            self.logger.debug(f"Dropping evidence for inactive emergency {emergency_id}")
            return False

        run.session.add_evidence(evidence)
        return True

    def cancel(self, emergency_id: str, strict: bool = False) -> bool:
        """
        Cancel validation of an emergency resolved elsewhere

        Returns:
            True if a pending session was moved to ``cancelled``
        """
        run = self.registry.get(emergency_id)
        if run is None:
            if strict:
                raise UnknownEmergencyError(emergency_id)
            return False

        return run.session.cancel()

    async def wait_for_outcome(self, emergency_id: str, timeout: Optional[float] = None) -> ValidationOutcome:
        """
        Wait until an emergency's validation has been persisted and evicted

        Raises:
            UnknownEmergencyError: If the emergency is neither active nor recently finalized
        """
        run = self.registry.get(emergency_id)
        if run is None:
            outcome = self.recent_outcomes.get(emergency_id)
            if outcome is None:
                raise UnknownEmergencyError(emergency_id)
            return outcome

        await asyncio.wait_for(run.completed.wait(), timeout)
        return run.session.outcome

    async def stop(self, timeout: Optional[float] = None):
        """Finalize every pending session and wait for in-flight finalization"""
        for run in self.registry.runs():
            run.session.force_finalize(FinalizeReason.SHUTDOWN)

        await self.drain(timeout)

    async def drain(self, timeout: Optional[float] = None):
        """Wait for scheduled finalize and notification tasks"""
        # Finalize tasks are scheduled from call_soon_threadsafe callbacks
        await asyncio.sleep(0)

        pending = self._finalize_tasks | self._notify_tasks
        while pending:
            done, _ = await asyncio.wait(pending, timeout=timeout)
            if not done:
                self.logger.warning(f"Timed out waiting for {len(pending)} finalization tasks")
                return
            await asyncio.sleep(0)
            pending = self._finalize_tasks | self._notify_tasks

    async def _collect(self, run: SessionRun, source: EvidenceSource):
        session = run.session
        try:
            async for evidence in source.collect(session.emergency):
                session.add_evidence(evidence)
        except asyncio.CancelledError:
            raise
        except DuplicateFinalizeAttempt:
            self.logger.error(
                f"Session for emergency {session.emergency_id} finalized twice "
                f"while collecting from {source.name}",
                exc_info=True
            )
            raise
        except Exception as e:
            error = SourceCollectionError(source.name, session.emergency_id, e)
            run.source_errors.append(error)
            self.logger.warning(str(error), exc_info=True)

    def _on_session_finalized(self, run: SessionRun, session: ValidationSession, outcome: ValidationOutcome):
        # May run on any thread that pushed evidence; hop onto the session's loop
        try:
            run.loop.call_soon_threadsafe(self._schedule_finalize, run, outcome)
        except RuntimeError as e:
            self.logger.error(f"Cannot finalize emergency {session.emergency_id}, event loop closed: {e}")

    def _schedule_finalize(self, run: SessionRun, outcome: ValidationOutcome):
        if run.timer:
            run.timer.cancel()

        task = run.loop.create_task(
            self._finalize(run, outcome),
            name=f"finalize-{outcome.emergency_id}"
        )
        self._finalize_tasks.add(task)
        task.add_done_callback(self._finalize_tasks.discard)

    async def _finalize(self, run: SessionRun, outcome: ValidationOutcome):
        emergency_id = outcome.emergency_id
        log = self.slog.bind(emergency_id=emergency_id)

        # Stragglers are not awaited
        for task in run.tasks:
            if not task.done():
                task.cancel()

        try:
            await self.persistence.save_final_status(emergency_id, outcome.status, outcome.trust_score)
        except PersistenceError as e:
            log.error("validation_persist_failed", error=str(e))
        except Exception as e:
            log.error("validation_persist_failed", error=str(e), error_type=type(e).__name__)
        finally:
            self.registry.remove(emergency_id, run)
            self._record_outcome(outcome)

        log.info(
            "validation_finalized",
            status=outcome.status.value,
            trust_score=round(outcome.trust_score, 4),
            reason=outcome.reason.value,
            evidence_counts=outcome.evidence_counts,
            source_errors=len(run.source_errors)
        )

        task = run.loop.create_task(self._notify(outcome), name=f"notify-{emergency_id}")
        self._notify_tasks.add(task)
        task.add_done_callback(self._notify_tasks.discard)

        run.completed.set()

    async def _notify(self, outcome: ValidationOutcome):
        try:
            await self.notifier.notify_validation_result(
                outcome.emergency_id, outcome.status, outcome.trust_score
            )
        except Exception as e:
            self.logger.error(f"Failed to notify validation result for {outcome.emergency_id}: {e}")

    def _record_outcome(self, outcome: ValidationOutcome):
        self.recent_outcomes[outcome.emergency_id] = outcome
        self.recent_outcomes.move_to_end(outcome.emergency_id)
        while len(self.recent_outcomes) > self.max_recent_outcomes:
            self.recent_outcomes.popitem(last=False)
        self.outcome_counts[outcome.status.value] += 1

    def get_status(self) -> Dict[str, object]:
        """Get current coordinator status"""
        return {
            'active_sessions': len(self.registry),
            'sessions': [run.session.get_status() for run in self.registry.runs()],
            'outcomes': dict(self.outcome_counts),
            'sources': [source.name for source in self.sources],
            'threshold': self.config.validation_threshold,
            'max_wait_ms': self.config.max_validation_wait_ms
        }
