"""
Validation Session State Machine

Owns the validation lifecycle of one emergency:
- Append-only evidence collection grouped by category
- Score recomputation on every evidence arrival while pending
- Exactly-once transition from pending to a terminal status
- Audit recording of evidence that arrives after the terminal transition
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from crowdguard.models.emergency import (
    Emergency, Evidence, EvidenceCategory, FinalizeReason,
    ValidationOutcome, ValidationStatus
)
from .errors import DuplicateFinalizeAttempt
from .scoring import TrustScorer


FinalizeCallback = Callable[['ValidationSession', ValidationOutcome], None]


class ValidationSession:
    """
    State machine for one emergency's validation

    ``pending`` moves exactly once to ``validated``, ``insufficient_validation``
    or ``cancelled``. Status checks and transitions happen under a lock, so the
    session may be fed from several asyncio tasks or OS threads at once. The
    finalize callback runs outside the lock, exactly once, in the thread that
    won the transition.
    """

    def __init__(
        self,
        emergency: Emergency,
        scorer: TrustScorer,
        threshold: float = 0.75,
        max_wait: timedelta = timedelta(milliseconds=120000),
        on_finalize: Optional[FinalizeCallback] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.emergency = emergency
        self.scorer = scorer
        self.threshold = threshold
        self.on_finalize = on_finalize

        self.started_at = datetime.utcnow()
        self.deadline = self.started_at + max_wait

        self._lock = threading.Lock()
        self._status = ValidationStatus.PENDING
        self._evidence: Dict[EvidenceCategory, List[Evidence]] = {
            category: [] for category in EvidenceCategory
        }
        self._evidence_count = 0
        self._late_evidence = 0
        self._score = 0.0
        self._outcome: Optional[ValidationOutcome] = None
        self._finalize_requested = False

        # Resolved from whichever thread finalizes; awaited on the loop
        self._finalized = threading.Event()
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []

    @property
    def emergency_id(self) -> str:
        return self.emergency.id

    @property
    def status(self) -> ValidationStatus:
        with self._lock:
            return self._status

    @property
    def trust_score(self) -> float:
        """Score derived from the evidence recorded before the terminal transition"""
        with self._lock:
            return self._score

    @property
    def outcome(self) -> Optional[ValidationOutcome]:
        with self._lock:
            return self._outcome

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def late_evidence_count(self) -> int:
        with self._lock:
            return self._late_evidence

    def evidence(self, category: Optional[EvidenceCategory] = None) -> List[Evidence]:
        """Snapshot of the recorded evidence, optionally for one category"""
        with self._lock:
            if category is not None:
                return list(self._evidence[category])
            return [item for items in self._evidence.values() for item in items]

    def evidence_counts(self) -> Dict[str, int]:
        with self._lock:
            return {category.value: len(items) for category, items in self._evidence.items()}

    def add_evidence(self, item: Evidence) -> bool:
        """
        Record an evidence item and re-evaluate the session

        Args:
            item: Evidence produced for this session's emergency

        Returns:
            True if this call moved the session to ``validated``
        """
        if item.emergency_id != self.emergency_id:
            raise ValueError(
                f"Evidence for emergency {item.emergency_id} pushed to session {self.emergency_id}"
            )

        with self._lock:
            self._evidence[item.category].append(item)
            self._evidence_count += 1

            if self._status.is_terminal:
                self._late_evidence += 1
                self.logger.debug(
                    f"Recorded late {item.category.value} evidence for {self.emergency_id} "
                    f"(status {self._status.value})"
                )
                return False

            self._score = self.scorer.score(self._evidence)
            if self._score < self.threshold:
                return False

            outcome = self._transition_locked(ValidationStatus.VALIDATED, FinalizeReason.THRESHOLD)

        self.logger.info(
            f"Emergency {self.emergency_id} validated with trust score {outcome.trust_score:.3f}"
        )
        self._request_finalize(outcome)
        return True

    def force_finalize(self, reason: FinalizeReason = FinalizeReason.DEADLINE) -> bool:
        """
        Move a pending session to ``insufficient_validation`` regardless of score

        Returns:
            True if this call performed the transition, False if already terminal
        """
        return self._finish(ValidationStatus.INSUFFICIENT_VALIDATION, reason)

    def cancel(self) -> bool:
        """Move a pending session to ``cancelled``; no-op when already terminal"""
        return self._finish(ValidationStatus.CANCELLED, FinalizeReason.CANCELLED)

    def _finish(self, status: ValidationStatus, reason: FinalizeReason) -> bool:
        with self._lock:
            if self._status.is_terminal:
                return False
            outcome = self._transition_locked(status, reason)

        self.logger.info(
            f"Emergency {self.emergency_id} finalized as {status.value} "
            f"({reason.value}, trust score {outcome.trust_score:.3f})"
        )
        self._request_finalize(outcome)
        return True

    def _transition_locked(self, status: ValidationStatus, reason: FinalizeReason) -> ValidationOutcome:
        # Caller holds the lock and has checked that the session is pending
        self._status = status
        self._outcome = ValidationOutcome(
            emergency_id=self.emergency_id,
            status=status,
            trust_score=self._score,
            reason=reason,
            evidence_counts={c.value: len(items) for c, items in self._evidence.items()},
            started_at=self.started_at
        )
        return self._outcome

    def _request_finalize(self, outcome: ValidationOutcome):
        with self._lock:
            if self._finalize_requested:
                raise DuplicateFinalizeAttempt(
                    f"Session {self.emergency_id} requested finalize twice"
                )
            self._finalize_requested = True

        try:
            if self.on_finalize:
                self.on_finalize(self, outcome)
        finally:
            self._resolve_waiters(outcome)

    def _resolve_waiters(self, outcome: ValidationOutcome):
        with self._lock:
            self._finalized.set()
            waiters, self._waiters = self._waiters, []

        for loop, future in waiters:
            loop.call_soon_threadsafe(_set_future_result, future, outcome)

    async def wait_finalized(self, timeout: Optional[float] = None) -> ValidationOutcome:
        """Wait until the session reaches a terminal status"""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._finalized.is_set():
                return self._outcome
            future = loop.create_future()
            self._waiters.append((loop, future))

        return await asyncio.wait_for(asyncio.shield(future), timeout)

    def get_status(self) -> Dict[str, object]:
        """Current session state for status reporting"""
        with self._lock:
            return {
                'emergency_id': self.emergency_id,
                'status': self._status.value,
                'trust_score': self._score,
                'evidence_count': self._evidence_count,
                'late_evidence': self._late_evidence,
                'started_at': self.started_at.isoformat(),
                'deadline': self.deadline.isoformat()
            }


def _set_future_result(future: asyncio.Future, outcome: ValidationOutcome):
    if not future.done():
        future.set_result(outcome)
