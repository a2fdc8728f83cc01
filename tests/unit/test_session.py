"""
Unit tests for the validation session state machine

Tests threshold transitions, forced finalization, cancellation, late
evidence and the exactly-once finalize callback under thread contention.
"""

import asyncio
import threading
from datetime import timedelta
from unittest.mock import Mock

import pytest

from crowdguard.models.emergency import EvidenceCategory, FinalizeReason, ValidationStatus
from crowdguard.services.validation.errors import DuplicateFinalizeAttempt
from crowdguard.services.validation.session import ValidationSession
from tests.mocks.validation_mocks import make_evidence


CROWD = EvidenceCategory.CROWD_REPORT
MEDIA = EvidenceCategory.MEDIA_EVIDENCE
OFFICIAL = EvidenceCategory.OFFICIAL_SOURCE


@pytest.fixture
def finalize_callback():
    return Mock()


@pytest.fixture
def session(emergency, scorer, finalize_callback):
    return ValidationSession(
        emergency,
        scorer,
        threshold=0.75,
        max_wait=timedelta(seconds=120),
        on_finalize=finalize_callback
    )


class TestValidationSession:
    """Test session transitions"""

    def test_initial_state(self, session, emergency):
        assert session.emergency_id == emergency.id
        assert session.status == ValidationStatus.PENDING
        assert session.trust_score == 0.0
        assert session.outcome is None
        assert not session.is_terminal
        assert session.deadline - session.started_at == timedelta(seconds=120)

    def test_evidence_below_threshold_stays_pending(self, session, finalize_callback):
        assert session.add_evidence(make_evidence(session.emergency_id, CROWD, 0.9)) is False
        assert session.add_evidence(make_evidence(session.emergency_id, CROWD, 0.8)) is False
        assert session.add_evidence(make_evidence(session.emergency_id, MEDIA, 0.9)) is False
        assert session.add_evidence(make_evidence(session.emergency_id, OFFICIAL, 0.95)) is False

        assert session.status == ValidationStatus.PENDING
        assert session.trust_score == pytest.approx(0.67)
        finalize_callback.assert_not_called()

    def test_score_recomputed_on_every_arrival(self, session):
        eid = session.emergency_id
        for item in [
            make_evidence(eid, CROWD, 0.9),
            make_evidence(eid, CROWD, 0.8),
            make_evidence(eid, MEDIA, 0.9),
            make_evidence(eid, OFFICIAL, 0.95),
        ]:
            session.add_evidence(item)
        assert session.trust_score == pytest.approx(0.67)

        session.add_evidence(make_evidence(eid, OFFICIAL, 0.9))
        assert session.trust_score == pytest.approx(0.665)
        assert session.status == ValidationStatus.PENDING

    def test_crossing_threshold_validates_immediately(self, session, finalize_callback):
        eid = session.emergency_id
        assert session.add_evidence(make_evidence(eid, CROWD, 1.0)) is False
        assert session.add_evidence(make_evidence(eid, MEDIA, 1.0)) is False
        assert session.add_evidence(make_evidence(eid, OFFICIAL, 1.0)) is True

        assert session.status == ValidationStatus.VALIDATED
        assert session.trust_score == 0.75
        finalize_callback.assert_called_once()

        finalized_session, outcome = finalize_callback.call_args[0]
        assert finalized_session is session
        assert outcome.status == ValidationStatus.VALIDATED
        assert outcome.reason == FinalizeReason.THRESHOLD
        assert outcome.trust_score == 0.75
        assert outcome.evidence_counts['crowd_report'] == 1
        assert outcome.is_validated

    def test_single_category_never_validates(self, session, finalize_callback):
        for _ in range(3):
            session.add_evidence(make_evidence(session.emergency_id, CROWD, 1.0))

        assert session.status == ValidationStatus.PENDING
        assert session.trust_score == pytest.approx(0.30)
        finalize_callback.assert_not_called()

    def test_force_finalize(self, session, finalize_callback):
        session.add_evidence(make_evidence(session.emergency_id, CROWD, 0.5))

        assert session.force_finalize() is True
        assert session.status == ValidationStatus.INSUFFICIENT_VALIDATION
        assert session.outcome.reason == FinalizeReason.DEADLINE
        assert session.outcome.trust_score == pytest.approx(0.15)
        finalize_callback.assert_called_once()

    def test_force_finalize_after_terminal_is_noop(self, session, finalize_callback):
        session.cancel()
        assert session.force_finalize() is False
        assert session.status == ValidationStatus.CANCELLED
        finalize_callback.assert_called_once()

    def test_cancel(self, session, finalize_callback):
        assert session.cancel() is True
        assert session.status == ValidationStatus.CANCELLED
        assert session.outcome.reason == FinalizeReason.CANCELLED
        assert session.cancel() is False
        finalize_callback.assert_called_once()

    def test_late_evidence_recorded_but_inert(self, session, finalize_callback):
        eid = session.emergency_id
        session.force_finalize()
        score = session.trust_score

        for category in (CROWD, MEDIA, OFFICIAL):
            assert session.add_evidence(make_evidence(eid, category, 1.0)) is False

        assert session.status == ValidationStatus.INSUFFICIENT_VALIDATION
        assert session.trust_score == score
        assert session.late_evidence_count == 3
        assert len(session.evidence()) == 3
        assert session.outcome.evidence_counts == {c.value: 0 for c in EvidenceCategory}
        finalize_callback.assert_called_once()

    def test_evidence_for_other_emergency_rejected(self, session):
        with pytest.raises(ValueError):
            session.add_evidence(make_evidence("someone-else", CROWD, 1.0))
        assert session.evidence() == []

    def test_evidence_snapshot_by_category(self, session):
        eid = session.emergency_id
        session.add_evidence(make_evidence(eid, CROWD, 0.4))
        session.add_evidence(make_evidence(eid, MEDIA, 0.6))

        assert [e.trust for e in session.evidence(CROWD)] == [0.4]
        assert len(session.evidence()) == 2
        assert session.evidence_counts()['media_evidence'] == 1

    def test_duplicate_finalize_request_raises(self, session):
        session.cancel()
        with pytest.raises(DuplicateFinalizeAttempt):
            session._request_finalize(session.outcome)

    def test_get_status(self, session):
        session.add_evidence(make_evidence(session.emergency_id, CROWD, 1.0))
        status = session.get_status()
        assert status['status'] == 'pending'
        assert status['evidence_count'] == 1
        assert status['trust_score'] == pytest.approx(0.30)
        assert status['late_evidence'] == 0

    def test_concurrent_threshold_crossing_finalizes_once(self, emergency, scorer):
        calls = []
        calls_lock = threading.Lock()

        def on_finalize(session, outcome):
            with calls_lock:
                calls.append(outcome)

        session = ValidationSession(emergency, scorer, threshold=0.75, on_finalize=on_finalize)
        session.add_evidence(make_evidence(emergency.id, CROWD, 1.0))
        session.add_evidence(make_evidence(emergency.id, MEDIA, 1.0))

        workers = 16
        barrier = threading.Barrier(workers)
        results = []

        def push():
            barrier.wait()
            results.append(session.add_evidence(make_evidence(emergency.id, OFFICIAL, 1.0)))

        threads = [threading.Thread(target=push) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(calls) == 1
        assert results.count(True) == 1
        assert session.status == ValidationStatus.VALIDATED
        assert session.late_evidence_count == workers - 1

    def test_concurrent_cancel_and_deadline_finalize_once(self, session, finalize_callback):
        barrier = threading.Barrier(2)
        results = []

        def run(action):
            barrier.wait()
            results.append(action())

        threads = [
            threading.Thread(target=run, args=(session.cancel,)),
            threading.Thread(target=run, args=(session.force_finalize,)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == [False, True]
        assert session.status in (ValidationStatus.CANCELLED, ValidationStatus.INSUFFICIENT_VALIDATION)
        finalize_callback.assert_called_once()


class TestWaitFinalized:
    """Test awaiting the terminal transition"""

    @pytest.mark.asyncio
    async def test_wait_resolves_on_transition(self, session):
        waiter = asyncio.create_task(session.wait_finalized(timeout=1.0))
        await asyncio.sleep(0)
        session.force_finalize()

        outcome = await waiter
        assert outcome.status == ValidationStatus.INSUFFICIENT_VALIDATION

    @pytest.mark.asyncio
    async def test_wait_after_transition_returns_immediately(self, session):
        session.cancel()
        outcome = await session.wait_finalized()
        assert outcome.status == ValidationStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_wait_resolves_from_other_thread(self, session):
        waiter = asyncio.create_task(session.wait_finalized(timeout=1.0))
        await asyncio.sleep(0)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, session.force_finalize)

        outcome = await waiter
        assert outcome.reason == FinalizeReason.DEADLINE

    @pytest.mark.asyncio
    async def test_wait_times_out(self, session):
        with pytest.raises(asyncio.TimeoutError):
            await session.wait_finalized(timeout=0.01)
