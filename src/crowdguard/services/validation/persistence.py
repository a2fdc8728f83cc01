"""
Validation Result Persistence

Gateways that store the terminal status and final score of a validation
session. Storage is attempted once per session; failures are reported as
PersistenceError and never roll back the in-memory terminal state.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from crowdguard.core.database import DatabaseError, DatabaseManager
from crowdguard.models.emergency import ValidationStatus
from .errors import PersistenceError


class PersistenceGateway(ABC):
    """Stores final validation results keyed by emergency id"""

    @abstractmethod
    async def save_final_status(self, emergency_id: str, status: ValidationStatus, score: float) -> bool:
        """
        Persist the final status of an emergency's validation

        Returns:
            True on success

        Raises:
            PersistenceError: If the result could not be stored
        """


class InMemoryPersistenceGateway(PersistenceGateway):
    """Keeps results in a dictionary; used for tests and dry runs"""

    def __init__(self):
        self._lock = threading.Lock()
        self.results: Dict[str, Dict[str, Any]] = {}
        self.save_calls: List[str] = []

    async def save_final_status(self, emergency_id: str, status: ValidationStatus, score: float) -> bool:
        with self._lock:
            self.save_calls.append(emergency_id)
            self.results[emergency_id] = {
                'status': status,
                'trust_score': score,
                'finalized_at': datetime.utcnow()
            }
        return True

    def get_result(self, emergency_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self.results.get(emergency_id)


class SQLitePersistenceGateway(PersistenceGateway):
    """
    Stores results in the ``validation_results`` table

    Saves run in executor threads. At most ``db.pool.max_connections`` of them
    touch the database at once; the rest wait for a free slot.
    """

    def __init__(self, db: DatabaseManager):
        self.logger = logging.getLogger(__name__)
        self.db = db
        self._slots = threading.BoundedSemaphore(max(1, db.pool.max_connections))

    async def save_final_status(self, emergency_id: str, status: ValidationStatus, score: float) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._save, emergency_id, status, score)

    def _save(self, emergency_id: str, status: ValidationStatus, score: float) -> bool:
        try:
            with self._slots:
                self.db.execute_update(
                    """
                    INSERT INTO validation_results (emergency_id, status, trust_score, finalized_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(emergency_id) DO UPDATE SET
                        status = excluded.status,
                        trust_score = excluded.trust_score,
                        finalized_at = excluded.finalized_at,
                        attempts = validation_results.attempts + 1
                    """,
                    (emergency_id, status.value, score, datetime.utcnow().isoformat())
                )
        except DatabaseError as e:
            raise PersistenceError(f"Failed to save validation result for {emergency_id}: {e}") from e

        self.logger.debug(f"Saved validation result for {emergency_id}: {status.value} ({score:.3f})")
        return True

    def get_result(self, emergency_id: str) -> Optional[Dict[str, Any]]:
        """Load a stored result"""
        try:
            with self._slots:
                rows = self.db.execute_query(
                    "SELECT * FROM validation_results WHERE emergency_id = ?",
                    (emergency_id,)
                )
        except DatabaseError as e:
            self.logger.error(f"Failed to load validation result for {emergency_id}: {e}")
            return None

        if not rows:
            return None

        row = rows[0]
        return {
            'emergency_id': row['emergency_id'],
            'status': ValidationStatus(row['status']),
            'trust_score': row['trust_score'],
            'finalized_at': datetime.fromisoformat(row['finalized_at']),
            'attempts': row['attempts']
        }
