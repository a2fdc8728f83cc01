"""
Validation Service Errors

Exception taxonomy for the crowd validation subsystem.
"""

from typing import Optional


class ValidationServiceError(Exception):
    """Base class for validation subsystem errors"""
    pass


class SourceCollectionError(ValidationServiceError):
    """An evidence source failed to produce data"""

    def __init__(self, source_name: str, emergency_id: str, cause: Optional[BaseException] = None):
        self.source_name = source_name
        self.emergency_id = emergency_id
        self.cause = cause
        message = f"Evidence source {source_name} failed for emergency {emergency_id}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class PersistenceError(ValidationServiceError):
    """Saving a final validation status failed"""
    pass


class UnknownEmergencyError(ValidationServiceError, LookupError):
    """No active validation session exists for the emergency"""

    def __init__(self, emergency_id: str):
        self.emergency_id = emergency_id
        super().__init__(f"No active validation session for emergency {emergency_id}")


class DuplicateFinalizeAttempt(AssertionError):
    """A session tried to finalize twice; the status transition was bypassed"""
    pass
