"""
Crowd Validation Service Module

Provides crowd-sourced emergency validation:
- Evidence collection from crowd reports, media, social media,
  nearby devices and official channels
- Weighted trust scoring with a validation threshold
- Deadline-bounded, exactly-once finalization with persistence and notification
"""

from .coordinator import ValidationCoordinator
from .errors import (
    ValidationServiceError, SourceCollectionError, PersistenceError,
    UnknownEmergencyError, DuplicateFinalizeAttempt
)
from .scoring import TrustScorer, TrustWeights, DEFAULT_TRUST_WEIGHTS
from .session import ValidationSession
from .settings import ValidationConfig
from .validation_service import ValidationService, ValidationCollaborators

__all__ = [
    'ValidationCoordinator',
    'ValidationSession',
    'ValidationConfig',
    'ValidationService',
    'ValidationCollaborators',
    'TrustScorer',
    'TrustWeights',
    'DEFAULT_TRUST_WEIGHTS',
    'ValidationServiceError',
    'SourceCollectionError',
    'PersistenceError',
    'UnknownEmergencyError',
    'DuplicateFinalizeAttempt'
]
