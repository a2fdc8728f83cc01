"""
Data models for CrowdGuard

Contains the data classes shared by the validation subsystem.
"""

from .emergency import (
    Emergency, Evidence, EvidenceCategory, ValidationStatus,
    ValidationOutcome, FinalizeReason, haversine_distance
)

__all__ = [
    'Emergency', 'Evidence', 'EvidenceCategory', 'ValidationStatus',
    'ValidationOutcome', 'FinalizeReason', 'haversine_distance'
]
