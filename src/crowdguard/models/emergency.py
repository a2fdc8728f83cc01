"""
Emergency validation data models for CrowdGuard

Defines the emergency, evidence and outcome structures shared by the
validation sessions, the coordinator and the evidence sources.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple
import math
import uuid


EARTH_RADIUS_M = 6371000.0


class EvidenceCategory(Enum):
    """Evidence source categories"""
    CROWD_REPORT = "crowd_report"
    MEDIA_EVIDENCE = "media_evidence"
    SOCIAL_MEDIA = "social_media"
    NEARBY_DEVICE = "nearby_device"
    OFFICIAL_SOURCE = "official_source"


class ValidationStatus(Enum):
    """Validation session status"""
    PENDING = "pending"
    VALIDATED = "validated"
    INSUFFICIENT_VALIDATION = "insufficient_validation"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ValidationStatus.PENDING


class FinalizeReason(Enum):
    """Which path moved a session out of pending"""
    THRESHOLD = "threshold"
    DEADLINE = "deadline"
    CANCELLED = "cancelled"
    SHUTDOWN = "shutdown"


def haversine_distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Great-circle distance in meters between two (lat, lon) points"""
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


@dataclass(frozen=True)
class Emergency:
    """A reported emergency, owned by the reporting subsystem"""
    id: str
    location: Tuple[float, float]
    category: str = "general"
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def latitude(self) -> float:
        return self.location[0]

    @property
    def longitude(self) -> float:
        return self.location[1]

    def distance_to(self, location: Tuple[float, float]) -> float:
        """Distance in meters from the emergency to a location"""
        return haversine_distance(self.location, location)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Emergency':
        """Create emergency from dictionary"""
        location = data.get('location')
        if location is None:
            location = (data['latitude'], data['longitude'])

        created_at = data.get('created_at')
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at.replace('Z', '+00:00'))

        return cls(
            id=str(data['id']),
            location=(float(location[0]), float(location[1])),
            category=data.get('category') or data.get('type') or 'general',
            created_at=created_at or datetime.utcnow()
        )


@dataclass(frozen=True)
class Evidence:
    """One unit of corroborating data for an emergency"""
    emergency_id: str
    category: EvidenceCategory
    trust: float
    payload: Dict[str, Any] = field(default_factory=dict)
    source: str = ""
    received_at: datetime = field(default_factory=datetime.utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not isinstance(self.category, EvidenceCategory):
            raise ValueError(f"Invalid evidence category: {self.category!r}")
        if isinstance(self.trust, bool) or not isinstance(self.trust, (int, float)):
            raise ValueError(f"Evidence trust must be a number, got {self.trust!r}")
        if math.isnan(self.trust) or not 0.0 <= self.trust <= 1.0:
            raise ValueError(f"Evidence trust must be within [0, 1], got {self.trust}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert evidence to dictionary"""
        return {
            'id': self.id,
            'emergency_id': self.emergency_id,
            'category': self.category.value,
            'trust': self.trust,
            'payload': self.payload,
            'source': self.source,
            'received_at': self.received_at.isoformat()
        }


@dataclass(frozen=True)
class ValidationOutcome:
    """Terminal result of a validation session, emitted exactly once"""
    emergency_id: str
    status: ValidationStatus
    trust_score: float
    reason: FinalizeReason
    evidence_counts: Dict[str, int] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finalized_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_validated(self) -> bool:
        return self.status is ValidationStatus.VALIDATED

    def to_dict(self) -> Dict[str, Any]:
        """Convert outcome to dictionary"""
        return {
            'emergency_id': self.emergency_id,
            'status': self.status.value,
            'trust_score': self.trust_score,
            'reason': self.reason.value,
            'evidence_counts': dict(self.evidence_counts),
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finalized_at': self.finalized_at.isoformat()
        }
