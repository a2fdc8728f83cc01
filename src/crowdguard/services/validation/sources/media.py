"""
Media Evidence Source

Turns photos and videos submitted for an emergency into evidence. The
analysis itself is delegated to an analyzer returning relevance and
authenticity; the evidence trust is their product.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from crowdguard.models.emergency import Emergency, Evidence, EvidenceCategory
from .base import ChannelEvidenceSource


@dataclass
class MediaSubmission:
    """Media uploaded in connection with an emergency"""
    media_id: str
    media_type: str = "image"
    url: Optional[str] = None
    submitted_by: Optional[str] = None
    location: Optional[Tuple[float, float]] = None
    captured_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class MediaAnalysis:
    """Analyzer verdict for one media item"""
    relevance: float
    authenticity: float
    details: Dict[str, Any] = field(default_factory=dict)


class MediaAnalyzer(ABC):
    """Scores media for relevance to an emergency and for tampering"""

    @abstractmethod
    async def analyze(self, media: MediaSubmission, emergency: Emergency) -> MediaAnalysis:
        pass


class MediaEvidenceSource(ChannelEvidenceSource):
    """Evidence from analyzed media submissions"""

    category = EvidenceCategory.MEDIA_EVIDENCE

    def __init__(self, analyzer: MediaAnalyzer, name: Optional[str] = None):
        super().__init__(name)
        self.analyzer = analyzer

    def submit_media(self, emergency_id: str, media: MediaSubmission) -> bool:
        """Deliver a media submission to the validation running for an emergency"""
        return self.submit(emergency_id, media)

    async def to_evidence(self, emergency: Emergency, item: Any) -> Optional[Evidence]:
        if not isinstance(item, MediaSubmission):
            self.logger.warning(f"Ignoring unsupported media item: {type(item).__name__}")
            return None

        analysis = await self.analyzer.analyze(item, emergency)
        relevance = min(1.0, max(0.0, analysis.relevance))
        authenticity = min(1.0, max(0.0, analysis.authenticity))

        return self.make_evidence(
            emergency,
            relevance * authenticity,
            media_id=item.media_id,
            media_type=item.media_type,
            url=item.url,
            submitted_by=item.submitted_by,
            relevance=relevance,
            authenticity=authenticity,
            details=analysis.details
        )
