"""
Crowd Report Source

Asks users near an emergency to confirm it and turns their reports into
evidence. Each report's trust combines the reporter's standing, how close
the report was made to the emergency, how fresh it is and the quality of
its content.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from crowdguard.models.emergency import Emergency, Evidence, EvidenceCategory
from ..scoring import (
    ReportTrustFactors, calculate_report_trust, location_accuracy, time_relevance
)
from .base import ChannelEvidenceSource


@dataclass
class NearbyUser:
    """A user who can be asked to confirm an emergency"""
    user_id: str
    location: Tuple[float, float]


@dataclass
class CrowdReport:
    """A user's report about an emergency"""
    reporter_id: str
    description: str = ""
    location: Optional[Tuple[float, float]] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)
    media: List[Dict[str, Any]] = field(default_factory=list)


NearbyUserLookup = Callable[[Tuple[float, float], float], Awaitable[List[NearbyUser]]]
ValidationRequestSender = Callable[[List[NearbyUser], Emergency], Awaitable[None]]
ReporterTrustProvider = Callable[[str], Awaitable[float]]
ContentAssessor = Callable[[CrowdReport], Awaitable[float]]


def heuristic_content_quality(report: CrowdReport) -> float:
    """Content quality from description length and attached media"""
    words = len(report.description.split())
    quality = min(0.7, words / 20 * 0.7)
    if report.media:
        quality += 0.3
    return min(1.0, quality)


class CrowdReportSource(ChannelEvidenceSource):
    """Evidence from reports submitted by nearby users"""

    category = EvidenceCategory.CROWD_REPORT

    def __init__(
        self,
        find_nearby_users: Optional[NearbyUserLookup] = None,
        send_validation_request: Optional[ValidationRequestSender] = None,
        reporter_trust: Optional[ReporterTrustProvider] = None,
        content_assessor: Optional[ContentAssessor] = None,
        search_radius_m: float = 5000.0,
        relevance_horizon_seconds: float = 600.0,
        default_reporter_trust: float = 0.5,
        name: Optional[str] = None
    ):
        super().__init__(name)
        self.find_nearby_users = find_nearby_users
        self.send_validation_request = send_validation_request
        self.reporter_trust = reporter_trust
        self.content_assessor = content_assessor
        self.search_radius_m = search_radius_m
        self.relevance_horizon_seconds = relevance_horizon_seconds
        self.default_reporter_trust = default_reporter_trust

    def submit_report(self, emergency_id: str, report: CrowdReport) -> bool:
        """Deliver a crowd report to the validation running for an emergency"""
        return self.submit(emergency_id, report)

    async def on_open(self, emergency: Emergency) -> None:
        if not self.find_nearby_users:
            return

        users = await self.find_nearby_users(emergency.location, self.search_radius_m)
        self.logger.info(f"Found {len(users)} users near emergency {emergency.id}")

        if users and self.send_validation_request:
            await self.send_validation_request(users, emergency)

    async def to_evidence(self, emergency: Emergency, item: Any) -> Optional[Evidence]:
        if not isinstance(item, CrowdReport):
            self.logger.warning(f"Ignoring unsupported crowd report item: {type(item).__name__}")
            return None

        factors = await self.assess_report(emergency, item)
        trust = calculate_report_trust(factors)

        return self.make_evidence(
            emergency,
            trust,
            reporter_id=item.reporter_id,
            description=item.description,
            location=item.location,
            reported_at=item.timestamp.isoformat(),
            media_count=len(item.media),
            factors={
                'reporter_trust': factors.reporter_trust,
                'location_accuracy': factors.location_accuracy,
                'time_relevance': factors.time_relevance,
                'content_quality': factors.content_quality
            }
        )

    async def assess_report(self, emergency: Emergency, report: CrowdReport) -> ReportTrustFactors:
        """Compute the trust factors of a report"""
        reporter_task = self._reporter_trust(report.reporter_id)
        content_task = self._content_quality(report)
        reporter, content = await asyncio.gather(reporter_task, content_task)

        if report.location is not None:
            accuracy = location_accuracy(emergency.distance_to(report.location), self.search_radius_m)
        else:
            accuracy = 0.0

        age = (datetime.utcnow() - report.timestamp).total_seconds()

        return ReportTrustFactors(
            reporter_trust=reporter,
            location_accuracy=accuracy,
            time_relevance=time_relevance(age, self.relevance_horizon_seconds),
            content_quality=content
        )

    async def _reporter_trust(self, reporter_id: str) -> float:
        if not self.reporter_trust:
            return self.default_reporter_trust
        return await self.reporter_trust(reporter_id)

    async def _content_quality(self, report: CrowdReport) -> float:
        if not self.content_assessor:
            return heuristic_content_quality(report)
        return await self.content_assessor(report)
