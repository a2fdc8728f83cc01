"""
Social Media Source

Polls a social media monitor for posts mentioning an emergency near its
location. Keywords are derived from the emergency category and mentions
are de-duplicated across polls.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Set, Tuple

from crowdguard.models.emergency import Emergency, Evidence, EvidenceCategory
from .base import EvidenceSource


CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    'fire': ['fire', 'smoke', 'flames', 'burning'],
    'medical': ['ambulance', 'injured', 'collapsed', 'medical'],
    'police': ['police', 'robbery', 'shooting', 'assault'],
    'accident': ['accident', 'crash', 'collision', 'wreck'],
    'flood': ['flood', 'flooding', 'water rising'],
}

GENERIC_KEYWORDS = ['emergency', 'help', 'sos']


def generate_emergency_keywords(emergency: Emergency) -> List[str]:
    """Search keywords for an emergency, most specific first"""
    category = emergency.category.lower()
    keywords = list(CATEGORY_KEYWORDS.get(category, [category]))
    for keyword in GENERIC_KEYWORDS:
        if keyword not in keywords:
            keywords.append(keyword)
    return keywords


@dataclass
class SocialMention:
    """A social media post matching an emergency search"""
    mention_id: str
    platform: str
    text: str
    credibility: float
    author: Optional[str] = None
    location: Optional[Tuple[float, float]] = None
    posted_at: datetime = field(default_factory=datetime.utcnow)


class SocialMediaMonitor(ABC):
    """Searches social platforms around a location"""

    @abstractmethod
    async def search(
        self,
        location: Tuple[float, float],
        radius_m: float,
        keywords: List[str],
        since: datetime
    ) -> List[SocialMention]:
        pass


class SocialMediaSource(EvidenceSource):
    """Evidence from social media mentions near an emergency"""

    category = EvidenceCategory.SOCIAL_MEDIA

    def __init__(
        self,
        monitor: SocialMediaMonitor,
        radius_m: float = 5000.0,
        poll_interval: float = 10.0,
        max_polls: Optional[int] = None,
        name: Optional[str] = None
    ):
        super().__init__(name)
        self.monitor = monitor
        self.radius_m = radius_m
        self.poll_interval = poll_interval
        self.max_polls = max_polls

    async def collect(self, emergency: Emergency) -> AsyncIterator[Evidence]:
        keywords = generate_emergency_keywords(emergency)
        seen: Set[str] = set()
        polls = 0

        while True:
            polls += 1
            mentions = await self.monitor.search(
                emergency.location, self.radius_m, keywords, emergency.created_at
            )

            for mention in mentions:
                if mention.mention_id in seen:
                    continue
                seen.add(mention.mention_id)
                yield self.make_evidence(
                    emergency,
                    mention.credibility,
                    mention_id=mention.mention_id,
                    platform=mention.platform,
                    text=mention.text,
                    author=mention.author,
                    posted_at=mention.posted_at.isoformat()
                )

            if self.max_polls is not None and polls >= self.max_polls:
                break
            await asyncio.sleep(self.poll_interval)
