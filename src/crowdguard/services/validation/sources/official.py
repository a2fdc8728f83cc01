"""
Official Channel Source

Checks official channels (emergency services dispatch, traffic systems,
weather alerts, public safety feeds) for corroboration of an emergency.
All channels are queried concurrently; each answer carries a confidence
that becomes the evidence trust.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from crowdguard.models.emergency import Emergency, Evidence, EvidenceCategory
from .base import EvidenceSource


class OfficialChannelError(Exception):
    """Official channel request error"""
    pass


@dataclass
class OfficialReport:
    """Answer from an official channel"""
    channel: str
    confidence: float
    details: Dict[str, Any] = field(default_factory=dict)


class OfficialChannel(ABC):
    """One official system that can corroborate an emergency"""

    name: str = "official"

    @abstractmethod
    async def check(self, emergency: Emergency) -> Optional[OfficialReport]:
        """Return a report, or None when the channel knows nothing"""


class HTTPOfficialChannel(OfficialChannel):
    """
    Official channel backed by a JSON HTTP endpoint

    The endpoint is queried with the emergency id, coordinates and category
    and is expected to answer with ``{"confidence": <0..1>, ...}``, or 404
    when it has no record.
    """

    def __init__(self, name: str, url: str, timeout: float = 10.0,
                 headers: Optional[Dict[str, str]] = None, user_agent: str = "CrowdGuard/1.0"):
        self.name = name
        self.url = url
        self.timeout = timeout
        self.headers = dict(headers or {})
        self.user_agent = user_agent
        self.logger = logging.getLogger(__name__)

        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the HTTP session"""
        if not self.session:
            headers = {
                'User-Agent': self.user_agent,
                'Accept': 'application/json',
                **self.headers
            }
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=headers
            )

    async def close(self):
        """Close the HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None

    async def check(self, emergency: Emergency) -> Optional[OfficialReport]:
        if not self.session:
            await self.start()

        params = {
            'emergency_id': emergency.id,
            'lat': f"{emergency.latitude:.6f}",
            'lon': f"{emergency.longitude:.6f}",
            'category': emergency.category
        }

        try:
            async with self.session.get(self.url, params=params) as response:
                if response.status == 404:
                    return None
                if response.status != 200:
                    error_text = await response.text()
                    raise OfficialChannelError(f"{self.name}: HTTP {response.status}: {error_text}")
                data = await response.json()
        except aiohttp.ClientError as e:
            raise OfficialChannelError(f"{self.name}: network error: {e}")
        except json.JSONDecodeError as e:
            raise OfficialChannelError(f"{self.name}: invalid JSON response: {e}")

        if not isinstance(data, dict) or data.get('confidence') is None:
            return None

        try:
            confidence = float(data['confidence'])
        except (TypeError, ValueError):
            raise OfficialChannelError(f"{self.name}: invalid confidence {data['confidence']!r}")

        details = {k: v for k, v in data.items() if k != 'confidence'}
        return OfficialReport(channel=self.name, confidence=confidence, details=details)


class OfficialChannelSource(EvidenceSource):
    """Evidence from concurrent checks of official channels"""

    category = EvidenceCategory.OFFICIAL_SOURCE

    def __init__(self, channels: List[OfficialChannel], name: Optional[str] = None):
        super().__init__(name)
        self.channels = list(channels)

    async def collect(self, emergency: Emergency) -> AsyncIterator[Evidence]:
        tasks = [asyncio.create_task(self._check(channel, emergency)) for channel in self.channels]

        try:
            for next_done in asyncio.as_completed(tasks):
                report = await next_done
                if report is None:
                    continue
                yield self.make_evidence(
                    emergency,
                    report.confidence,
                    channel=report.channel,
                    confidence=report.confidence,
                    details=report.details
                )
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def _check(self, channel: OfficialChannel, emergency: Emergency) -> Optional[OfficialReport]:
        try:
            return await channel.check(emergency)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"Official channel {channel.name} failed for {emergency.id}: {e}")
            return None
