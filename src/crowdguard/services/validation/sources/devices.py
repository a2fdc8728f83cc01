"""
Nearby Device Source

Scans for devices around an emergency. Devices able to confirm the
emergency are asked for a confidence; the rest count as presence.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Set

from crowdguard.models.emergency import Emergency, Evidence, EvidenceCategory
from .base import EvidenceSource


@dataclass
class DiscoveredDevice:
    """A device found near an emergency"""
    device_id: str
    distance_m: Optional[float] = None
    can_provide_validation: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


class DeviceScanner(ABC):
    """Discovers devices around a location and queries them"""

    @abstractmethod
    def scan(self, emergency: Emergency) -> AsyncIterator[DiscoveredDevice]:
        """Yield devices as they are discovered"""

    @abstractmethod
    async def request_validation(self, device: DiscoveredDevice, emergency: Emergency) -> Optional[float]:
        """Ask a device to confirm the emergency; returns a confidence or None"""


class NearbyDeviceSource(EvidenceSource):
    """Evidence from devices discovered near an emergency"""

    category = EvidenceCategory.NEARBY_DEVICE

    def __init__(self, scanner: DeviceScanner, presence_trust: float = 0.5,
                 name: Optional[str] = None):
        super().__init__(name)
        self.scanner = scanner
        self.presence_trust = presence_trust

    async def collect(self, emergency: Emergency) -> AsyncIterator[Evidence]:
        seen: Set[str] = set()

        async for device in self.scanner.scan(emergency):
            if device.device_id in seen:
                continue
            seen.add(device.device_id)

            confidence = None
            if device.can_provide_validation:
                confidence = await self.scanner.request_validation(device, emergency)

            if confidence is None:
                trust = self.presence_trust
                kind = 'presence'
            else:
                trust = confidence
                kind = 'confirmation'

            yield self.make_evidence(
                emergency,
                trust,
                device_id=device.device_id,
                distance_m=device.distance_m,
                kind=kind
            )
