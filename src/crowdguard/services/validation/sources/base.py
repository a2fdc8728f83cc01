"""
Evidence Source Interfaces

Defines the contract every evidence source implements and a push-based
base class that keeps one queue per emergency, so submitted items can only
reach the session that opened the channel.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from crowdguard.models.emergency import Emergency, Evidence, EvidenceCategory


_CLOSED = object()


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class EvidenceSource(ABC):
    """Asynchronous producer of evidence for one category"""

    category: EvidenceCategory

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    @abstractmethod
    def collect(self, emergency: Emergency) -> AsyncIterator[Evidence]:
        """
        Produce evidence for an emergency

        Implementations are async generators. They may yield any number of
        items at any time and are cancelled once the session finalizes.
        """

    def make_evidence(self, emergency: Emergency, trust: float, **payload: Any) -> Evidence:
        """Build an evidence item tagged with this source's category and name"""
        return Evidence(
            emergency_id=emergency.id,
            category=self.category,
            trust=min(1.0, max(0.0, float(trust))),
            payload=payload,
            source=self.name
        )


class ChannelEvidenceSource(EvidenceSource):
    """
    Push-based source backed by one asyncio queue per emergency

    External producers call ``submit`` with the emergency id; the item is
    delivered only while a collection for that emergency is running.
    ``submit`` and ``close`` may be called from any thread; off-loop calls
    are handed to the collecting loop.
    """

    def __init__(self, name: Optional[str] = None, max_queue_size: int = 0):
        super().__init__(name)
        self.max_queue_size = max_queue_size
        self._channels: Dict[str, Tuple[asyncio.Queue, asyncio.AbstractEventLoop]] = {}

    def is_open(self, emergency_id: str) -> bool:
        return emergency_id in self._channels

    def submit(self, emergency_id: str, item: Any) -> bool:
        """
        Deliver a raw item to the collection running for an emergency

        Returns:
            False if no collection is open for the emergency, or (on the
            collecting loop) its queue is full
        """
        opened = self._channels.get(emergency_id)
        if opened is None:
            self.logger.debug(f"No open channel for emergency {emergency_id}")
            return False
        return self._put(emergency_id, opened, item)

    def close(self, emergency_id: str) -> bool:
        """End the collection for an emergency once queued items are drained"""
        opened = self._channels.get(emergency_id)
        if opened is None:
            return False
        return self._put(emergency_id, opened, _CLOSED)

    def _put(self, emergency_id: str, opened, item: Any) -> bool:
        channel, loop = opened
        if not _on_loop(loop):
            try:
                loop.call_soon_threadsafe(self._put_nowait, emergency_id, channel, item)
            except RuntimeError as e:
                self.logger.warning(f"Cannot deliver to emergency {emergency_id}, event loop closed: {e}")
                return False
            return True
        return self._put_nowait(emergency_id, channel, item)

    def _put_nowait(self, emergency_id: str, channel: asyncio.Queue, item: Any) -> bool:
        try:
            channel.put_nowait(item)
        except asyncio.QueueFull:
            action = "cannot close" if item is _CLOSED else "dropping item"
            self.logger.warning(f"Channel for emergency {emergency_id} is full, {action}")
            return False
        return True

    async def collect(self, emergency: Emergency) -> AsyncIterator[Evidence]:
        if emergency.id in self._channels:
            raise RuntimeError(f"{self.name} is already collecting for emergency {emergency.id}")

        channel: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._channels[emergency.id] = (channel, asyncio.get_running_loop())
        try:
            await self.on_open(emergency)
            while True:
                item = await channel.get()
                if item is _CLOSED:
                    break
                evidence = await self.to_evidence(emergency, item)
                if evidence is not None:
                    yield evidence
        finally:
            self._channels.pop(emergency.id, None)

    async def on_open(self, emergency: Emergency) -> None:
        """Hook run once the channel is open, before items are consumed"""

    @abstractmethod
    async def to_evidence(self, emergency: Emergency, item: Any) -> Optional[Evidence]:
        """Convert a submitted item into evidence, or None to discard it"""
