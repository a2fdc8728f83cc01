"""
Validation Result Notification

Decides what to tell downstream stakeholders about a finished validation
and to whom, and hands the notice to delivery gateways. Delivery itself
(push, SMS, e-mail) happens outside this subsystem.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp

from crowdguard.models.emergency import ValidationStatus


class NoticePriority(Enum):
    """Notice priority levels"""
    LOW = 1
    NORMAL = 2
    HIGH = 3
    EMERGENCY = 4


class NotificationError(Exception):
    """Notification delivery error"""
    pass


@dataclass
class ValidationNotice:
    """What to tell whom about a validation result"""
    emergency_id: str
    status: ValidationStatus
    trust_score: float
    priority: NoticePriority
    audience: List[str]
    title: str
    body: str
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event': 'emergencyValidated',
            'emergency_id': self.emergency_id,
            'status': self.status.value,
            'trust_score': round(self.trust_score, 4),
            'priority': self.priority.name.lower(),
            'audience': list(self.audience),
            'title': self.title,
            'body': self.body,
            'timestamp': self.timestamp.isoformat()
        }


def build_validation_notice(emergency_id: str, status: ValidationStatus, score: float) -> ValidationNotice:
    """Plan the notice for a validation result"""
    room = f"emergency_{emergency_id}"

    if status is ValidationStatus.VALIDATED:
        return ValidationNotice(
            emergency_id=emergency_id,
            status=status,
            trust_score=score,
            priority=NoticePriority.EMERGENCY,
            audience=[room, 'responders'],
            title="Emergency confirmed",
            body=f"Emergency {emergency_id[:8]} confirmed by crowd validation "
                 f"(trust {score:.0%}). Dispatch responders."
        )

    if status is ValidationStatus.INSUFFICIENT_VALIDATION:
        return ValidationNotice(
            emergency_id=emergency_id,
            status=status,
            trust_score=score,
            priority=NoticePriority.HIGH,
            audience=[room, 'dispatch_review'],
            title="Emergency not confirmed",
            body=f"Emergency {emergency_id[:8]} could not be confirmed "
                 f"(trust {score:.0%}). Manual review required."
        )

    return ValidationNotice(
        emergency_id=emergency_id,
        status=status,
        trust_score=score,
        priority=NoticePriority.NORMAL,
        audience=[room],
        title="Emergency validation cancelled",
        body=f"Validation of emergency {emergency_id[:8]} was cancelled."
    )


class NotificationGateway(ABC):
    """Receives validation results for downstream delivery"""

    @abstractmethod
    async def notify_validation_result(self, emergency_id: str, status: ValidationStatus, score: float) -> None:
        pass


class LoggingNotificationGateway(NotificationGateway):
    """Writes notices to the log"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def notify_validation_result(self, emergency_id: str, status: ValidationStatus, score: float) -> None:
        notice = build_validation_notice(emergency_id, status, score)
        level = logging.WARNING if notice.priority is NoticePriority.EMERGENCY else logging.INFO
        self.logger.log(level, f"{notice.title} -> {', '.join(notice.audience)}: {notice.body}")


class WebhookNotificationGateway(NotificationGateway):
    """Posts notices as JSON to a webhook"""

    def __init__(self, url: str, timeout: float = 10.0, headers: Optional[Dict[str, str]] = None):
        self.url = url
        self.timeout = timeout
        self.headers = dict(headers or {})
        self.logger = logging.getLogger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    async def start(self):
        """Initialize the HTTP session"""
        if not self.session:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={'Content-Type': 'application/json', **self.headers}
            )

    async def close(self):
        """Close the HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None

    async def notify_validation_result(self, emergency_id: str, status: ValidationStatus, score: float) -> None:
        if not self.session:
            await self.start()

        notice = build_validation_notice(emergency_id, status, score)

        try:
            async with self.session.post(self.url, json=notice.to_dict()) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise NotificationError(f"Webhook returned HTTP {response.status}: {error_text}")
        except aiohttp.ClientError as e:
            raise NotificationError(f"Webhook delivery failed: {e}")

        self.logger.debug(f"Delivered validation notice for {emergency_id} to webhook")


class CompositeNotificationGateway(NotificationGateway):
    """Fans a result out to several gateways; one failing does not stop the others"""

    def __init__(self, gateways: List[NotificationGateway]):
        self.gateways = list(gateways)
        self.logger = logging.getLogger(__name__)

    async def notify_validation_result(self, emergency_id: str, status: ValidationStatus, score: float) -> None:
        results = await asyncio.gather(
            *(g.notify_validation_result(emergency_id, status, score) for g in self.gateways),
            return_exceptions=True
        )

        for gateway, result in zip(self.gateways, results):
            if isinstance(result, Exception):
                self.logger.error(
                    f"Notification gateway {type(gateway).__name__} failed for {emergency_id}: {result}"
                )
