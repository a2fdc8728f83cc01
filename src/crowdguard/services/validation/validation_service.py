"""
Crowd Validation Service

Service wrapper that assembles the validation coordinator from
configuration and exposes the operations the rest of the platform uses:
- Start validation for a newly reported emergency
- Accept crowd reports and media for running validations
- Cancel validation when an emergency is resolved elsewhere
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from crowdguard.core.config import ConfigurationManager
from crowdguard.core.database import DatabaseManager
from crowdguard.models.emergency import Emergency
from .coordinator import ValidationCoordinator
from .notification import (
    CompositeNotificationGateway, LoggingNotificationGateway,
    NotificationGateway, WebhookNotificationGateway
)
from .persistence import InMemoryPersistenceGateway, PersistenceGateway, SQLitePersistenceGateway
from .session import ValidationSession
from .settings import ValidationConfig
from .sources.base import EvidenceSource
from .sources.crowd import (
    ContentAssessor, CrowdReport, CrowdReportSource, NearbyUserLookup,
    ReporterTrustProvider, ValidationRequestSender
)
from .sources.devices import DeviceScanner, NearbyDeviceSource
from .sources.media import MediaAnalyzer, MediaEvidenceSource, MediaSubmission
from .sources.official import HTTPOfficialChannel, OfficialChannel, OfficialChannelSource
from .sources.social import SocialMediaMonitor, SocialMediaSource


@dataclass
class ValidationCollaborators:
    """External systems the evidence sources talk to"""
    find_nearby_users: Optional[NearbyUserLookup] = None
    send_validation_request: Optional[ValidationRequestSender] = None
    reporter_trust: Optional[ReporterTrustProvider] = None
    content_assessor: Optional[ContentAssessor] = None
    media_analyzer: Optional[MediaAnalyzer] = None
    social_monitor: Optional[SocialMediaMonitor] = None
    device_scanner: Optional[DeviceScanner] = None
    official_channels: Optional[List[OfficialChannel]] = None


class ValidationService:
    """
    Crowd-sourced emergency validation service
    """

    def __init__(
        self,
        coordinator: ValidationCoordinator,
        crowd_source: Optional[CrowdReportSource] = None,
        media_source: Optional[MediaEvidenceSource] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.coordinator = coordinator
        self.crowd_source = crowd_source
        self.media_source = media_source

        self._running = False

    @classmethod
    def from_config(
        cls,
        config_manager: ConfigurationManager,
        collaborators: Optional[ValidationCollaborators] = None,
        db: Optional[DatabaseManager] = None
    ) -> 'ValidationService':
        """
        Build the service and its sources from configuration

        Sources whose collaborator is missing are skipped with a warning.
        """
        logger = logging.getLogger(__name__)
        collaborators = collaborators or ValidationCollaborators()
        config = ValidationConfig.from_config_manager(config_manager)

        sources: List[EvidenceSource] = []
        crowd_source = None
        media_source = None

        if config_manager.is_source_enabled('crowd'):
            crowd_source = CrowdReportSource(
                find_nearby_users=collaborators.find_nearby_users,
                send_validation_request=collaborators.send_validation_request,
                reporter_trust=collaborators.reporter_trust,
                content_assessor=collaborators.content_assessor,
                search_radius_m=config_manager.get('sources.crowd.search_radius_m', 5000)
            )
            sources.append(crowd_source)

        if config_manager.is_source_enabled('media'):
            if collaborators.media_analyzer:
                media_source = MediaEvidenceSource(collaborators.media_analyzer)
                sources.append(media_source)
            else:
                logger.warning("Media source enabled but no media analyzer configured")

        if config_manager.is_source_enabled('social'):
            if collaborators.social_monitor:
                sources.append(SocialMediaSource(
                    collaborators.social_monitor,
                    radius_m=config_manager.get('sources.social.radius_m', 5000),
                    poll_interval=config_manager.get('sources.social.poll_interval', 10)
                ))
            else:
                logger.warning("Social media source enabled but no monitor configured")

        if config_manager.is_source_enabled('devices'):
            if collaborators.device_scanner:
                sources.append(NearbyDeviceSource(
                    collaborators.device_scanner,
                    presence_trust=config_manager.get('sources.devices.presence_trust', 0.5)
                ))
            else:
                logger.warning("Nearby device source enabled but no scanner configured")

        if config_manager.is_source_enabled('official'):
            channels = list(collaborators.official_channels or [])
            for endpoint in config_manager.get('sources.official.endpoints', []) or []:
                channels.append(HTTPOfficialChannel(
                    name=endpoint['name'],
                    url=endpoint['url'],
                    timeout=endpoint.get('timeout', 10)
                ))
            if channels:
                sources.append(OfficialChannelSource(channels))
            else:
                logger.warning("Official source enabled but no channels configured")

        persistence: PersistenceGateway = SQLitePersistenceGateway(db) if db else InMemoryPersistenceGateway()

        notifier: NotificationGateway = LoggingNotificationGateway()
        webhook_url = config_manager.get('notifications.webhook_url')
        if webhook_url:
            notifier = CompositeNotificationGateway([
                notifier,
                WebhookNotificationGateway(
                    webhook_url,
                    timeout=config_manager.get('notifications.timeout', 10)
                )
            ])

        coordinator = ValidationCoordinator(
            sources=sources,
            persistence=persistence,
            notifier=notifier,
            config=config
        )
        return cls(coordinator, crowd_source=crowd_source, media_source=media_source)

    async def start(self):
        """Start the validation service"""
        if self._running:
            return

        self._running = True
        self.logger.info(
            f"Crowd Validation Service started with sources: "
            f"{', '.join(s.name for s in self.coordinator.sources) or 'none'}"
        )

    async def stop(self, timeout: Optional[float] = 30.0):
        """Stop the service, finalizing any validation still pending"""
        if not self._running:
            return

        self._running = False
        await self.coordinator.stop(timeout)
        await self._close_clients()

        self.logger.info("Crowd Validation Service stopped")

    async def _close_clients(self):
        for source in self.coordinator.sources:
            if isinstance(source, OfficialChannelSource):
                for channel in source.channels:
                    if isinstance(channel, HTTPOfficialChannel):
                        await channel.close()

        gateways = [self.coordinator.notifier]
        if isinstance(self.coordinator.notifier, CompositeNotificationGateway):
            gateways = self.coordinator.notifier.gateways
        for gateway in gateways:
            if isinstance(gateway, WebhookNotificationGateway):
                await gateway.close()

    async def validate(self, emergency: Emergency) -> ValidationSession:
        """Start validation of an emergency"""
        if not self._running:
            raise RuntimeError("Crowd Validation Service is not running")
        return await self.coordinator.initiate(emergency)

    def submit_report(self, emergency_id: str, report: CrowdReport) -> bool:
        """Hand a crowd report to the running validation of an emergency"""
        if not self.crowd_source:
            return False
        return self.crowd_source.submit_report(emergency_id, report)

    def submit_media(self, emergency_id: str, media: MediaSubmission) -> bool:
        """Hand a media submission to the running validation of an emergency"""
        if not self.media_source:
            return False
        return self.media_source.submit_media(emergency_id, media)

    def cancel(self, emergency_id: str) -> bool:
        """Cancel validation for an emergency resolved elsewhere"""
        return self.coordinator.cancel(emergency_id)

    def get_status(self) -> Dict[str, Any]:
        """Get service status"""
        status = self.coordinator.get_status()
        status['running'] = self._running
        return status
