"""
Evidence sources for crowd validation
"""

from .base import EvidenceSource, ChannelEvidenceSource
from .crowd import CrowdReportSource, CrowdReport, NearbyUser
from .media import MediaEvidenceSource, MediaSubmission, MediaAnalysis, MediaAnalyzer
from .social import SocialMediaSource, SocialMediaMonitor, SocialMention, generate_emergency_keywords
from .devices import NearbyDeviceSource, DeviceScanner, DiscoveredDevice
from .official import (
    OfficialChannelSource, OfficialChannel, HTTPOfficialChannel,
    OfficialReport, OfficialChannelError
)

__all__ = [
    'EvidenceSource',
    'ChannelEvidenceSource',
    'CrowdReportSource',
    'CrowdReport',
    'NearbyUser',
    'MediaEvidenceSource',
    'MediaSubmission',
    'MediaAnalysis',
    'MediaAnalyzer',
    'SocialMediaSource',
    'SocialMediaMonitor',
    'SocialMention',
    'generate_emergency_keywords',
    'NearbyDeviceSource',
    'DeviceScanner',
    'DiscoveredDevice',
    'OfficialChannelSource',
    'OfficialChannel',
    'HTTPOfficialChannel',
    'OfficialReport',
    'OfficialChannelError'
]
