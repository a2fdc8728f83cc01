"""
CrowdGuard

Crowd-sourced emergency validation with trust scoring and escalation.
"""

__version__ = "1.0.0"
