"""
Services for CrowdGuard
"""
