"""
Core module for CrowdGuard

Contains configuration management, logging setup and the database layer.
"""

from .config import ConfigurationManager, ConfigurationError
from .database import DatabaseManager, DatabaseError
from .logging import initialize_logging, get_logger, get_structured_logger

__all__ = [
    'ConfigurationManager',
    'ConfigurationError',
    'DatabaseManager',
    'DatabaseError',
    'initialize_logging',
    'get_logger',
    'get_structured_logger'
]
