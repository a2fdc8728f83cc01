"""
Configuration Management System for CrowdGuard

Handles loading configuration from environment variables, config files,
and provides validation and runtime updates.
"""

import os
import json
import math
import yaml
import logging
import jsonschema
from typing import Any, Dict, List, Optional, Callable
from pathlib import Path
from dataclasses import dataclass


@dataclass
class ConfigSource:
    """Configuration source definition"""
    name: str
    priority: int
    loader: Callable
    path: Optional[str] = None


class ConfigurationError(Exception):
    """Configuration-related errors"""
    pass


EVIDENCE_CATEGORIES = [
    "crowd_report",
    "media_evidence",
    "social_media",
    "nearby_device",
    "official_source",
]

VALIDATION_SCHEMA = {
    "type": "object",
    "properties": {
        "threshold": {"type": "number", "exclusiveMinimum": 0, "maximum": 1},
        "max_wait_ms": {"type": "integer", "minimum": 1},
        "weights": {
            "type": "object",
            "properties": {
                category: {"type": "number", "minimum": 0, "maximum": 1}
                for category in EVIDENCE_CATEGORIES
            },
            "required": EVIDENCE_CATEGORIES,
            "additionalProperties": False
        }
    },
    "required": ["threshold", "max_wait_ms", "weights"]
}


class ConfigurationManager:
    """
    Manages system configuration with support for multiple sources,
    validation, and runtime updates.
    """

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        self.config: Dict[str, Any] = {}
        self.watchers: Dict[str, List[Callable]] = {}
        self.sources: List[ConfigSource] = []
        self.logger = logging.getLogger(__name__)

        # Default configuration values
        self.defaults = {
            "app": {
                "name": "CrowdGuard",
                "version": "1.0.0",
                "debug": False,
                "log_level": "INFO"
            },
            "validation": {
                "threshold": 0.75,
                "max_wait_ms": 120000,
                "weights": {
                    "crowd_report": 0.30,
                    "media_evidence": 0.25,
                    "social_media": 0.15,
                    "nearby_device": 0.10,
                    "official_source": 0.20
                }
            },
            "sources": {
                "crowd": {"enabled": True, "search_radius_m": 5000},
                "media": {"enabled": True},
                "social": {"enabled": True, "radius_m": 5000, "poll_interval": 10},
                "devices": {"enabled": True, "presence_trust": 0.5},
                "official": {"enabled": True, "endpoints": []}
            },
            "notifications": {
                "webhook_url": None,
                "timeout": 10
            },
            "database": {
                "path": "data/crowdguard.db",
                "max_connections": 10
            },
            "logging": {
                "level": "INFO",
                "file": "logs/crowdguard.log",
                "max_size": "10MB",
                "backup_count": 5
            }
        }

        self._setup_sources()

    def _setup_sources(self):
        """Set up configuration sources in priority order"""
        # Environment variables (highest priority = lowest number)
        self.sources.append(ConfigSource(
            name="environment",
            priority=4,
            loader=self._load_from_env
        ))

        # Local config file
        local_config_path = str(self.config_dir / "config.yaml")
        self.sources.append(ConfigSource(
            name="local_config",
            priority=3,
            loader=lambda: self._load_from_file(local_config_path),
            path=local_config_path
        ))

        # Default config file
        default_config_path = str(self.config_dir / "default.yaml")
        self.sources.append(ConfigSource(
            name="default_config",
            priority=2,
            loader=lambda: self._load_from_file(default_config_path),
            path=default_config_path
        ))

        # Built-in defaults (lowest priority = highest number)
        self.sources.append(ConfigSource(
            name="defaults",
            priority=1,
            loader=lambda: self.defaults
        ))

    def load_config(self) -> None:
        """Load configuration from all sources"""
        self.logger.info("Loading configuration from all sources")

        merged_config = {}

        # Load from each source (lowest priority first)
        for source in sorted(self.sources, key=lambda x: x.priority):
            try:
                source_config = source.loader()
                if source_config:
                    merged_config = self._deep_merge(merged_config, source_config)
                    self.logger.debug(f"Loaded configuration from {source.name}")
            except Exception as e:
                self.logger.warning(f"Failed to load config from {source.name}: {e}")

        self.config = merged_config
        self._validate_config()
        self.logger.info("Configuration loaded successfully")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config = {}

        # Map environment variables to config keys
        env_mappings = {
            "CROWDGUARD_DEBUG": "app.debug",
            "CROWDGUARD_LOG_LEVEL": "app.log_level",
            "CROWDGUARD_DB_PATH": "database.path",
            "CROWDGUARD_VALIDATION_THRESHOLD": "validation.threshold",
            "CROWDGUARD_MAX_VALIDATION_WAIT_MS": "validation.max_wait_ms",
            "CROWDGUARD_WEBHOOK_URL": "notifications.webhook_url"
        }

        for env_var, config_key in env_mappings.items():
            value = os.getenv(env_var)
            if value is None:
                continue

            # Convert string values to appropriate types
            if value.lower() in ('true', 'false'):
                value = value.lower() == 'true'
            elif value.isdigit():
                value = int(value)
            elif config_key == "validation.threshold":
                try:
                    value = float(value)
                except ValueError:
                    self.logger.warning(f"Invalid number in {env_var}: {value}")
                    continue

            self._set_nested_value(config, config_key, value)

        return config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file"""
        path = Path(file_path)

        if not path.exists():
            return {}

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f) or {}
                elif path.suffix.lower() == '.json':
                    return json.load(f)
                else:
                    self.logger.warning(f"Unsupported config file format: {path}")
                    return {}
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            self.logger.error(f"Error loading config file {path}: {e}")
            return {}

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _set_nested_value(self, config: Dict, key_path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation"""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _validate_config(self) -> None:
        """Validate configuration values"""
        errors = []

        # Validate required sections
        required_sections = ['app', 'validation', 'database']
        for section in required_sections:
            if section not in self.config:
                errors.append(f"Missing required configuration section: {section}")

        errors.extend(validate_validation_section(self.get_section('validation')))

        # Validate log level
        log_level = self.get('app.log_level', 'INFO')
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if str(log_level).upper() not in valid_levels:
            errors.append(f"Invalid log level: {log_level}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split('.')
        current = self.config

        try:
            for k in keys:
                current = current[k]
            return current
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        self._set_nested_value(self.config, key, value)

        # Notify watchers
        for callback in self.watchers.get(key, []):
            try:
                callback(key, value)
            except Exception as e:
                self.logger.error(f"Error in config watcher for {key}: {e}")

    def watch(self, key: str, callback: Callable[[str, Any], None]) -> None:
        """Watch for configuration changes"""
        self.watchers.setdefault(key, []).append(callback)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section"""
        return self.get(section, {})

    def is_source_enabled(self, source: str) -> bool:
        """Check if an evidence source is enabled"""
        return self.get(f'sources.{source}.enabled', False)

    def export_config(self, file_path: str) -> None:
        """Export current configuration to file"""
        path = Path(file_path)

        try:
            with open(path, 'w') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    yaml.dump(self.config, f, default_flow_style=False, indent=2)
                elif path.suffix.lower() == '.json':
                    json.dump(self.config, f, indent=2)
                else:
                    raise ValueError(f"Unsupported file format: {path.suffix}")

            self.logger.info(f"Configuration exported to {path}")
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to export configuration: {e}")
            raise ConfigurationError(f"Export failed: {e}")


def validate_validation_section(section: Dict[str, Any]) -> List[str]:
    """
    Check the validation section against its schema and the weight-sum rule

    Args:
        section: The ``validation`` configuration mapping

    Returns:
        List of error strings, empty when the section is valid
    """
    errors = []

    try:
        jsonschema.validate(instance=section, schema=VALIDATION_SCHEMA)
    except jsonschema.ValidationError as e:
        path = '.'.join(str(p) for p in e.absolute_path)
        errors.append(f"validation.{path}: {e.message}" if path else f"validation: {e.message}")
        return errors

    total = sum(section['weights'].values())
    if not math.isclose(total, 1.0, abs_tol=1e-6):
        errors.append(f"validation.weights must sum to 1.0, got {total:.6f}")

    return errors
