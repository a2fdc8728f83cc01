"""
Validation runtime configuration
"""

from dataclasses import dataclass, field
from datetime import timedelta

from crowdguard.core.config import ConfigurationError, ConfigurationManager
from .scoring import DEFAULT_TRUST_WEIGHTS, TrustWeights


@dataclass(frozen=True)
class ValidationConfig:
    """Threshold, deadline and weights, fixed for the lifetime of a coordinator"""
    validation_threshold: float = 0.75
    max_validation_wait_ms: int = 120000
    trust_weights: TrustWeights = field(default=DEFAULT_TRUST_WEIGHTS)

    def __post_init__(self):
        if not 0.0 < self.validation_threshold <= 1.0:
            raise ConfigurationError(
                f"validation_threshold must be within (0, 1], got {self.validation_threshold}"
            )
        if isinstance(self.max_validation_wait_ms, bool) or not isinstance(self.max_validation_wait_ms, int) \
                or self.max_validation_wait_ms <= 0:
            raise ConfigurationError(
                f"max_validation_wait_ms must be a positive integer, got {self.max_validation_wait_ms!r}"
            )
        if not isinstance(self.trust_weights, TrustWeights):
            raise ConfigurationError("trust_weights must be a TrustWeights instance")

    @property
    def max_wait(self) -> timedelta:
        return timedelta(milliseconds=self.max_validation_wait_ms)

    @property
    def max_wait_seconds(self) -> float:
        return self.max_validation_wait_ms / 1000.0

    @classmethod
    def from_config_manager(cls, config_manager: ConfigurationManager) -> 'ValidationConfig':
        """Build the runtime configuration from the ``validation`` section"""
        section = config_manager.get_section('validation')
        return cls(
            validation_threshold=float(section.get('threshold', 0.75)),
            max_validation_wait_ms=int(section.get('max_wait_ms', 120000)),
            trust_weights=TrustWeights.from_dict(section.get('weights', DEFAULT_TRUST_WEIGHTS.as_dict()))
        )
