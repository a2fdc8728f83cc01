"""
Global pytest configuration and fixtures for CrowdGuard testing.
"""
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from crowdguard.models.emergency import Emergency
from crowdguard.services.validation.scoring import TrustScorer, TrustWeights
from crowdguard.services.validation.settings import ValidationConfig


@pytest.fixture
def emergency():
    """Provide a sample emergency."""
    return Emergency(
        id="emg-0001",
        location=(40.7128, -74.0060),
        category="fire",
        created_at=datetime.utcnow()
    )


@pytest.fixture
def weights():
    """Provide the default category weights."""
    return TrustWeights()


@pytest.fixture
def scorer(weights):
    """Provide a scorer with default weights."""
    return TrustScorer(weights)


@pytest.fixture
def fast_config():
    """Validation config with a short deadline for timing tests."""
    return ValidationConfig(validation_threshold=0.75, max_validation_wait_ms=200)


@pytest.fixture
def temp_dir(tmp_path):
    """Create a temporary directory for test files."""
    return tmp_path

