"""
Pytest Configuration and Fixtures
==================================

Shared test configuration and fixtures for all test modules.
Handles path setup for importing src modules.

Author: Turret Arm Control Team
License: MIT
"""

import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest
import numpy as np

from src.control.kinematics import ArmGeometry, ArmKinematics
from src.control.trajectory import MotionConstraints


# =============================================================================
# Global Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def random_seed():
    """Set random seed for reproducibility."""
    np.random.seed(42)
    return 42


@pytest.fixture(scope="session")
def project_root_path():
    """Get project root path."""
    return project_root


@pytest.fixture
def geometry():
    """Reference arm: 0.5m proximal link, 0.4m forearm."""
    return ArmGeometry(proximal_length=0.5, forearm_length=0.4)


@pytest.fixture
def kinematics(geometry):
    """Kinematics solver for the reference arm."""
    return ArmKinematics(geometry)


@pytest.fixture
def constraints():
    """Joint limits used throughout: 2 rad/s, 4 rad/s²."""
    return MotionConstraints(max_velocity=2.0, max_acceleration=4.0)


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Add custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "hardware: marks tests requiring hardware")
    config.addinivalue_line("markers", "integration: marks integration tests")
