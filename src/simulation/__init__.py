"""
Simulation Module
=================

Dynamic simulation of the two-link arm for testing the control loop
without hardware.

Components:
    - SimulatedArm: Sensing and actuation collaborator backed by
      TwoLinkDynamics

Author: Turret Arm Control Team
License: MIT
"""

from .arm_simulator import (
    SimulatorConfig,
    SimulatedArm,
)

__version__ = "0.1.0"

__all__ = [
    "SimulatorConfig",
    "SimulatedArm",
]
