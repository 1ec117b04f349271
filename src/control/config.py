"""
Arm Configuration Module
========================

Construction-time configuration for the arm control stack. Everything here
is fixed for the lifetime of the objects built from it; there is no runtime
reconfiguration.

YAML layout:

    geometry:
      proximal_length: 0.5
      forearm_length: 0.4
    proximal_constraints:
      max_velocity: 2.0
      max_acceleration: 4.0
    forearm_constraints:
      max_velocity: 2.0
      max_acceleration: 4.0
    gains:
      proximal_kp: 8.0
      proximal_kd: 0.5
      forearm_kp: 8.0
      forearm_kd: 0.5
    dynamics:            # optional, enables coupled feedforward
      proximal_mass: 3.0
      forearm_mass: 2.0
      proximal_motor_count: 2
      forearm_motor_count: 1
      proximal_gear_ratio: 50.0
      forearm_gear_ratio: 50.0
      gravity: 9.81
    control_rate_hz: 50.0
    hold_final_setpoint: false

Author: Turret Arm Control Team
License: MIT
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

import yaml

from .controller import FeedbackGains
from .dynamics import DCMotor, LinkProperties, TwoLinkDynamics
from .kinematics import ArmGeometry
from .trajectory import MotionConstraints

logger = logging.getLogger(__name__)


@dataclass
class DynamicsConfig:
    """
    Mass and drive parameters for the coupled feedforward model.

    Attributes:
        proximal_mass: Proximal link mass (kg)
        forearm_mass: Forearm link mass (kg)
        proximal_motor_count: NEO motors ganged on the proximal joint
        forearm_motor_count: NEO motors on the forearm joint
        proximal_gear_ratio: Proximal gearbox reduction
        forearm_gear_ratio: Forearm gearbox reduction
        gravity: Gravitational acceleration (m/s²)
    """
    proximal_mass: float = 3.0
    forearm_mass: float = 2.0
    proximal_motor_count: int = 2
    forearm_motor_count: int = 1
    proximal_gear_ratio: float = 50.0
    forearm_gear_ratio: float = 50.0
    gravity: float = 9.81

    def __post_init__(self) -> None:
        """Validate model parameters."""
        if self.proximal_mass <= 0 or self.forearm_mass <= 0:
            raise ValueError("Link masses must be positive")
        if self.proximal_motor_count < 1 or self.forearm_motor_count < 1:
            raise ValueError("Each joint needs at least one motor")
        if self.proximal_gear_ratio <= 0 or self.forearm_gear_ratio <= 0:
            raise ValueError("Gear ratios must be positive")
        if self.gravity < 0:
            raise ValueError("gravity must be non-negative")

    def build(self, geometry: ArmGeometry) -> TwoLinkDynamics:
        """Create the dynamics model for a geometry."""
        return TwoLinkDynamics(
            LinkProperties(mass=self.proximal_mass, length=geometry.proximal_length),
            LinkProperties(mass=self.forearm_mass, length=geometry.forearm_length),
            DCMotor.neo(self.proximal_motor_count, self.proximal_gear_ratio),
            DCMotor.neo(self.forearm_motor_count, self.forearm_gear_ratio),
            gravity=self.gravity,
        )


@dataclass
class ArmConfig:
    """
    Master configuration for the arm control loop.

    Attributes:
        geometry: Link lengths
        proximal_constraints: Proximal joint motion limits
        forearm_constraints: Forearm joint motion limits
        gains: PD gains
        dynamics: Optional feedforward model parameters
        control_rate_hz: Tick rate of the control loop
        hold_final_setpoint: Keep tracking the goal after the profile ends
            instead of going idle
    """
    geometry: ArmGeometry = field(default_factory=lambda: ArmGeometry(0.5, 0.4))
    proximal_constraints: MotionConstraints = field(default_factory=MotionConstraints)
    forearm_constraints: MotionConstraints = field(default_factory=MotionConstraints)
    gains: FeedbackGains = field(default_factory=FeedbackGains)
    dynamics: Optional[DynamicsConfig] = None
    control_rate_hz: float = 50.0
    hold_final_setpoint: bool = False

    def __post_init__(self) -> None:
        """Validate loop settings."""
        if self.control_rate_hz <= 0:
            raise ValueError("control_rate_hz must be positive")

    @property
    def control_period(self) -> float:
        """Control period in seconds."""
        return 1.0 / self.control_rate_hz

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArmConfig":
        """Build a configuration from nested dictionaries."""
        data = dict(data or {})

        geometry = ArmGeometry(**data.pop("geometry", {"proximal_length": 0.5,
                                                        "forearm_length": 0.4}))
        proximal = MotionConstraints(**data.pop("proximal_constraints", {}))
        forearm = MotionConstraints(**data.pop("forearm_constraints", {}))
        gains = FeedbackGains(**data.pop("gains", {}))

        dynamics_data = data.pop("dynamics", None)
        dynamics = DynamicsConfig(**dynamics_data) if dynamics_data is not None else None

        return cls(
            geometry=geometry,
            proximal_constraints=proximal,
            forearm_constraints=forearm,
            gains=gains,
            dynamics=dynamics,
            **data
        )

    @classmethod
    def from_yaml(cls, path: str) -> "ArmConfig":
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            ArmConfig instance
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f)

        config = cls.from_dict(data)
        logger.info(f"Loaded arm configuration from {path}")
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert to nested dictionaries."""
        return {
            "geometry": asdict(self.geometry),
            "proximal_constraints": asdict(self.proximal_constraints),
            "forearm_constraints": asdict(self.forearm_constraints),
            "gains": asdict(self.gains),
            "dynamics": asdict(self.dynamics) if self.dynamics is not None else None,
            "control_rate_hz": self.control_rate_hz,
            "hold_final_setpoint": self.hold_final_setpoint,
        }

    def to_yaml(self, path: str) -> None:
        """
        Save configuration to YAML file.

        Args:
            path: Path to save configuration
        """
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

    def build_dynamics(self) -> Optional[TwoLinkDynamics]:
        """Dynamics model, or None when feedforward is disabled."""
        if self.dynamics is None:
            return None
        return self.dynamics.build(self.geometry)
