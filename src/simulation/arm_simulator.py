"""
Arm Simulator Module
====================

Simple dynamic simulation of the two-link arm, standing in for the motor
controllers and encoders. Implements both the sensing and the actuation
collaborator of the control loop.

Features:
    - Coupled two-link rigid-body dynamics with gravity
    - DC motor voltage-to-torque model with back-EMF
    - Voltage clamping at the motor controller limit
    - Viscous joint damping
    - Fixed-step semi-implicit Euler integration

Author: Turret Arm Control Team
License: MIT
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ..control.dynamics import DCMotor, LinkProperties, TwoLinkDynamics
from ..control.kinematics import JointState

logger = logging.getLogger(__name__)


@dataclass
class SimulatorConfig:
    """
    Configuration for arm simulator.

    Attributes:
        proximal_link: Proximal link mass properties
        forearm_link: Forearm link mass properties
        proximal_motor: Proximal drive model
        forearm_motor: Forearm drive model
        gravity: Gravitational acceleration along -y (m/s²)
        time_step: Integration step (s)
        max_voltage: Motor controller output limit (V)
        joint_damping: Viscous damping per joint (Nm·s/rad)
        initial_angles: Starting (proximal, forearm) angles (rad)
    """
    proximal_link: LinkProperties = field(
        default_factory=lambda: LinkProperties(mass=3.0, length=0.5)
    )
    forearm_link: LinkProperties = field(
        default_factory=lambda: LinkProperties(mass=2.0, length=0.4)
    )
    proximal_motor: DCMotor = field(default_factory=lambda: DCMotor.neo(2, 50.0))
    forearm_motor: DCMotor = field(default_factory=lambda: DCMotor.neo(1, 50.0))
    gravity: float = 9.81
    time_step: float = 0.001  # 1kHz physics
    max_voltage: float = 12.0
    joint_damping: Tuple[float, float] = (0.05, 0.05)
    initial_angles: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self) -> None:
        if self.time_step <= 0:
            raise ValueError("time_step must be positive")
        if self.time_step > 0.005:
            logger.warning("Large time step may cause instability")
        if self.max_voltage <= 0:
            raise ValueError("max_voltage must be positive")


class SimulatedArm:
    """
    Simulated proximal/forearm drive.

    Voltages set through set_voltages() are held until the next call, the
    way a motor controller holds its last command.

    Example:
        >>> arm = SimulatedArm(SimulatorConfig(gravity=0.0))
        >>> arm.set_voltages(2.0, -1.0)
        >>> arm.advance(0.02)
        >>> state = arm.read_joint_state()
    """

    def __init__(self, config: Optional[SimulatorConfig] = None) -> None:
        """
        Initialize simulator.

        Args:
            config: Simulator configuration
        """
        self.config = config or SimulatorConfig()

        self.dynamics = TwoLinkDynamics(
            self.config.proximal_link,
            self.config.forearm_link,
            self.config.proximal_motor,
            self.config.forearm_motor,
            gravity=self.config.gravity,
        )
        self._damping = np.array(self.config.joint_damping, dtype=float)

        self._positions = np.array(self.config.initial_angles, dtype=float)
        self._velocities = np.zeros(2)
        self._voltages = np.zeros(2)
        self._time = 0.0

        self.command_history: List[Tuple[float, float]] = []

        logger.info(
            f"SimulatedArm: dt={self.config.time_step}s, "
            f"g={self.config.gravity}m/s², limit={self.config.max_voltage}V"
        )

    @property
    def time(self) -> float:
        """Simulated time (s)."""
        return self._time

    @property
    def voltages(self) -> Tuple[float, float]:
        """Clamped voltages currently applied."""
        return float(self._voltages[0]), float(self._voltages[1])

    # =========================================================================
    # Collaborator Interface
    # =========================================================================

    def read_joint_state(self) -> JointState:
        """Current joint state."""
        return JointState(
            proximal_angle=float(self._positions[0]),
            forearm_angle=float(self._positions[1]),
            proximal_velocity=float(self._velocities[0]),
            forearm_velocity=float(self._velocities[1]),
        )

    def set_voltages(self, proximal: float, forearm: float) -> None:
        """Apply voltages, clamped to the controller limit."""
        self.command_history.append((proximal, forearm))
        limit = self.config.max_voltage
        self._voltages = np.clip([proximal, forearm], -limit, limit)

    # =========================================================================
    # Integration
    # =========================================================================

    def _joint_torques(self) -> NDArray:
        motors = (self.config.proximal_motor, self.config.forearm_motor)
        return np.array([
            motor.torque(float(v), float(w))
            for motor, v, w in zip(motors, self._voltages, self._velocities)
        ])

    def step(self) -> None:
        """Advance simulation by one time step."""
        dt = self.config.time_step

        torque = self._joint_torques() - self._damping * self._velocities
        accel = self.dynamics.forward_dynamics(self._positions, self._velocities, torque)

        # Semi-implicit Euler
        self._velocities = self._velocities + accel * dt
        self._positions = self._positions + self._velocities * dt
        self._time += dt

    def advance(self, duration: float) -> None:
        """Advance simulation by approximately duration seconds."""
        n_steps = max(1, int(round(duration / self.config.time_step)))
        for _ in range(n_steps):
            self.step()

    def reset(
        self,
        angles: Optional[Tuple[float, float]] = None,
        velocities: Optional[Tuple[float, float]] = None
    ) -> None:
        """Reset state and clear applied voltages."""
        self._positions = np.array(
            angles if angles is not None else self.config.initial_angles, dtype=float
        )
        self._velocities = np.array(
            velocities if velocities is not None else (0.0, 0.0), dtype=float
        )
        self._voltages = np.zeros(2)
        self._time = 0.0
        self.command_history.clear()
