"""
Arm Dynamics Module
===================

Rigid-body dynamics of the two-link arm and a DC motor voltage model, used
for feedforward in the double-jointed controller and by the simulator.

Mathematical Background:

    Both joints are driven relative to the base frame (the forearm through a
    chain from the turret), so the generalized coordinates are the absolute
    angles q = [θ1, θ2] and the motor torques act on them directly.

    Equation of motion:
        τ = M(q)·q̈ + c(q, q̇) + G(q)

        M(q) = ⎡ α          β·cos(θ1-θ2) ⎤
               ⎣ β·cos(θ1-θ2)   δ        ⎦

        α = m1·r1² + I1 + m2·L1²
        β = m2·L1·r2
        δ = m2·r2² + I2

        c(q, q̇) = [ β·sin(θ1-θ2)·θ̇2²,  -β·sin(θ1-θ2)·θ̇1² ]
        G(q)    = [ g·(m1·r1 + m2·L1)·cos θ1,  g·m2·r2·cos θ2 ]

    where r_i is the distance from a link's pivot to its center of mass and
    I_i its inertia about the center of mass.

    DC motor (joint side, gear ratio N):
        V = τ·R / (N·Kt) + ω·N / Kv

Author: Turret Arm Control Team
License: MIT
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from .trajectory import ArmSetpoint

logger = logging.getLogger(__name__)

FloatArray = NDArray[np.floating]

RPM_TO_RAD_PER_SEC = 2.0 * math.pi / 60.0


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class LinkProperties:
    """
    Mass properties of one link.

    Attributes:
        mass: Link mass (kg)
        length: Pivot-to-pivot length (m)
        com_distance: Pivot to center of mass (m), defaults to length / 2
        inertia: Moment of inertia about the center of mass (kg·m²),
            defaults to a uniform rod
    """
    mass: float
    length: float
    com_distance: Optional[float] = None
    inertia: Optional[float] = None

    def __post_init__(self) -> None:
        """Fill defaults and validate."""
        if self.mass <= 0:
            raise ValueError("mass must be positive")
        if self.length <= 0:
            raise ValueError("length must be positive")
        if self.com_distance is None:
            self.com_distance = self.length / 2
        if self.inertia is None:
            self.inertia = self.mass * self.length**2 / 12.0


@dataclass
class DCMotor:
    """
    Brushed/brushless DC motor with a gearbox.

    Attributes:
        nominal_voltage: Voltage the specs were measured at (V)
        stall_torque: Motor-side stall torque (Nm)
        stall_current: Stall current (A)
        free_current: No-load current (A)
        free_speed: Motor-side no-load speed (rad/s)
        gear_ratio: Motor revolutions per joint revolution
    """
    nominal_voltage: float = 12.0
    stall_torque: float = 2.6
    stall_current: float = 105.0
    free_current: float = 1.8
    free_speed: float = 5676.0 * RPM_TO_RAD_PER_SEC
    gear_ratio: float = 1.0

    def __post_init__(self) -> None:
        """Validate motor constants."""
        for name in ("nominal_voltage", "stall_torque", "stall_current", "free_speed", "gear_ratio"):
            if not getattr(self, name) > 0:
                raise ValueError(f"{name} must be positive")
        if not 0 <= self.free_current < self.stall_current:
            raise ValueError("free_current must be in [0, stall_current)")

    @classmethod
    def neo(cls, count: int = 1, gear_ratio: float = 1.0) -> "DCMotor":
        """
        REV NEO brushless motors ganged on one gearbox.

        Args:
            count: Number of motors driving the joint
            gear_ratio: Gearbox reduction
        """
        return cls(
            stall_torque=2.6 * count,
            stall_current=105.0 * count,
            free_current=1.8 * count,
            gear_ratio=gear_ratio,
        )

    @property
    def resistance(self) -> float:
        """Winding resistance (Ω)."""
        return self.nominal_voltage / self.stall_current

    @property
    def kt(self) -> float:
        """Torque constant (Nm/A)."""
        return self.stall_torque / self.stall_current

    @property
    def kv(self) -> float:
        """Velocity constant (rad/s per V)."""
        return self.free_speed / (self.nominal_voltage - self.resistance * self.free_current)

    def voltage(self, torque: float, speed: float) -> float:
        """Voltage that produces a joint torque at a joint speed."""
        current = torque / (self.gear_ratio * self.kt)
        return current * self.resistance + speed * self.gear_ratio / self.kv

    def torque(self, voltage: float, speed: float) -> float:
        """Joint torque produced by a voltage at a joint speed."""
        current = (voltage - speed * self.gear_ratio / self.kv) / self.resistance
        return self.gear_ratio * self.kt * current


# =============================================================================
# Two-Link Dynamics
# =============================================================================

class TwoLinkDynamics:
    """
    Joint-space dynamic model of the proximal/forearm pair.

    Example:
        >>> dyn = TwoLinkDynamics(
        ...     LinkProperties(mass=3.0, length=0.5),
        ...     LinkProperties(mass=2.0, length=0.4),
        ...     DCMotor.neo(2, gear_ratio=50.0),
        ...     DCMotor.neo(1, gear_ratio=50.0),
        ... )
        >>> volts = dyn.feedforward(setpoint)
    """

    def __init__(
        self,
        proximal: LinkProperties,
        forearm: LinkProperties,
        proximal_motor: Optional[DCMotor] = None,
        forearm_motor: Optional[DCMotor] = None,
        gravity: float = 9.81
    ) -> None:
        """
        Initialize the model.

        Args:
            proximal: Proximal link mass properties
            forearm: Forearm link mass properties
            proximal_motor: Motor model driving the proximal joint
            forearm_motor: Motor model driving the forearm joint
            gravity: Gravitational acceleration along -y (m/s²)
        """
        self.proximal = proximal
        self.forearm = forearm
        self.proximal_motor = proximal_motor or DCMotor()
        self.forearm_motor = forearm_motor or DCMotor()
        self.gravity = gravity

        m1, r1, I1 = proximal.mass, proximal.com_distance, proximal.inertia
        m2, r2, I2 = forearm.mass, forearm.com_distance, forearm.inertia
        L1 = proximal.length

        self._alpha = m1 * r1**2 + I1 + m2 * L1**2
        self._beta = m2 * L1 * r2
        self._delta = m2 * r2**2 + I2
        self._gravity_proximal = gravity * (m1 * r1 + m2 * L1)
        self._gravity_forearm = gravity * m2 * r2

        logger.info(
            f"TwoLinkDynamics initialized: m1={m1}kg, m2={m2}kg, g={gravity}m/s²"
        )

    def mass_matrix(self, q: FloatArray) -> FloatArray:
        """Inertia matrix M(q)."""
        coupling = self._beta * np.cos(q[0] - q[1])
        return np.array([
            [self._alpha, coupling],
            [coupling, self._delta],
        ])

    def coriolis(self, q: FloatArray, q_dot: FloatArray) -> FloatArray:
        """Velocity-product torques c(q, q̇)."""
        s = self._beta * np.sin(q[0] - q[1])
        return np.array([s * q_dot[1]**2, -s * q_dot[0]**2])

    def gravity_torque(self, q: FloatArray) -> FloatArray:
        """Torques needed to hold q against gravity."""
        return np.array([
            self._gravity_proximal * np.cos(q[0]),
            self._gravity_forearm * np.cos(q[1]),
        ])

    def inverse_dynamics(
        self,
        q: FloatArray,
        q_dot: FloatArray,
        q_ddot: FloatArray
    ) -> FloatArray:
        """Joint torques that realize an acceleration."""
        q = np.asarray(q, dtype=float)
        q_dot = np.asarray(q_dot, dtype=float)
        q_ddot = np.asarray(q_ddot, dtype=float)

        return self.mass_matrix(q) @ q_ddot + self.coriolis(q, q_dot) + self.gravity_torque(q)

    def forward_dynamics(
        self,
        q: FloatArray,
        q_dot: FloatArray,
        torque: FloatArray
    ) -> FloatArray:
        """Joint accelerations produced by applied torques."""
        q = np.asarray(q, dtype=float)
        q_dot = np.asarray(q_dot, dtype=float)
        torque = np.asarray(torque, dtype=float)

        rhs = torque - self.coriolis(q, q_dot) - self.gravity_torque(q)
        return np.linalg.solve(self.mass_matrix(q), rhs)

    def feedforward(self, setpoint: ArmSetpoint) -> Tuple[float, float]:
        """
        Voltages that track a setpoint with zero feedback error.

        Args:
            setpoint: Desired state including profile acceleration

        Returns:
            Tuple of (proximal_voltage, forearm_voltage)
        """
        torque = self.inverse_dynamics(
            setpoint.angles, setpoint.velocities, setpoint.accelerations
        )

        return (
            self.proximal_motor.voltage(float(torque[0]), setpoint.proximal.velocity),
            self.forearm_motor.voltage(float(torque[1]), setpoint.forearm.velocity),
        )
