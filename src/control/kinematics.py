"""
Kinematics Module
=================

Forward and inverse kinematics for the two-link (proximal/forearm) planar arm
carried on the turret.

Mathematical Background:

    Absolute Angle Convention:
        Both joint angles are measured from the base frame x-axis, not from
        the previous link. The forearm angle is therefore the world bearing
        of the forearm, independent of the proximal link.

    Forward Kinematics:
        x = L1·cos(θ1) + L2·cos(θ2)
        y = L1·sin(θ1) + L2·sin(θ2)

    Inverse Kinematics (law of cosines):
        r  = sqrt(x² + y²)
        φ  = atan2(y, x), bearing of the goal from the base
        θ1 = φ + acos((r² + L1² - L2²) / (2·r·L1))
        θ2 = φ - acos((r² + L2² - L1²) / (2·r·L2))

        The fixed signs select the elbow-up branch; no branch search is done.
        The goal must lie in the annulus |L1 - L2| <= r <= L1 + L2.

        For x > 0, atan2(y, x) equals atan(y / x). For x < 0 it differs by π
        on purpose, so goals behind the pivot land in the correct quadrant
        instead of being mirrored through the base. x == 0 is rejected.

Author: Turret Arm Control Team
License: MIT
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

FloatArray = NDArray[np.floating]


# =============================================================================
# Errors
# =============================================================================

class KinematicsError(ValueError):
    """Base class for kinematic failures."""


class OutOfReachError(KinematicsError):
    """Cartesian goal lies outside the reachable annulus."""


class DegenerateGeometryError(KinematicsError):
    """Non-positive link length, or a goal on the x == 0 singularity."""


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class JointState:
    """
    Instantaneous arm configuration.

    Attributes:
        proximal_angle: Proximal link angle from the base x-axis (rad)
        forearm_angle: Forearm angle from the base x-axis (rad)
        proximal_velocity: Proximal angular velocity (rad/s)
        forearm_velocity: Forearm angular velocity (rad/s)
    """
    proximal_angle: float = 0.0
    forearm_angle: float = 0.0
    proximal_velocity: float = 0.0
    forearm_velocity: float = 0.0

    @property
    def angles(self) -> Tuple[float, float]:
        """Joint angles as a (proximal, forearm) pair."""
        return self.proximal_angle, self.forearm_angle

    @property
    def velocities(self) -> Tuple[float, float]:
        """Joint velocities as a (proximal, forearm) pair."""
        return self.proximal_velocity, self.forearm_velocity

    def is_finite(self) -> bool:
        """True if no field is NaN or infinite."""
        return bool(np.all(np.isfinite(self.angles + self.velocities)))


@dataclass(frozen=True)
class CartesianPoint:
    """End-effector position in the arm base frame (m)."""
    x: float
    y: float

    @property
    def radius(self) -> float:
        """Distance from the base pivot."""
        return math.hypot(self.x, self.y)

    def distance_to(self, other: "CartesianPoint") -> float:
        """Euclidean distance to another point."""
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass(frozen=True)
class ArmGeometry:
    """
    Link lengths of the arm.

    Attributes:
        proximal_length: Shoulder pivot to elbow pivot (m)
        forearm_length: Elbow pivot to end effector (m)
    """
    proximal_length: float
    forearm_length: float

    def __post_init__(self) -> None:
        """Validate link lengths."""
        if not self.proximal_length > 0:
            raise DegenerateGeometryError(
                f"proximal_length must be positive, got {self.proximal_length}"
            )
        if not self.forearm_length > 0:
            raise DegenerateGeometryError(
                f"forearm_length must be positive, got {self.forearm_length}"
            )

    @property
    def max_reach(self) -> float:
        """Outer radius of the reachable annulus."""
        return self.proximal_length + self.forearm_length

    @property
    def min_reach(self) -> float:
        """Inner radius of the reachable annulus."""
        return abs(self.proximal_length - self.forearm_length)


# =============================================================================
# Kinematics Solver
# =============================================================================

class ArmKinematics:
    """
    Closed-form kinematic model of the two-link arm.

    Stateless apart from the fixed geometry, so a single instance can be
    shared between the profile generator and the control loop.

    Example:
        >>> kin = ArmKinematics(ArmGeometry(0.5, 0.4))
        >>> theta1, theta2 = kin.inverse(CartesianPoint(0.6, 0.3))
        >>> kin.forward_angles(theta1, theta2)
        CartesianPoint(x=0.6..., y=0.3...)
    """

    def __init__(self, geometry: ArmGeometry) -> None:
        """
        Initialize arm kinematics.

        Args:
            geometry: Link lengths
        """
        self.geometry = geometry

        logger.info(
            f"ArmKinematics initialized: L1={geometry.proximal_length}m, "
            f"L2={geometry.forearm_length}m"
        )

    def forward(self, state: JointState) -> CartesianPoint:
        """
        Compute the end-effector position for a joint state.

        Args:
            state: Measured or desired joint state

        Returns:
            End-effector position
        """
        return self.forward_angles(state.proximal_angle, state.forearm_angle)

    def forward_angles(self, proximal_angle: float, forearm_angle: float) -> CartesianPoint:
        """Forward kinematics from a bare angle pair."""
        L1 = self.geometry.proximal_length
        L2 = self.geometry.forearm_length

        x = L1 * math.cos(proximal_angle) + L2 * math.cos(forearm_angle)
        y = L1 * math.sin(proximal_angle) + L2 * math.sin(forearm_angle)

        return CartesianPoint(x, y)

    def elbow_position(self, state: JointState) -> CartesianPoint:
        """Position of the elbow pivot."""
        L1 = self.geometry.proximal_length
        return CartesianPoint(
            L1 * math.cos(state.proximal_angle),
            L1 * math.sin(state.proximal_angle),
        )

    def _check_goal(self, point: CartesianPoint) -> float:
        """Validate a goal before any trigonometry; return its radius."""
        if not (math.isfinite(point.x) and math.isfinite(point.y)):
            raise OutOfReachError(f"Goal ({point.x}, {point.y}) is not finite")

        if point.x == 0:
            raise DegenerateGeometryError(
                f"Goal ({point.x}, {point.y}) lies on the x == 0 singularity"
            )

        r = point.radius
        if r > self.geometry.max_reach or r < self.geometry.min_reach:
            raise OutOfReachError(
                f"Goal ({point.x:.4f}, {point.y:.4f}) at r={r:.4f}m is outside "
                f"[{self.geometry.min_reach:.4f}, {self.geometry.max_reach:.4f}]m"
            )

        return r

    def is_reachable(self, point: CartesianPoint) -> bool:
        """Check whether inverse kinematics accepts the goal."""
        try:
            self._check_goal(point)
        except KinematicsError:
            return False
        return True

    def inverse(self, point: CartesianPoint) -> Tuple[float, float]:
        """
        Compute joint angles that place the end effector at a point.

        Args:
            point: Goal in the base frame

        Returns:
            Tuple of (proximal_angle, forearm_angle)

        Raises:
            DegenerateGeometryError: If point.x == 0
            OutOfReachError: If the point is outside the reachable annulus
        """
        r = self._check_goal(point)

        L1 = self.geometry.proximal_length
        L2 = self.geometry.forearm_length

        bearing = math.atan2(point.y, point.x)

        # Clip only absorbs rounding at r == L1 + L2 or r == |L1 - L2|
        cos_shoulder = float(np.clip((r**2 + L1**2 - L2**2) / (2 * r * L1), -1.0, 1.0))
        cos_elbow = float(np.clip((r**2 + L2**2 - L1**2) / (2 * r * L2), -1.0, 1.0))

        proximal_angle = bearing + math.acos(cos_shoulder)
        forearm_angle = bearing - math.acos(cos_elbow)

        logger.debug(
            f"IK ({point.x:.4f}, {point.y:.4f}) -> "
            f"({proximal_angle:.4f}, {forearm_angle:.4f}) rad"
        )

        return proximal_angle, forearm_angle

    def jacobian(self, proximal_angle: float, forearm_angle: float) -> FloatArray:
        """
        Compute the 2x2 Jacobian in absolute-angle coordinates.

        Each column depends on one joint only:
            [ẋ]   [-L1·sin θ1  -L2·sin θ2] [θ̇1]
            [ẏ] = [ L1·cos θ1   L2·cos θ2] [θ̇2]
        """
        L1 = self.geometry.proximal_length
        L2 = self.geometry.forearm_length

        return np.array([
            [-L1 * np.sin(proximal_angle), -L2 * np.sin(forearm_angle)],
            [L1 * np.cos(proximal_angle), L2 * np.cos(forearm_angle)],
        ])

    def end_effector_velocity(self, state: JointState) -> Tuple[float, float]:
        """Cartesian end-effector velocity (vx, vy) in m/s."""
        J = self.jacobian(state.proximal_angle, state.forearm_angle)
        v = J @ np.array(state.velocities)
        return float(v[0]), float(v[1])
