"""
Trajectory Generation Module
============================

Trapezoidal motion profiles for the proximal and forearm joints.

Mathematical Background:

    Trapezoidal Velocity Profile:
        For a displacement d with limits v_max and a_max, starting and
        ending at rest:

            t_a = v_max / a_max               (time to reach v_max)
            d_a = ½·a_max·t_a²                (distance covered while accelerating)

        If 2·d_a < d the profile cruises at v_max:

            Phase 1: Acceleration   (0        to t_a)
            Phase 2: Cruise         (t_a      to T - t_a)
            Phase 3: Deceleration   (T - t_a  to T)

            T = 2·t_a + (d - 2·d_a) / v_max

        Otherwise it degenerates to a triangle with no cruise phase:

            t_a    = sqrt(d / a_max)
            v_peak = a_max·t_a
            T      = 2·t_a

Profiles are pure functions of elapsed time. Querying never advances any
internal state, so a profile can be restarted or sampled out of order.

The two joints are profiled independently and generally finish at different
times; ProfilePair.total_duration is the later of the two.

Author: Turret Arm Control Team
License: MIT
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .kinematics import ArmKinematics, CartesianPoint

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class MotionConstraints:
    """
    Velocity and acceleration limits for one joint.

    Attributes:
        max_velocity: Maximum angular velocity (rad/s)
        max_acceleration: Maximum angular acceleration (rad/s²)
    """
    max_velocity: float = 2.0
    max_acceleration: float = 4.0

    def __post_init__(self) -> None:
        """Validate limits."""
        if not self.max_velocity > 0:
            raise ValueError("max_velocity must be positive")
        if not self.max_acceleration > 0:
            raise ValueError("max_acceleration must be positive")


@dataclass(frozen=True)
class TrapezoidSetpoint:
    """
    State of one joint at a queried time.

    Attributes:
        position: Joint angle (rad)
        velocity: Joint velocity (rad/s)
        acceleration: Commanded acceleration of the active phase (rad/s²)
    """
    position: float
    velocity: float = 0.0
    acceleration: float = 0.0

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.position, self.velocity, self.acceleration))


@dataclass(frozen=True)
class ArmSetpoint:
    """Target state for both joints."""
    proximal: TrapezoidSetpoint
    forearm: TrapezoidSetpoint

    @property
    def angles(self) -> Tuple[float, float]:
        return self.proximal.position, self.forearm.position

    @property
    def velocities(self) -> Tuple[float, float]:
        return self.proximal.velocity, self.forearm.velocity

    @property
    def accelerations(self) -> Tuple[float, float]:
        return self.proximal.acceleration, self.forearm.acceleration

    def is_finite(self) -> bool:
        """True if neither joint carries NaN or infinite values."""
        return self.proximal.is_finite() and self.forearm.is_finite()


# =============================================================================
# Trapezoid Profile
# =============================================================================

class TrapezoidProfile:
    """
    Rest-to-rest trapezoidal profile for a single joint.

    Example:
        >>> profile = TrapezoidProfile(MotionConstraints(2.0, 4.0), 0.0, 1.5)
        >>> profile.total_duration
        1.25
        >>> profile.query(profile.total_duration).position
        1.5
    """

    def __init__(
        self,
        constraints: MotionConstraints,
        start: float,
        goal: float
    ) -> None:
        """
        Build the profile.

        Args:
            constraints: Velocity and acceleration limits
            start: Starting position (rad)
            goal: Final position (rad)
        """
        if not (math.isfinite(start) and math.isfinite(goal)):
            raise ValueError(f"Profile endpoints must be finite, got {start} -> {goal}")

        self.constraints = constraints
        self.start = float(start)
        self.goal = float(goal)

        delta = self.goal - self.start
        self._direction = 1.0 if delta >= 0 else -1.0
        self._distance = abs(delta)

        v_max = constraints.max_velocity
        a_max = constraints.max_acceleration

        # Time and distance to accelerate to max velocity
        t_acc = v_max / a_max
        d_acc = 0.5 * a_max * t_acc**2

        if 2 * d_acc >= self._distance:
            # Triangular profile (can't reach max velocity)
            t_acc = math.sqrt(self._distance / a_max)
            t_cruise = 0.0
            v_peak = a_max * t_acc
        else:
            # Trapezoidal profile
            t_cruise = (self._distance - 2 * d_acc) / v_max
            v_peak = v_max

        self._t_acc = t_acc
        self._t_cruise = t_cruise
        self._v_peak = v_peak
        self._a_max = a_max
        self._total_duration = 2 * t_acc + t_cruise

    @property
    def total_duration(self) -> float:
        """Time from start to rest at the goal (s)."""
        return self._total_duration

    @property
    def peak_velocity(self) -> float:
        """Magnitude of the highest velocity reached (rad/s)."""
        return self._v_peak

    @property
    def is_triangular(self) -> bool:
        """True when the displacement is too short to cruise."""
        return self._t_cruise == 0.0

    def is_finished(self, t: float) -> bool:
        return t >= self._total_duration

    def query(self, t: float) -> TrapezoidSetpoint:
        """
        Evaluate the profile at an elapsed time.

        Times before zero return the start state and times past the end
        return the goal state at rest.

        Args:
            t: Time since profile start (s)

        Returns:
            Setpoint at time t
        """
        if t <= 0.0:
            return TrapezoidSetpoint(self.start, 0.0, 0.0)
        if t >= self._total_duration:
            return TrapezoidSetpoint(self.goal, 0.0, 0.0)

        t_acc = self._t_acc
        t_cruise = self._t_cruise
        a_max = self._a_max
        v_peak = self._v_peak

        if t <= t_acc:
            # Acceleration phase
            s = 0.5 * a_max * t**2
            v = a_max * t
            a = a_max
        elif t <= t_acc + t_cruise:
            # Cruise phase
            s = 0.5 * a_max * t_acc**2 + v_peak * (t - t_acc)
            v = v_peak
            a = 0.0
        else:
            # Deceleration phase
            t_decel = t - t_acc - t_cruise
            s = (0.5 * a_max * t_acc**2 +
                 v_peak * t_cruise +
                 v_peak * t_decel - 0.5 * a_max * t_decel**2)
            v = v_peak - a_max * t_decel
            a = -a_max

        d = self._direction
        return TrapezoidSetpoint(self.start + d * s, d * v, d * a)


# =============================================================================
# Profile Pair
# =============================================================================

@dataclass(frozen=True)
class ProfilePair:
    """Independent proximal and forearm profiles for one move."""
    proximal: TrapezoidProfile
    forearm: TrapezoidProfile

    @property
    def total_duration(self) -> float:
        """Duration of the slower joint."""
        return max(self.proximal.total_duration, self.forearm.total_duration)

    @property
    def goal_angles(self) -> Tuple[float, float]:
        return self.proximal.goal, self.forearm.goal

    def sample(self, t: float) -> ArmSetpoint:
        """Query both joints at the same elapsed time."""
        return ArmSetpoint(
            proximal=self.proximal.query(t),
            forearm=self.forearm.query(t),
        )

    def discretize(self, timestep: float) -> List[Tuple[float, ArmSetpoint]]:
        """
        Sample the pair at a fixed timestep, including both endpoints.

        Args:
            timestep: Sampling period (s)

        Returns:
            List of (time, setpoint) tuples
        """
        if timestep <= 0:
            raise ValueError("timestep must be positive")

        duration = self.total_duration
        n_points = int(np.ceil(duration / timestep)) + 1
        times = np.linspace(0, duration, n_points)

        return [(float(t), self.sample(float(t))) for t in times]


# =============================================================================
# Motion Profile Generator
# =============================================================================

class MotionProfileGenerator:
    """
    Builds per-joint trapezoidal profiles between arm configurations.

    Example:
        >>> kin = ArmKinematics(ArmGeometry(0.5, 0.4))
        >>> generator = MotionProfileGenerator(kin, MotionConstraints(2.0, 4.0))
        >>> pair = generator.build_pair(
        ...     CartesianPoint(0.8, 0.1), CartesianPoint(0.6, 0.3)
        ... )
        >>> setpoint = pair.sample(0.1)
    """

    def __init__(
        self,
        kinematics: ArmKinematics,
        proximal_constraints: Optional[MotionConstraints] = None,
        forearm_constraints: Optional[MotionConstraints] = None
    ) -> None:
        """
        Initialize the generator.

        Args:
            kinematics: Solver used to convert Cartesian endpoints
            proximal_constraints: Limits for the proximal joint
            forearm_constraints: Limits for the forearm joint (defaults to
                the proximal limits)
        """
        self.kinematics = kinematics
        self.proximal_constraints = proximal_constraints or MotionConstraints()
        self.forearm_constraints = forearm_constraints or self.proximal_constraints

        logger.info(
            f"MotionProfileGenerator initialized: "
            f"proximal={self.proximal_constraints}, forearm={self.forearm_constraints}"
        )

    def build_joint_pair(
        self,
        start_angles: Tuple[float, float],
        end_angles: Tuple[float, float],
        constraints: Optional[MotionConstraints] = None
    ) -> ProfilePair:
        """
        Build profiles between two joint-angle pairs.

        Args:
            start_angles: (proximal, forearm) start angles
            end_angles: (proximal, forearm) goal angles
            constraints: Overrides the limits of both joints if given

        Returns:
            ProfilePair for the move
        """
        proximal_limits = constraints or self.proximal_constraints
        forearm_limits = constraints or self.forearm_constraints

        pair = ProfilePair(
            proximal=TrapezoidProfile(proximal_limits, start_angles[0], end_angles[0]),
            forearm=TrapezoidProfile(forearm_limits, start_angles[1], end_angles[1]),
        )

        logger.debug(
            f"Profiles built: proximal {pair.proximal.total_duration:.3f}s, "
            f"forearm {pair.forearm.total_duration:.3f}s"
        )

        return pair

    def build_pair(
        self,
        start: CartesianPoint,
        end: CartesianPoint,
        constraints: Optional[MotionConstraints] = None
    ) -> ProfilePair:
        """
        Build profiles between two Cartesian positions.

        Both endpoints go through inverse kinematics first, so an
        unreachable endpoint raises before any profile is created.

        Args:
            start: Starting end-effector position
            end: Goal end-effector position
            constraints: Overrides the limits of both joints if given

        Returns:
            ProfilePair for the move

        Raises:
            KinematicsError: If either endpoint is unreachable
        """
        start_angles = self.kinematics.inverse(start)
        end_angles = self.kinematics.inverse(end)

        return self.build_joint_pair(start_angles, end_angles, constraints)
