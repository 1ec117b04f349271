"""
Arm Controller Module
=====================

Double-jointed feedback controller converting measured vs. desired joint
state into motor voltages.

Control Law:
    For each joint i:

        e_p = setpoint.position_i - measured.position_i
        e_v = setpoint.velocity_i - measured.velocity_i

        V_i = kP_i·e_p + kD_i·e_v + V_ff,i

    V_ff is zero unless a TwoLinkDynamics model is supplied, in which case
    it is the voltage that realizes M(q)·q̈ + c(q, q̇) + G(q) at the setpoint.
    That term carries the coupling between the joints: the proximal command
    depends on the forearm angle, velocity and acceleration and vice versa.

Output is not clamped. Voltage limits belong to the actuation layer.

Author: Turret Arm Control Team
License: MIT
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .dynamics import TwoLinkDynamics
from .kinematics import JointState
from .trajectory import ArmSetpoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedbackGains:
    """
    PD gains for both joints.

    Attributes:
        proximal_kp: Proximal position gain (V/rad)
        proximal_kd: Proximal velocity gain (V·s/rad)
        forearm_kp: Forearm position gain (V/rad)
        forearm_kd: Forearm velocity gain (V·s/rad)
    """
    proximal_kp: float = 8.0
    proximal_kd: float = 0.5
    forearm_kp: float = 8.0
    forearm_kd: float = 0.5

    def __post_init__(self) -> None:
        """Validate gains."""
        for name in ("proximal_kp", "proximal_kd", "forearm_kp", "forearm_kd"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")


class DoubleJointedArmController:
    """
    Feedback controller for the proximal/forearm pair.

    Stateless with respect to control: every call depends only on its
    arguments. The last computed errors are kept for monitoring.

    Example:
        >>> controller = DoubleJointedArmController(FeedbackGains(8.0, 0.5, 6.0, 0.4))
        >>> v_proximal, v_forearm = controller.calculate(measured, setpoint)
        >>> actuator.set_voltages(v_proximal, v_forearm)
    """

    def __init__(
        self,
        gains: Optional[FeedbackGains] = None,
        dynamics: Optional[TwoLinkDynamics] = None
    ) -> None:
        """
        Initialize the controller.

        Args:
            gains: PD gains
            dynamics: Model for coupled feedforward (PD only if None)
        """
        self.gains = gains or FeedbackGains()
        self.dynamics = dynamics

        self._last_error: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)

        logger.info(
            f"DoubleJointedArmController initialized: {self.gains}, "
            f"feedforward={'on' if dynamics is not None else 'off'}"
        )

    @property
    def last_error(self) -> Tuple[float, float, float, float]:
        """(proximal_pos, forearm_pos, proximal_vel, forearm_vel) errors."""
        return self._last_error

    def calculate(
        self,
        measured: JointState,
        setpoint: ArmSetpoint
    ) -> Tuple[float, float]:
        """
        Compute joint voltages for one control tick.

        Args:
            measured: Current joint state
            setpoint: Desired joint state

        Returns:
            Tuple of (proximal_voltage, forearm_voltage)
        """
        g = self.gains

        e_p1 = setpoint.proximal.position - measured.proximal_angle
        e_p2 = setpoint.forearm.position - measured.forearm_angle
        e_v1 = setpoint.proximal.velocity - measured.proximal_velocity
        e_v2 = setpoint.forearm.velocity - measured.forearm_velocity

        self._last_error = (e_p1, e_p2, e_v1, e_v2)

        v_proximal = g.proximal_kp * e_p1 + g.proximal_kd * e_v1
        v_forearm = g.forearm_kp * e_p2 + g.forearm_kd * e_v2

        if self.dynamics is not None:
            ff_proximal, ff_forearm = self.dynamics.feedforward(setpoint)
            v_proximal += ff_proximal
            v_forearm += ff_forearm

        return v_proximal, v_forearm

    def get_status(self) -> Dict[str, Any]:
        """Controller status for monitoring."""
        e_p1, e_p2, e_v1, e_v2 = self._last_error
        return {
            "position_error": [e_p1, e_p2],
            "velocity_error": [e_v1, e_v2],
            "feedforward": self.dynamics is not None,
        }
