"""
Arm Control Loop Module
=======================

Fixed-rate orchestration of kinematics, motion profiles and feedback.

State Machine:

    IDLE ──set_goal──▶ TRACKING ──profile done──▶ IDLE
                         │  ▲
                         └──┘ set_goal (restart from measured state)

    stop() from any state emits zero voltage once and returns to IDLE.

Tick Sequence:
    1. Read the measured JointState from the sensor
    2. Apply a pending stop or goal
    3. Sample both profiles at the elapsed time
    4. Compute voltages with the feedback controller
    5. Forward voltages to the actuator

Thread Safety:
    Ticks run on one thread. set_goal(), set_joint_goal() and stop() may be
    called from any thread; they only write a lock-protected "latest
    command" slot that tick() consumes once per period.

Author: Turret Arm Control Team
License: MIT
"""

from __future__ import annotations

import logging
import math
import threading
import time
from enum import Enum, auto
from typing import Any, Dict, Optional, Protocol, Tuple

from .config import ArmConfig
from .controller import DoubleJointedArmController
from .kinematics import ArmKinematics, CartesianPoint, JointState, KinematicsError
from .trajectory import ArmSetpoint, MotionProfileGenerator, ProfilePair

logger = logging.getLogger(__name__)


# =============================================================================
# Collaborator Protocols
# =============================================================================

class JointSensor(Protocol):
    """Source of measured joint state."""

    def read_joint_state(self) -> JointState:
        """Current absolute joint angles and velocities."""
        ...


class ArmActuator(Protocol):
    """Sink for joint voltage commands."""

    def set_voltages(self, proximal: float, forearm: float) -> None:
        """Apply voltages; the implementation clamps to hardware limits."""
        ...


class LoopState(Enum):
    """Control loop states."""
    IDLE = auto()       # No setpoint, no commands issued
    TRACKING = auto()   # Following a profile pair


# =============================================================================
# Control Loop
# =============================================================================

class ArmControlLoop:
    """
    Closed-loop controller for the proximal/forearm pair.

    Example:
        >>> loop = ArmControlLoop.from_config(config, sensor=arm, actuator=arm)
        >>> loop.set_goal(CartesianPoint(0.6, 0.3))
        >>> while loop.state == LoopState.TRACKING or loop.has_pending_command:
        ...     loop.tick()
    """

    def __init__(
        self,
        kinematics: ArmKinematics,
        generator: MotionProfileGenerator,
        controller: DoubleJointedArmController,
        sensor: JointSensor,
        actuator: ArmActuator,
        control_period: float = 0.02,
        hold_final_setpoint: bool = False
    ) -> None:
        """
        Initialize the control loop.

        Args:
            kinematics: Solver used to validate Cartesian goals
            generator: Profile generator
            controller: Feedback controller
            sensor: Measured joint state source
            actuator: Voltage sink
            control_period: Tick period (s)
            hold_final_setpoint: Keep tracking the goal after the profile
                ends instead of going idle
        """
        if control_period <= 0:
            raise ValueError("control_period must be positive")

        self.kinematics = kinematics
        self.generator = generator
        self.controller = controller
        self.sensor = sensor
        self.actuator = actuator
        self.control_period = control_period
        self.hold_final_setpoint = hold_final_setpoint

        # Owned by the tick thread
        self._state = LoopState.IDLE
        self._profiles: Optional[ProfilePair] = None
        self._profile_ticks = 0
        self._setpoint: Optional[ArmSetpoint] = None
        self._measured = JointState()
        self._last_voltages: Tuple[float, float] = (0.0, 0.0)
        self._tick_count = 0

        # Handoff slot shared with goal producers
        self._command_lock = threading.Lock()
        self._pending_goal: Optional[Tuple[float, float]] = None
        self._stop_requested = False

        # Background loop
        self._control_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        logger.info(
            f"ArmControlLoop initialized: {1.0 / control_period:.1f}Hz, "
            f"hold_final_setpoint={hold_final_setpoint}"
        )

    @classmethod
    def from_config(
        cls,
        config: ArmConfig,
        sensor: JointSensor,
        actuator: ArmActuator
    ) -> "ArmControlLoop":
        """
        Build the full control stack from a configuration.

        Args:
            config: Arm configuration
            sensor: Measured joint state source
            actuator: Voltage sink

        Returns:
            ArmControlLoop instance
        """
        kinematics = ArmKinematics(config.geometry)
        generator = MotionProfileGenerator(
            kinematics, config.proximal_constraints, config.forearm_constraints
        )
        controller = DoubleJointedArmController(config.gains, config.build_dynamics())

        return cls(
            kinematics,
            generator,
            controller,
            sensor,
            actuator,
            control_period=config.control_period,
            hold_final_setpoint=config.hold_final_setpoint,
        )

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def state(self) -> LoopState:
        """Current loop state."""
        return self._state

    @property
    def setpoint(self) -> Optional[ArmSetpoint]:
        """Setpoint used on the last tick, None when idle."""
        return self._setpoint

    @property
    def profiles(self) -> Optional[ProfilePair]:
        """Active profile pair, None when idle."""
        return self._profiles

    @property
    def elapsed(self) -> float:
        """Time into the active profile (s)."""
        return self._profile_ticks * self.control_period

    @property
    def has_pending_command(self) -> bool:
        """True if a goal or stop is waiting for the next tick."""
        with self._command_lock:
            return self._pending_goal is not None or self._stop_requested

    def _set_state(self, state: LoopState) -> None:
        if state != self._state:
            logger.info(f"Loop state: {self._state.name} → {state.name}")
        self._state = state

    # =========================================================================
    # Commands
    # =========================================================================

    def set_goal(self, point: CartesianPoint) -> Tuple[float, float]:
        """
        Request a move to a Cartesian position.

        The goal is solved immediately so an unreachable point is reported
        to the caller and never reaches the tick thread. The move starts on
        the next tick, replacing any active profile.

        Args:
            point: Goal in the arm base frame

        Returns:
            Goal joint angles (proximal, forearm)

        Raises:
            KinematicsError: If the goal is unreachable; tracking continues
                on the previous profile
        """
        try:
            angles = self.kinematics.inverse(point)
        except KinematicsError as e:
            logger.warning(f"Goal rejected: {e}")
            raise

        self._post_goal(angles)
        return angles

    def set_joint_goal(self, proximal_angle: float, forearm_angle: float) -> None:
        """
        Request a move to a joint-angle pair.

        Raises:
            ValueError: If either angle is not finite
        """
        if not (math.isfinite(proximal_angle) and math.isfinite(forearm_angle)):
            logger.warning(
                f"Goal rejected: non-finite angles ({proximal_angle}, {forearm_angle})"
            )
            raise ValueError("Joint goal must be finite")

        self._post_goal((float(proximal_angle), float(forearm_angle)))

    def _post_goal(self, angles: Tuple[float, float]) -> None:
        with self._command_lock:
            self._pending_goal = angles
            self._stop_requested = False
        logger.debug(f"Goal queued: ({angles[0]:.4f}, {angles[1]:.4f}) rad")

    def stop(self) -> None:
        """Request an explicit stop; any queued goal is discarded."""
        with self._command_lock:
            self._stop_requested = True
            self._pending_goal = None
        logger.debug("Stop queued")

    def _take_commands(self) -> Tuple[bool, Optional[Tuple[float, float]]]:
        with self._command_lock:
            stop_requested = self._stop_requested
            goal = self._pending_goal
            self._stop_requested = False
            self._pending_goal = None
        return stop_requested, goal

    # =========================================================================
    # Update Loop
    # =========================================================================

    def _emit(self, proximal: float, forearm: float) -> None:
        self._last_voltages = (proximal, forearm)
        self.actuator.set_voltages(proximal, forearm)

    def _go_idle(self) -> None:
        """Drop the profile, emit zero voltage once and go idle."""
        self._profiles = None
        self._setpoint = None
        self._profile_ticks = 0
        self._emit(0.0, 0.0)
        self._set_state(LoopState.IDLE)

    def tick(self) -> None:
        """
        Execute one control cycle.

        Call this once per control period.
        """
        self._tick_count += 1
        measured = self.sensor.read_joint_state()
        self._measured = measured

        stop_requested, goal = self._take_commands()

        if stop_requested:
            logger.info("Stop requested")
            self._go_idle()
            return

        if goal is not None:
            self._start_profile(measured, goal)

        if self._state != LoopState.TRACKING or self._profiles is None:
            return

        elapsed = self.elapsed

        if elapsed > self._profiles.total_duration and not self.hold_final_setpoint:
            logger.info(f"Profile complete after {self._profiles.total_duration:.3f}s")
            self._go_idle()
            return

        if not measured.is_finite():
            logger.error(f"Non-finite joint measurement at t={elapsed:.3f}s, dropping profile")
            self._go_idle()
            return

        setpoint = self._profiles.sample(elapsed)
        if not setpoint.is_finite():
            logger.error(f"Non-finite setpoint at t={elapsed:.3f}s, dropping profile")
            self._go_idle()
            return

        self._setpoint = setpoint
        voltages = self.controller.calculate(measured, setpoint)
        self._emit(*voltages)

        self._profile_ticks += 1

    def _start_profile(self, measured: JointState, goal: Tuple[float, float]) -> None:
        """Replace the active profile with one from the measured state."""
        if not measured.is_finite():
            logger.error("Measured state is not finite, goal dropped")
            return

        interrupted = self._state == LoopState.TRACKING

        self._profiles = self.generator.build_joint_pair(measured.angles, goal)
        self._profile_ticks = 0
        self._set_state(LoopState.TRACKING)

        logger.info(
            f"{'Interrupted profile, new' if interrupted else 'New'} move to "
            f"({goal[0]:.4f}, {goal[1]:.4f}) rad, "
            f"duration {self._profiles.total_duration:.3f}s"
        )

    # =========================================================================
    # Background Control Loop
    # =========================================================================

    def start_control_loop(self) -> None:
        """Start background control loop thread."""
        if self._control_thread is not None and self._control_thread.is_alive():
            logger.warning("Control loop already running")
            return

        self._stop_event.clear()
        self._control_thread = threading.Thread(
            target=self._control_loop,
            name="ArmControlLoop",
            daemon=True
        )
        self._control_thread.start()
        logger.info("Control loop started")

    def stop_control_loop(self) -> None:
        """Stop background control loop."""
        self._stop_event.set()
        if self._control_thread is not None:
            self._control_thread.join(timeout=1.0)
            if self._control_thread.is_alive():
                logger.warning("Control loop thread did not exit in time")
            else:
                self._control_thread = None
        logger.info("Control loop stopped")

    def _control_loop(self) -> None:
        """
        Background control loop thread.

        The thread exits when stop_control_loop() is called or a tick
        raises. Either way an active profile is dropped and zero voltage
        is emitted once before the thread ends.
        """
        period = self.control_period
        next_time = time.perf_counter()

        try:
            while not self._stop_event.is_set():
                try:
                    self.tick()
                except Exception as e:
                    logger.exception(f"Unexpected error in control loop: {e}")
                    break

                next_time += period
                sleep_time = next_time - time.perf_counter()
                if sleep_time > 0:
                    time.sleep(sleep_time)
        finally:
            self._shutdown_outputs()

        logger.debug("Control loop ended")

    def _shutdown_outputs(self) -> None:
        """Go idle if still tracking when the background loop exits."""
        if self._state != LoopState.TRACKING:
            return
        try:
            self._go_idle()
        except Exception as e:
            logger.exception(f"Failed to zero outputs on shutdown: {e}")

    # =========================================================================
    # Monitoring
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        """Get loop status for monitoring."""
        setpoint = self._setpoint
        return {
            "state": self._state.name,
            "elapsed": self.elapsed,
            "duration": self._profiles.total_duration if self._profiles else 0.0,
            "measured": list(self._measured.angles),
            "setpoint": list(setpoint.angles) if setpoint else None,
            "voltages": list(self._last_voltages),
            "tick_count": self._tick_count,
            **self.controller.get_status(),
        }
