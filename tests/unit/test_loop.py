"""
Unit Tests for Control Loop
============================

Tests for the idle/tracking state machine, configuration loading and
closed-loop tracking against the simulated arm.

Author: Turret Arm Control Team
License: MIT
"""

import logging
import math
import time

import numpy as np
import pytest

from src.control.config import ArmConfig, DynamicsConfig
from src.control.controller import DoubleJointedArmController, FeedbackGains
from src.control.kinematics import (
    CartesianPoint,
    DegenerateGeometryError,
    JointState,
    OutOfReachError,
)
from src.control.loop import ArmControlLoop, LoopState
from src.control.trajectory import MotionProfileGenerator
from src.simulation.arm_simulator import SimulatedArm, SimulatorConfig

PERIOD = 0.02

# =============================================================================
# Fakes
# =============================================================================


class FakeSensor:
    """Sensor returning whatever state the test sets."""

    def __init__(self, state=None):
        self.state = state or JointState(0.3, -0.2)

    def read_joint_state(self):
        return self.state


class FailingSensor(FakeSensor):
    """Sensor that raises after a number of successful reads."""

    def __init__(self, fail_after):
        super().__init__()
        self.fail_after = fail_after
        self.reads = 0

    def read_joint_state(self):
        self.reads += 1
        if self.reads > self.fail_after:
            raise RuntimeError("encoder disconnected")
        return self.state


class RecordingActuator:
    """Actuator recording every command."""

    def __init__(self):
        self.commands = []

    def set_voltages(self, proximal, forearm):
        self.commands.append((proximal, forearm))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sensor():
    return FakeSensor()


@pytest.fixture
def actuator():
    return RecordingActuator()


@pytest.fixture
def loop(kinematics, constraints, sensor, actuator):
    """PD-only loop at 50 Hz with no hold."""
    return ArmControlLoop(
        kinematics,
        MotionProfileGenerator(kinematics, constraints),
        DoubleJointedArmController(FeedbackGains()),
        sensor,
        actuator,
        control_period=PERIOD,
    )


def run_until_idle(loop, max_ticks=500):
    for _ in range(max_ticks):
        loop.tick()
        if loop.state == LoopState.IDLE and not loop.has_pending_command:
            return
    raise AssertionError("loop did not go idle")


# =============================================================================
# State Machine Tests
# =============================================================================


class TestIdleState:
    """Tests for the IDLE state."""

    def test_initial_state(self, loop):
        """Test loop starts idle with no setpoint."""
        assert loop.state == LoopState.IDLE
        assert loop.setpoint is None
        assert loop.profiles is None
        assert not loop.has_pending_command

    def test_idle_issues_no_commands(self, loop, actuator):
        """Test ticking with no goal never touches the actuator."""
        for _ in range(10):
            loop.tick()

        assert actuator.commands == []
        assert loop.get_status()["tick_count"] == 10

    def test_invalid_period(self, kinematics, sensor, actuator):
        """Test non-positive control period is rejected."""
        with pytest.raises(ValueError):
            ArmControlLoop(
                kinematics,
                MotionProfileGenerator(kinematics),
                DoubleJointedArmController(),
                sensor,
                actuator,
                control_period=0.0,
            )


class TestTracking:
    """Tests for goal handling and profile following."""

    def test_set_goal_returns_angles(self, loop, kinematics):
        """Test set_goal solves IK immediately and queues the goal."""
        goal = CartesianPoint(0.6, 0.3)
        angles = loop.set_goal(goal)

        assert angles == kinematics.inverse(goal)
        assert loop.has_pending_command
        assert loop.state == LoopState.IDLE

    def test_goal_starts_tracking(self, loop, actuator):
        """Test first tick after a goal enters TRACKING and commands."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.tick()

        assert loop.state == LoopState.TRACKING
        assert len(actuator.commands) == 1
        assert not loop.has_pending_command

    def test_profile_starts_from_measured_state(self, loop, actuator, sensor):
        """Test setpoint at t=0 equals the measured angles, so output is zero."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.tick()

        assert loop.setpoint.angles == sensor.state.angles
        assert actuator.commands[0] == (0.0, 0.0)

    def test_elapsed_advances_per_tick(self, loop):
        """Test elapsed time grows by one period per tracking tick."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        for _ in range(5):
            loop.tick()

        assert np.isclose(loop.elapsed, 5 * PERIOD)

    def test_completion_goes_idle(self, loop, actuator):
        """Test finishing the profile emits zero once, then stays silent."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.tick()
        duration = loop.profiles.total_duration

        run_until_idle(loop)
        n_commands = len(actuator.commands)

        assert loop.state == LoopState.IDLE
        assert actuator.commands[-1] == (0.0, 0.0)
        assert loop.setpoint is None
        # One command per sampled tick, plus the final zero
        assert n_commands == math.floor(duration / PERIOD) + 2

        for _ in range(10):
            loop.tick()
        assert len(actuator.commands) == n_commands

    def test_last_sample_is_goal(self, loop, kinematics):
        """Test the last tracking tick before going idle samples the goal."""
        goal_angles = loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.tick()
        duration = loop.profiles.total_duration

        while loop.elapsed <= duration:
            loop.tick()

        assert np.allclose(loop.setpoint.angles, goal_angles, atol=0.05)

    def test_hold_final_setpoint(self, loop, actuator):
        """Test hold mode keeps tracking the goal after the profile ends."""
        loop.hold_final_setpoint = True
        goal_angles = loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.tick()
        n_ticks = int(2 * loop.profiles.total_duration / PERIOD)

        for _ in range(n_ticks):
            loop.tick()

        assert loop.state == LoopState.TRACKING
        assert loop.setpoint.angles == goal_angles
        assert loop.setpoint.velocities == (0.0, 0.0)
        assert actuator.commands[-1] != (0.0, 0.0)

    def test_set_joint_goal(self, loop):
        """Test joint-space goals bypass inverse kinematics."""
        loop.set_joint_goal(1.0, -0.5)
        loop.tick()

        assert loop.state == LoopState.TRACKING
        assert loop.profiles.goal_angles == (1.0, -0.5)

    @pytest.mark.parametrize("angles", [(float("nan"), 0.0), (0.0, float("inf"))])
    def test_set_joint_goal_non_finite(self, loop, angles):
        """Test NaN or infinite joint goals are rejected."""
        with pytest.raises(ValueError):
            loop.set_joint_goal(*angles)
        assert not loop.has_pending_command

    def test_non_finite_measurement_drops_goal(self, loop, sensor, actuator):
        """Test a goal is not started from a NaN measurement."""
        sensor.state = JointState(float("nan"), 0.0)
        loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.tick()

        assert loop.state == LoopState.IDLE
        assert actuator.commands == []

    @pytest.mark.parametrize(
        "bad_state",
        [JointState(float("nan"), -0.2), JointState(0.3, -0.2, float("inf"), 0.0)],
    )
    def test_non_finite_measurement_mid_profile(self, loop, sensor, actuator, bad_state):
        """Test a corrupted reading while tracking stops the arm instead of commanding NaN."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        for _ in range(3):
            loop.tick()
        n_before = len(actuator.commands)

        sensor.state = bad_state
        loop.tick()

        assert loop.state == LoopState.IDLE
        assert loop.profiles is None
        assert actuator.commands[n_before:] == [(0.0, 0.0)]
        assert all(math.isfinite(v) for command in actuator.commands for v in command)


class TestGoalRejection:
    """Tests for unreachable goals."""

    def test_unreachable_goal_raises(self, loop):
        """Test out-of-reach goal is reported to the caller."""
        with pytest.raises(OutOfReachError):
            loop.set_goal(CartesianPoint(2.0, 0.0))
        assert not loop.has_pending_command

    def test_degenerate_goal_raises(self, loop):
        """Test x == 0 goal is reported to the caller."""
        with pytest.raises(DegenerateGeometryError):
            loop.set_goal(CartesianPoint(0.0, 0.5))

    def test_rejected_goal_keeps_profile(self, loop):
        """Test tracking continues on the previous profile."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        for _ in range(3):
            loop.tick()
        profiles = loop.profiles

        with pytest.raises(OutOfReachError):
            loop.set_goal(CartesianPoint(5.0, 5.0))
        loop.tick()

        assert loop.profiles is profiles
        assert loop.state == LoopState.TRACKING
        assert np.isclose(loop.elapsed, 4 * PERIOD)

    def test_rejected_goal_while_idle(self, loop, actuator):
        """Test loop stays idle and silent after a rejected goal."""
        with pytest.raises(OutOfReachError):
            loop.set_goal(CartesianPoint(0.01, 0.0))
        loop.tick()

        assert loop.state == LoopState.IDLE
        assert actuator.commands == []


class TestInterruption:
    """Tests for replacing an active profile."""

    def test_new_goal_restarts_from_measured(self, loop, sensor):
        """Test a new goal mid-profile starts from the measured angles."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        for _ in range(10):
            loop.tick()

        sensor.state = JointState(0.35, -0.1, 0.8, 0.2)
        new_goal = loop.set_goal(CartesianPoint(0.7, -0.1))
        loop.tick()

        assert loop.state == LoopState.TRACKING
        assert loop.profiles.proximal.start == 0.35
        assert loop.profiles.forearm.start == -0.1
        assert loop.profiles.goal_angles == new_goal
        assert np.isclose(loop.elapsed, PERIOD)

    def test_latest_goal_wins(self, loop, kinematics):
        """Test only the most recent goal between ticks is used."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        last = loop.set_goal(CartesianPoint(0.5, -0.2))
        loop.tick()

        assert loop.profiles.goal_angles == last


class TestStop:
    """Tests for explicit stop."""

    def test_stop_emits_zero_once(self, loop, actuator):
        """Test stop while tracking emits exactly one (0, 0) and goes idle."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        for _ in range(5):
            loop.tick()
        n_before = len(actuator.commands)

        loop.stop()
        loop.tick()

        assert loop.state == LoopState.IDLE
        assert actuator.commands[n_before:] == [(0.0, 0.0)]

        for _ in range(5):
            loop.tick()
        assert len(actuator.commands) == n_before + 1

    def test_stop_discards_pending_goal(self, loop, actuator):
        """Test a queued goal never starts after stop."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.stop()
        loop.tick()

        assert loop.state == LoopState.IDLE
        assert loop.profiles is None
        assert actuator.commands == [(0.0, 0.0)]

    def test_goal_after_stop(self, loop):
        """Test the loop accepts new goals after a stop."""
        loop.stop()
        loop.tick()
        loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.tick()

        assert loop.state == LoopState.TRACKING


class TestMonitoring:
    """Tests for loop status."""

    def test_status_fields(self, loop, sensor):
        """Test status reports state, measurement and controller errors."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.tick()
        status = loop.get_status()

        assert status["state"] == "TRACKING"
        assert status["measured"] == list(sensor.state.angles)
        assert status["setpoint"] == list(sensor.state.angles)
        assert status["duration"] > 0
        assert "position_error" in status


class TestBackgroundLoop:
    """Tests for the threaded control loop."""

    def test_start_stop(self, loop, actuator):
        """Test background thread ticks and shuts down."""
        loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.start_control_loop()
        try:
            time.sleep(0.2)
        finally:
            loop.stop_control_loop()

        assert loop.get_status()["tick_count"] > 0
        assert len(actuator.commands) > 1
        assert loop.state == LoopState.IDLE
        assert actuator.commands[-1] == (0.0, 0.0)

    def test_stop_while_idle_emits_nothing(self, loop, actuator):
        """Test shutting down an idle loop leaves the actuator untouched."""
        loop.start_control_loop()
        try:
            time.sleep(0.05)
        finally:
            loop.stop_control_loop()

        assert actuator.commands == []

    def test_stop_unpowers_simulated_arm(self):
        """Test the simulated arm is left at zero voltage after shutdown."""
        arm = SimulatedArm(SimulatorConfig(gravity=0.0))
        loop = ArmControlLoop.from_config(ArmConfig(), sensor=arm, actuator=arm)

        loop.set_goal(CartesianPoint(0.6, 0.3))
        loop.start_control_loop()
        try:
            time.sleep(0.2)
        finally:
            loop.stop_control_loop()

        assert loop.state == LoopState.IDLE
        assert arm.voltages == (0.0, 0.0)

    def test_tick_error_ends_thread_idle(self, loop, actuator, caplog):
        """Test a sensor fault is logged and leaves the actuator at zero."""
        loop.sensor = FailingSensor(fail_after=5)
        loop.set_goal(CartesianPoint(0.6, 0.3))

        with caplog.at_level(logging.ERROR):
            loop.start_control_loop()
            try:
                for _ in range(200):
                    if loop.state == LoopState.IDLE and len(actuator.commands) > 0:
                        break
                    time.sleep(0.01)
            finally:
                loop.stop_control_loop()

        assert loop.state == LoopState.IDLE
        assert len(actuator.commands) == 6
        assert actuator.commands[-1] == (0.0, 0.0)
        assert "Unexpected error in control loop" in caplog.text
        assert "encoder disconnected" in caplog.text


# =============================================================================
# Configuration Tests
# =============================================================================


class TestArmConfig:
    """Tests for ArmConfig."""

    def test_defaults(self):
        """Test default configuration."""
        config = ArmConfig()

        assert config.geometry.proximal_length == 0.5
        assert config.geometry.forearm_length == 0.4
        assert np.isclose(config.control_period, 0.02)
        assert config.dynamics is None
        assert config.build_dynamics() is None

    def test_invalid_rate(self):
        """Test non-positive control rate is rejected."""
        with pytest.raises(ValueError):
            ArmConfig(control_rate_hz=0.0)

    def test_from_empty_dict(self):
        """Test missing sections fall back to defaults."""
        assert ArmConfig.from_dict({}).to_dict() == ArmConfig().to_dict()

    def test_yaml_round_trip(self, tmp_path):
        """Test to_yaml/from_yaml preserve every field."""
        config = ArmConfig(
            dynamics=DynamicsConfig(forearm_mass=1.5),
            control_rate_hz=100.0,
            hold_final_setpoint=True,
        )
        path = tmp_path / "arm.yaml"
        config.to_yaml(str(path))

        loaded = ArmConfig.from_yaml(str(path))
        assert loaded.to_dict() == config.to_dict()

    def test_load_default_file(self, project_root_path):
        """Test the shipped configuration loads."""
        config = ArmConfig.from_yaml(str(project_root_path / "config" / "default_arm.yaml"))

        assert config.hold_final_setpoint
        assert config.dynamics is not None
        assert config.build_dynamics() is not None
        assert np.isclose(config.control_period, 0.02)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"proximal_motor_count": 0},
            {"forearm_motor_count": 0},
            {"proximal_mass": 0.0},
            {"forearm_mass": -1.0},
            {"proximal_gear_ratio": 0.0},
            {"forearm_gear_ratio": -50.0},
            {"gravity": -9.81},
        ],
    )
    def test_invalid_dynamics(self, overrides):
        """Test bad model parameters fail at construction."""
        with pytest.raises(ValueError):
            DynamicsConfig(**overrides)

    def test_invalid_dynamics_from_dict(self):
        """Test a zero motor count is rejected while loading, not on the first tick."""
        with pytest.raises(ValueError):
            ArmConfig.from_dict({"dynamics": {"proximal_motor_count": 0}})

    def test_from_config(self, sensor, actuator):
        """Test full stack construction with feedforward."""
        config = ArmConfig(dynamics=DynamicsConfig(), hold_final_setpoint=True)
        loop = ArmControlLoop.from_config(config, sensor, actuator)

        assert loop.hold_final_setpoint
        assert loop.controller.dynamics is not None
        assert np.isclose(loop.control_period, 0.02)


# =============================================================================
# Simulator Tests
# =============================================================================


class TestSimulatedArm:
    """Tests for SimulatedArm."""

    def test_voltage_clamping(self):
        """Test commands are recorded raw but applied clamped."""
        arm = SimulatedArm(SimulatorConfig(gravity=0.0))
        arm.set_voltages(50.0, -50.0)

        assert arm.command_history == [(50.0, -50.0)]
        assert arm.voltages == (12.0, -12.0)

    def test_rest_without_gravity(self):
        """Test arm stays put with no voltage and no gravity."""
        arm = SimulatedArm(SimulatorConfig(gravity=0.0, initial_angles=(0.4, -0.3)))
        arm.advance(0.5)

        state = arm.read_joint_state()
        assert state.angles == (0.4, -0.3)
        assert np.isclose(arm.time, 0.5)

    def test_gravity_pulls_down(self):
        """Test horizontal arm falls with no voltage."""
        arm = SimulatedArm()
        arm.advance(0.1)

        state = arm.read_joint_state()
        assert state.proximal_angle < 0
        assert state.proximal_velocity < 0

    def test_positive_voltage_moves_forward(self):
        """Test positive voltage drives the joint toward larger angles."""
        arm = SimulatedArm(SimulatorConfig(gravity=0.0))
        arm.set_voltages(2.0, 0.0)
        arm.advance(0.2)

        assert arm.read_joint_state().proximal_velocity > 0

    def test_reset(self):
        """Test reset restores state and clears history."""
        arm = SimulatedArm(SimulatorConfig(gravity=0.0))
        arm.set_voltages(3.0, 3.0)
        arm.advance(0.1)
        arm.reset(angles=(1.0, 0.5))

        assert arm.read_joint_state() == JointState(1.0, 0.5)
        assert arm.voltages == (0.0, 0.0)
        assert arm.command_history == []
        assert arm.time == 0.0


# =============================================================================
# Closed-Loop Tests
# =============================================================================


def track(config, sim_config, goal, settle=2.0):
    """Drive the simulated arm to a goal and return the final angle error."""
    arm = SimulatedArm(sim_config)
    loop = ArmControlLoop.from_config(config, sensor=arm, actuator=arm)

    goal_angles = loop.set_goal(goal)
    loop.tick()
    n_ticks = int(np.ceil((loop.profiles.total_duration + settle) / config.control_period))

    for _ in range(n_ticks):
        arm.advance(config.control_period)
        loop.tick()

    measured = np.array(arm.read_joint_state().angles)
    return np.max(np.abs(measured - np.array(goal_angles))), loop, arm


@pytest.mark.integration
class TestClosedLoop:
    """Closed-loop tracking against the simulated arm."""

    GOAL = CartesianPoint(0.6, 0.3)

    def test_converges_without_gravity(self):
        """Test PD-only tracking reaches the goal when gravity is off."""
        config = ArmConfig(hold_final_setpoint=True)
        sim = SimulatorConfig(gravity=0.0, initial_angles=(0.3, -0.2))

        error, loop, arm = track(config, sim, self.GOAL)

        assert error < 0.02
        final = loop.kinematics.forward(arm.read_joint_state())
        assert final.distance_to(self.GOAL) < 0.01

    def test_converges_with_feedforward(self):
        """Test gravity is compensated when the dynamics model is enabled."""
        config = ArmConfig(dynamics=DynamicsConfig(), hold_final_setpoint=True)
        sim = SimulatorConfig(initial_angles=(0.3, -0.2))

        error, _, _ = track(config, sim, self.GOAL)
        assert error < 0.02

    def test_feedforward_removes_gravity_sag(self):
        """Test feedforward tracks better than PD alone under gravity."""
        sim = SimulatorConfig(initial_angles=(0.3, -0.2))

        error_pd, _, _ = track(ArmConfig(hold_final_setpoint=True), sim, self.GOAL)
        error_ff, _, _ = track(
            ArmConfig(dynamics=DynamicsConfig(), hold_final_setpoint=True), sim, self.GOAL
        )

        assert error_ff < error_pd

    def test_stop_leaves_arm_unpowered(self):
        """Test the last command after stop is zero voltage."""
        arm = SimulatedArm(SimulatorConfig(gravity=0.0))
        loop = ArmControlLoop.from_config(ArmConfig(), sensor=arm, actuator=arm)

        loop.set_goal(self.GOAL)
        for _ in range(10):
            loop.tick()
            arm.advance(loop.control_period)
        loop.stop()
        loop.tick()

        assert arm.command_history[-1] == (0.0, 0.0)
        assert arm.voltages == (0.0, 0.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
