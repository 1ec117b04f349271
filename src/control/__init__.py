"""
Control Module
==============

Closed-loop control of the two-link (proximal/forearm) arm on the turret:
kinematics, trapezoidal motion profiles, the double-jointed feedback
controller and the fixed-rate control loop.

Key Components:
    - Kinematics: Closed-form forward/inverse kinematics
    - Trajectory: Per-joint trapezoidal motion profiles
    - Dynamics: Two-link rigid-body and DC motor models
    - Controller: PD feedback with optional coupled feedforward
    - Loop: Idle/tracking state machine driving sensors and actuators

Data Flow:
    CartesianPoint → inverse kinematics → joint goal → ProfilePair
    → ArmSetpoint each tick → controller → (V_proximal, V_forearm)

Author: Turret Arm Control Team
License: MIT
"""

from .kinematics import (
    KinematicsError,
    OutOfReachError,
    DegenerateGeometryError,
    JointState,
    CartesianPoint,
    ArmGeometry,
    ArmKinematics,
)

from .trajectory import (
    MotionConstraints,
    TrapezoidSetpoint,
    ArmSetpoint,
    TrapezoidProfile,
    ProfilePair,
    MotionProfileGenerator,
)

from .dynamics import (
    LinkProperties,
    DCMotor,
    TwoLinkDynamics,
)

from .controller import (
    FeedbackGains,
    DoubleJointedArmController,
)

from .config import (
    DynamicsConfig,
    ArmConfig,
)

from .loop import (
    JointSensor,
    ArmActuator,
    LoopState,
    ArmControlLoop,
)

__version__ = "0.1.0"

__all__ = [
    # Kinematics
    "KinematicsError",
    "OutOfReachError",
    "DegenerateGeometryError",
    "JointState",
    "CartesianPoint",
    "ArmGeometry",
    "ArmKinematics",
    # Trajectory
    "MotionConstraints",
    "TrapezoidSetpoint",
    "ArmSetpoint",
    "TrapezoidProfile",
    "ProfilePair",
    "MotionProfileGenerator",
    # Dynamics
    "LinkProperties",
    "DCMotor",
    "TwoLinkDynamics",
    # Controller
    "FeedbackGains",
    "DoubleJointedArmController",
    # Configuration
    "DynamicsConfig",
    "ArmConfig",
    # Loop
    "JointSensor",
    "ArmActuator",
    "LoopState",
    "ArmControlLoop",
]
