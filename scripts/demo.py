#!/usr/bin/env python3
"""
Turret Arm Control Demo
=======================

Demonstrates the arm control stack against the simulated arm:
1. Inverse kinematics for a Cartesian goal
2. Trapezoidal profile generation per joint
3. Closed-loop tracking with the double-jointed controller

Usage:
    python scripts/demo.py
    python scripts/demo.py --goal 0.6 0.3          # Custom goal (m)
    python scripts/demo.py --config config/default_arm.yaml
    python scripts/demo.py --no-gravity --verbose

Author: Turret Arm Control Team
License: MIT
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import numpy as np

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def print_banner():
    """Print demo banner."""
    print(
        """
╔══════════════════════════════════════════════════════════════════╗
║                                                                  ║
║               TWO-LINK TURRET ARM CONTROL DEMO                   ║
║                                                                  ║
║    Kinematics → Trapezoid Profiles → Double-Jointed Control      ║
║                                                                  ║
╚══════════════════════════════════════════════════════════════════╝
    """
    )


def run_kinematics_demo(config, goal) -> None:
    """Show inverse and forward kinematics for the goal."""
    from src.control.kinematics import ArmKinematics, KinematicsError

    print("\n" + "=" * 60)
    print("KINEMATICS")
    print("=" * 60)

    kinematics = ArmKinematics(config.geometry)
    print(f"   • Reach: [{config.geometry.min_reach:.3f}, {config.geometry.max_reach:.3f}] m")

    try:
        theta1, theta2 = kinematics.inverse(goal)
    except KinematicsError as e:
        print(f"   ✗ Goal rejected: {e}")
        return

    check = kinematics.forward_angles(theta1, theta2)
    print(f"   • Goal: ({goal.x:.3f}, {goal.y:.3f}) m")
    print(f"   • Joint angles: θ1={np.degrees(theta1):.2f}°, θ2={np.degrees(theta2):.2f}°")
    print(f"   • FK check: ({check.x:.6f}, {check.y:.6f}) m")


def run_tracking_demo(config, goal, gravity: bool, settle: float) -> None:
    """Track the goal with the simulated arm."""
    from src.control.kinematics import KinematicsError
    from src.control.loop import ArmControlLoop, LoopState
    from src.simulation.arm_simulator import SimulatedArm, SimulatorConfig

    print("\n" + "=" * 60)
    print("CLOSED-LOOP TRACKING")
    print("=" * 60)

    arm = SimulatedArm(SimulatorConfig(gravity=9.81 if gravity else 0.0))
    loop = ArmControlLoop.from_config(config, sensor=arm, actuator=arm)

    try:
        loop.set_goal(goal)
    except KinematicsError as e:
        print(f"   ✗ Goal rejected: {e}")
        return

    period = config.control_period
    loop.tick()
    duration = loop.profiles.total_duration if loop.profiles else 0.0
    n_ticks = int(np.ceil((duration + settle) / period))

    print(f"   • Profile duration: {duration:.3f}s")
    print(f"   • Running {n_ticks} ticks at {config.control_rate_hz:.0f} Hz")

    for i in range(n_ticks):
        arm.advance(period)
        loop.tick()

        if i % max(1, int(0.25 / period)) == 0:
            status = loop.get_status()
            print(
                f"   t={arm.time:5.2f}s  "
                f"meas=({status['measured'][0]:+.3f}, {status['measured'][1]:+.3f})  "
                f"volts=({status['voltages'][0]:+6.2f}, {status['voltages'][1]:+6.2f})"
            )

        if loop.state == LoopState.IDLE:
            break

    loop.stop()
    loop.tick()

    final = loop.kinematics.forward(arm.read_joint_state())
    print(f"\n   • Final position: ({final.x:.4f}, {final.y:.4f}) m")
    print(f"   • Position error: {final.distance_to(goal) * 1000:.2f} mm")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Turret Arm Control Demonstration")
    parser.add_argument(
        "--goal",
        "-g",
        type=float,
        nargs=2,
        default=[0.6, 0.3],
        metavar=("X", "Y"),
        help="Cartesian goal in metres (default: 0.6 0.3)",
    )
    parser.add_argument(
        "--config", "-c", type=str, default=None, help="Path to arm YAML configuration"
    )
    parser.add_argument(
        "--settle",
        type=float,
        default=1.0,
        help="Seconds to keep tracking after the profile ends (default: 1)",
    )
    parser.add_argument(
        "--no-gravity", action="store_true", help="Simulate without gravity"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    from src.control.config import ArmConfig, DynamicsConfig
    from src.control.kinematics import CartesianPoint

    if args.config:
        config = ArmConfig.from_yaml(args.config)
    else:
        config = ArmConfig(
            dynamics=DynamicsConfig(gravity=0.0 if args.no_gravity else 9.81),
            hold_final_setpoint=True,
        )

    goal = CartesianPoint(*args.goal)

    print_banner()

    try:
        run_kinematics_demo(config, goal)
        run_tracking_demo(config, goal, gravity=not args.no_gravity, settle=args.settle)

        print("\n" + "=" * 60)
        print("DEMO COMPLETE")
        print("=" * 60)

    except Exception as e:
        logger.error(f"Demo error: {e}")
        raise


if __name__ == "__main__":
    main()
