from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from sine_model import SineActuationModel
from substrate import Actuator, PrismaticJoint, RobotSubject


@dataclass(frozen=True)
class Cluster:
    name: str
    channel: int
    actuators: tuple[Actuator, ...]


@dataclass(frozen=True)
class JointChannel:
    name: str
    channel: int
    joint: PrismaticJoint | None
    pause_group: str
    unpause_group: str

    @property
    def bound(self) -> bool:
        return self.joint is not None


class ImpedanceController:
    """Cable tension law: offset + length stiffness * length error + velocity stiffness * velocity error."""

    def __init__(self, offset_tension: float = 1000.0, length_stiffness: float = 500.0, velocity_stiffness: float = 10.0):
        self.offset_tension = float(offset_tension)
        self.length_stiffness = float(length_stiffness)
        self.velocity_stiffness = float(velocity_stiffness)

    @classmethod
    def from_config(cls, cfg) -> "ImpedanceController":
        return cls(
            offset_tension=cfg.impedance_offset_tension,
            length_stiffness=cfg.impedance_length_stiffness,
            velocity_stiffness=cfg.impedance_velocity_stiffness,
        )

    def tension_command(self, length: float, velocity: float, set_length: float, set_velocity: float) -> float:
        tension = (
            self.offset_tension
            + self.length_stiffness * (length - set_length)
            + self.velocity_stiffness * (velocity - set_velocity)
        )
        return float(max(tension, 0.0))

    def control(self, actuator: Actuator, dt: float, set_length: float, set_velocity: float = 0.0) -> float:
        """Send the rest length that yields the commanded tension. Returns that tension."""
        length = float(actuator.current_length)
        tension = self.tension_command(length, float(actuator.velocity), set_length, set_velocity)
        stiffness = max(float(actuator.stiffness), 1e-9)
        actuator.set_target_length(length - tension / stiffness, dt)
        return tension


def populate_clusters(subject: RobotSubject, n_clusters: int, muscles_per_cluster: int, verbose: bool = False) -> list[Cluster]:
    clusters = []
    for idx in range(n_clusters):
        name = f"cluster{idx + 1}"
        actuators = tuple(subject.find_actuators(name))
        if not actuators:
            print(f"Warning: {name} has no actuators; its channel is inert.")
        elif verbose and len(actuators) != muscles_per_cluster:
            print(f"Warning: {name} has {len(actuators)} actuators, expected {muscles_per_cluster}.")
        clusters.append(Cluster(name=name, channel=idx, actuators=actuators))
    return clusters


def populate_joints(subject: RobotSubject, joint_names: Sequence[str], first_channel: int) -> list[JointChannel]:
    """
    Bind joint channels to the bottom and top prismatic joints.

    Channels past the second are reported and left unbound; they still own a
    channel slot so the parameter layout does not shift.
    """
    joints = []
    for idx, name in enumerate(joint_names):
        channel = first_channel + idx
        if idx == 0:
            joint, pause_group, unpause_group = subject.prismatic("bottom"), "bottom", "top"
        elif idx == 1:
            joint, pause_group, unpause_group = subject.prismatic("top"), "top", "bottom"
        else:
            print(f"ERROR: Too many prismatic joints! '{name}' (channel {channel}) is left unbound.")
            joint, pause_group, unpause_group = None, name, name
        if idx < 2 and joint is None:
            print(f"Warning: subject has no '{pause_group}' prismatic joint; channel {channel} is inert.")
        joints.append(
            JointChannel(name=name, channel=channel, joint=joint, pause_group=pause_group, unpause_group=unpause_group)
        )
    return joints


def apply_cluster_pass(
    clusters: Sequence[Cluster],
    model: SineActuationModel,
    impedance: ImpedanceController,
    t: float,
    dt: float,
    set_length: float,
) -> list[float]:
    """Drive every cable of every cluster toward its channel's sine velocity. Returns the sine outputs."""
    outputs = model.evaluate_pass([cluster.channel for cluster in clusters], t)
    for cluster, new_velocity in zip(clusters, outputs):
        if not np.isfinite(new_velocity):
            continue
        for actuator in cluster.actuators:
            impedance.control(actuator, dt, set_length, new_velocity)
    return outputs


def move_motors(actuators: Sequence[Actuator], joints: Sequence[JointChannel], dt: float) -> None:
    for actuator in actuators:
        actuator.apply_motor_step(dt)
    for channel in joints:
        if channel.joint is not None:
            channel.joint.apply_motor_step(dt)
