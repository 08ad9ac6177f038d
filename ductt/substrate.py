"""Capabilities the controllers need from the physics substrate.

The substrate owns cables, prismatic joints and rigid bodies. Controllers only
hold references to these handles and talk to them through the methods below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence

import numpy as np


@dataclass
class ActuatorHistory:
    """Parallel per-motor-step samples of cable tension and rest length."""

    tensions: list[float] = field(default_factory=list)
    rest_lengths: list[float] = field(default_factory=list)

    def record(self, tension: float, rest_length: float) -> None:
        self.tensions.append(float(tension))
        self.rest_lengths.append(float(rest_length))

    def clear(self) -> None:
        self.tensions.clear()
        self.rest_lengths.clear()


class Actuator(Protocol):
    name: str

    @property
    def current_length(self) -> float: ...

    @property
    def velocity(self) -> float: ...

    @property
    def stiffness(self) -> float: ...

    def set_target_length(self, length: float, dt: float) -> None: ...

    def apply_motor_step(self, dt: float) -> None: ...

    def history(self) -> ActuatorHistory: ...


class PrismaticJoint(Protocol):
    name: str

    def get_min_length(self) -> float: ...

    def get_actual_length(self) -> float: ...

    def set_preferred_length(self, length: float) -> None: ...

    def apply_motor_step(self, dt: float) -> None: ...


class TouchSensor(Protocol):
    def is_touching(self) -> bool: ...


class RobotSubject(Protocol):
    def all_actuators(self) -> Sequence[Actuator]: ...

    def find_actuators(self, tag: str) -> Sequence[Actuator]: ...

    def prismatic(self, name: str) -> PrismaticJoint | None: ...

    def touch_group(self, name: str) -> Sequence[TouchSensor]: ...

    def center_of_mass(self) -> np.ndarray: ...
