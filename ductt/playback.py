from __future__ import annotations

from pathlib import Path

import numpy as np

from learning_controller import InvalidArgumentError
from substrate import RobotSubject


def load_command_file(path: str | Path) -> np.ndarray:
    """Rest-length commands: one CSV row per sample, one column per actuator."""
    data = np.loadtxt(Path(path), delimiter=",", dtype=float, ndmin=2)
    if data.shape[0] == 0:
        raise ValueError(f"Command file '{path}' has no rows.")
    return data


class RestLengthPlaybackController:
    """Replays recorded rest-length commands, linearly interpolated between samples."""

    def __init__(self, commands: np.ndarray | str | Path, cmd_store_hz: float):
        if cmd_store_hz <= 0.0:
            raise ValueError(f"cmd_store_hz must be positive, got {cmd_store_hz}.")
        if isinstance(commands, (str, Path)):
            commands = load_command_file(commands)
        self.cmd_data_store = np.asarray(commands, dtype=float)
        if self.cmd_data_store.ndim != 2:
            raise ValueError("Command data must be a 2-D array of rows x actuators.")
        self.cmd_store_hz = float(cmd_store_hz)
        self.sample_times = np.arange(self.cmd_data_store.shape[0], dtype=float) / self.cmd_store_hz
        self.global_time = 0.0
        self.actuators = []

    @property
    def duration_s(self) -> float:
        return float(self.sample_times[-1])

    def interpolate_for_time(self, time: float) -> np.ndarray:
        # np.interp holds the edge rows outside the recorded span.
        return np.array(
            [np.interp(time, self.sample_times, column) for column in self.cmd_data_store.T],
            dtype=float,
        )

    def on_setup(self, subject: RobotSubject) -> None:
        self.actuators = list(subject.all_actuators())
        if len(self.actuators) != self.cmd_data_store.shape[1]:
            raise ValueError(
                f"Command data has {self.cmd_data_store.shape[1]} columns but the subject has "
                f"{len(self.actuators)} actuators."
            )
        self.global_time = 0.0

    def on_step(self, subject: RobotSubject, dt: float) -> None:
        if dt <= 0.0:
            raise InvalidArgumentError("dt is not positive")
        self.global_time += dt
        targets = self.interpolate_for_time(self.global_time)
        for actuator, rest_length in zip(self.actuators, targets):
            actuator.set_target_length(float(rest_length), dt)
            actuator.apply_motor_step(dt)
