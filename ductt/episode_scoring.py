from __future__ import annotations

from typing import Iterable

import numpy as np

from substrate import Actuator, ActuatorHistory


BAD_RUN_SCORE = -1.0


def displacement(initial_position, final_position, axis: int) -> float:
    """
    Centre-of-mass travel along the configured axis.

    0 -> |dx|, 1 -> dy (signed), 2 -> |dz|, 3 -> 3-D distance; any other axis
    falls back to the signed y displacement.
    """
    initial = np.asarray(initial_position, dtype=float).reshape(3)
    final = np.asarray(final_position, dtype=float).reshape(3)
    delta = final - initial
    if axis == 0:
        return float(abs(delta[0]))
    if axis == 2:
        return float(abs(delta[2]))
    if axis == 3:
        return float(np.linalg.norm(delta))
    return float(delta[1])


def history_energy(history: ActuatorHistory) -> float:
    """Work done while reeling the cable in; lengthening steps contribute nothing."""
    tensions = np.asarray(history.tensions, dtype=float)
    rest_lengths = np.asarray(history.rest_lengths, dtype=float)
    n = min(tensions.shape[0], rest_lengths.shape[0])
    if n < 2:
        return 0.0
    motor_speed = np.minimum(np.diff(rest_lengths[:n]), 0.0)
    return float(np.sum(tensions[: n - 1] * motor_speed))


def total_energy_spent(actuators: Iterable[Actuator]) -> float:
    return float(sum(history_energy(actuator.history()) for actuator in actuators))


def episode_scores(
    initial_position,
    final_position,
    actuators: Iterable[Actuator],
    axis: int,
    bad_run: bool = False,
) -> list[float]:
    """Score vector handed to the optimizer: [displacement or -1 on a bad run, energy spent]."""
    energy = total_energy_spent(actuators)
    if bad_run or initial_position is None:
        return [BAD_RUN_SCORE, energy]
    distance = displacement(initial_position, final_position, axis)
    if not np.isfinite(distance):
        return [BAD_RUN_SCORE, energy]
    return [distance, energy]
