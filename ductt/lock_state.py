from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from substrate import TouchSensor


DEFAULT_TICK_RATE_HZ = 1000.0


@dataclass
class LockState:
    is_paused: bool = False
    debounce_counter: int = 0
    last_pause_signal: bool = False

    def reset(self) -> None:
        self.is_paused = False
        self.debounce_counter = 0
        self.last_pause_signal = False


def group_fully_touching(sensors: Iterable[TouchSensor]) -> bool:
    """True when every sensor in the group reports contact (an empty group counts)."""
    return all(sensor.is_touching() for sensor in sensors)


class LockStateMachine:
    """
    Debounced PAUSED/UNPAUSED decision for one prismatic joint per LockState.

    The pause signal is the joint's own touch group fully in contact, the
    unpause signal is the opposite joint's group. A toggle commits only once
    the pause signal is present and the debounce counter has passed
    hysteresis_s * tick_rate_hz ticks.
    """

    def __init__(self, tick_rate_hz: float = DEFAULT_TICK_RATE_HZ):
        if tick_rate_hz <= 0.0:
            raise ValueError(f"tick_rate_hz must be positive, got {tick_rate_hz}.")
        self.tick_rate_hz = float(tick_rate_hz)

    def threshold(self, hysteresis_s: float) -> float:
        return float(hysteresis_s) * self.tick_rate_hz

    def update(self, state: LockState, pause_signal: bool, unpause_signal: bool, hysteresis_s: float) -> bool:
        """
        Advance one tick. Returns True only on the tick that enters PAUSED.

        Leaving PAUSED returns False like any other tick. Callers that need the
        sustained lock state read state.is_paused.
        """
        pause_signal = bool(pause_signal)
        unpause_signal = bool(unpause_signal)
        state.last_pause_signal = pause_signal
        # While paused only the opposite group advances the counter, and the toggle
        # still needs this joint's pause signal: unpausing takes both groups in contact.
        if (pause_signal and not state.is_paused) or (unpause_signal and state.is_paused):
            state.debounce_counter += 1

        locked = False
        if pause_signal and state.debounce_counter > self.threshold(hysteresis_s):
            if not state.is_paused:
                locked = True
                state.is_paused = True
            else:
                state.is_paused = False
            state.debounce_counter = 0
        return locked
