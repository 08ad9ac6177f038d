from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np

from param_decoder import ActionChannel


def evaluate_channel(channel: ActionChannel, t: float, phase: float) -> float:
    return float(channel.amplitude * np.sin(channel.angular_frequency * t + phase) + channel.dc_offset)


class SineActuationModel:
    """
    Fixed table of sine channels, evaluated in passes.

    Within a pass each channel sees the summed phase_change of the channels
    evaluated before it, never its own. Reordering a pass changes its output.
    """

    def __init__(self, channels: Sequence[ActionChannel]):
        self.channels = tuple(channels)

    def __len__(self) -> int:
        return len(self.channels)

    def evaluate(self, index: int, t: float, phase: float) -> float:
        return evaluate_channel(self.channels[index], t, phase)

    def evaluate_pass(self, indices: Iterable[int], t: float) -> list[float]:
        phase = 0.0
        outputs = []
        for idx in indices:
            outputs.append(self.evaluate(idx, t, phase))
            phase += self.channels[idx].phase_change
        return outputs
