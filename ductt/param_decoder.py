from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np


N_SINE_PARAMS = 4

# Decimetre scale.
AMPLITUDE_RANGE = (0.0, 40.0)
FREQUENCY_RANGE = (0.3, 20.0)
PHASE_RANGE = (-np.pi, np.pi)
OFFSET_RANGE = (0.0, 40.0)
HYSTERESIS_RANGE = (0.0, 2.0)


class ManualParamsParseError(ValueError):
    """A manual parameter record is missing or holds a non-numeric field."""


@dataclass(frozen=True)
class ActionChannel:
    amplitude: float
    angular_frequency: float
    phase_change: float
    dc_offset: float


@dataclass(frozen=True)
class ParameterRanges:
    amplitude: tuple[float, float] = AMPLITUDE_RANGE
    frequency: tuple[float, float] = FREQUENCY_RANGE
    phase: tuple[float, float] = PHASE_RANGE
    offset: tuple[float, float] = OFFSET_RANGE
    hysteresis: tuple[float, float] = HYSTERESIS_RANGE

    @classmethod
    def from_config(cls, cfg) -> "ParameterRanges":
        return cls(
            amplitude=cfg.amplitude_range,
            frequency=cfg.frequency_range,
            phase=cfg.phase_range,
            offset=cfg.offset_range,
            hysteresis=cfg.hysteresis_range,
        )

    def sine_bounds(self) -> tuple[np.ndarray, np.ndarray]:
        mins = np.array([self.amplitude[0], self.frequency[0], self.phase[0], self.offset[0]], dtype=float)
        maxes = np.array([self.amplitude[1], self.frequency[1], self.phase[1], self.offset[1]], dtype=float)
        return mins, maxes


@dataclass(frozen=True)
class DecodedParameters:
    channels: tuple[ActionChannel, ...]
    ignore_touch_sensors: bool
    hysteresis_s: float
    flags_present: bool


def decode_parameters(
    raw: Sequence[float],
    n_channels: int,
    *,
    source_length: int | None = None,
    ranges: ParameterRanges | None = None,
    default_ignore_touch_sensors: bool = True,
    default_hysteresis_s: float = 0.5,
) -> DecodedParameters:
    """
    Rescale a flat [0, 1] vector into sine channels plus optional trailing flags.

    Channel i reads raw[4i:4i+4] as (amplitude, frequency, phase, offset). When the
    vector length is not a multiple of 4 the trailing slots carry the touch-sensor
    flag (value < 0.5 ignores touch sensors) and the hysteresis duration. Both
    flags share that single length check.

    `source_length` is the length of the optimizer's own vector. It differs from
    len(raw) when the values come from a manual parameter file.
    """
    params = np.asarray(raw, dtype=float).reshape(-1)
    n_channels = int(n_channels)
    need = N_SINE_PARAMS * n_channels
    if params.shape[0] < need:
        raise ValueError(
            f"Parameter vector has {params.shape[0]} entries, need at least {need} for {n_channels} channels."
        )
    ranges = ranges or ParameterRanges()
    mins, maxes = ranges.sine_bounds()

    table = params[:need].reshape(n_channels, N_SINE_PARAMS) * (maxes - mins) + mins
    channels = tuple(
        ActionChannel(
            amplitude=float(row[0]),
            angular_frequency=float(row[1]),
            phase_change=float(row[2]),
            dc_offset=float(row[3]),
        )
        for row in table
    )

    ignore_touch_sensors = bool(default_ignore_touch_sensors)
    hysteresis_s = float(default_hysteresis_s)
    flags_present = params.shape[0] % N_SINE_PARAMS != 0
    if flags_present:
        source_len = params.shape[0] if source_length is None else int(source_length)
        touch_offset = source_len - need
        if touch_offset <= 0 or touch_offset > params.shape[0]:
            touch_offset = params.shape[0] - need
        touch_param = float(params[params.shape[0] - touch_offset])
        ignore_touch_sensors = touch_param < 0.5

        hysteresis_idx = need + 1
        if hysteresis_idx < params.shape[0]:
            h_min, h_max = ranges.hysteresis
            hysteresis_s = float(params[hysteresis_idx] * (h_max - h_min) + h_min)

    return DecodedParameters(
        channels=channels,
        ignore_touch_sensors=ignore_touch_sensors,
        hysteresis_s=hysteresis_s,
        flags_present=flags_present,
    )


def parse_param_line(line: str, n_params: int) -> tuple[np.ndarray, list[int]]:
    """
    Parse one comma-separated record into an n_params vector defaulting to 1.0.

    Returns the vector and the indices of fields that were not numeric. Fields
    past n_params are dropped. Raises ManualParamsParseError for an empty record.
    """
    if not line.strip():
        raise ManualParamsParseError("Manual parameter record is empty.")
    result = np.ones(int(n_params), dtype=float)
    bad_fields: list[int] = []
    for i, cell in enumerate(line.strip().split(",")[: int(n_params)]):
        try:
            result[i] = float(cell)
        except ValueError:
            bad_fields.append(i)
    return result, bad_fields


def _read_record(path: Path, line_number: int) -> str:
    try:
        with path.open("r", encoding="utf-8") as handle:
            for i, line in enumerate(handle, start=1):
                if i == line_number:
                    return line
    except OSError as exc:
        raise ManualParamsParseError(f"Cannot read manual parameter file '{path}': {exc}") from exc
    raise ManualParamsParseError(f"Manual parameter file '{path}' has no line {line_number}.")


def read_manual_params(
    path: str | Path,
    line_number: int,
    n_params: int,
    *,
    rng: np.random.Generator | None = None,
    jitter: float = 0.005,
) -> np.ndarray:
    """
    Load a hand-authored parameter record and jitter every slot by up to +/- `jitter`.

    Missing lines and non-numeric fields fall back to 1.0 with a printed warning.
    """
    if line_number < 1:
        raise ValueError(f"line_number is 1-based, got {line_number}.")
    rng = rng if rng is not None else np.random.default_rng()
    path = Path(path)
    try:
        params, bad_fields = parse_param_line(_read_record(path, line_number), n_params)
        if bad_fields:
            print(f"Warning: non-numeric manual parameter fields {bad_fields} in '{path}', using 1.0.")
    except ManualParamsParseError as exc:
        print(f"Warning: {exc} Using 1.0 for every parameter.")
        params = np.ones(int(n_params), dtype=float)
    return params + rng.uniform(-jitter, jitter, size=params.shape[0])


def format_sine_params(channels: Sequence[ActionChannel]) -> str:
    lines = []
    for idx, ch in enumerate(channels):
        lines.append(
            f"channel[{idx}]: amplitude={ch.amplitude:.4f} angular_frequency={ch.angular_frequency:.4f} "
            f"phase_change={ch.phase_change:.4f} dc_offset={ch.dc_offset:.4f}"
        )
    return "\n".join(lines)
