import argparse
import site
import sysconfig
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

try:
    import yaml
except Exception:  # pragma: no cover - optional dependency in some environments
    yaml = None


DEFAULT_RUNTIME_CONFIG_PATH = Path(__file__).with_name("config.yaml")
MODEL_FILENAME = "ductt.xml"


def model_path_candidates() -> tuple[Path, ...]:
    """Source checkout first, then the `share/ductt` data dir a wheel install writes to."""
    return (
        Path(__file__).with_name(MODEL_FILENAME),
        Path(sysconfig.get_path("data")) / "share" / "ductt" / MODEL_FILENAME,
        Path(site.USER_BASE or "") / "share" / "ductt" / MODEL_FILENAME,
    )


def resolve_model_path(candidates=None) -> Path:
    candidates = tuple(candidates) if candidates is not None else model_path_candidates()
    for path in candidates:
        if path.is_file():
            return path
    # Missing everywhere: MjModel reports the source location.
    return candidates[0]


DEFAULT_MODEL_PATH = resolve_model_path()
JOINT_NAMES = ("bottom", "top")
TUNABLE_KEYS = {
    "initial_length",
    "warmup_s",
    "tick_rate_hz",
    "default_hysteresis_s",
    "default_ignore_touch_sensors",
    "hysteresis_range",
    "amplitude_range",
    "frequency_range",
    "phase_range",
    "offset_range",
    "impedance_offset_tension",
    "impedance_length_stiffness",
    "impedance_velocity_stiffness",
    "cable_stiffness",
    "cable_max_tension",
    "cable_motor_speed",
    "cable_min_rest_length",
    "prism_motor_speed",
    "touch_threshold",
    "manual_param_jitter",
}


def _merge_tunable_block(target: dict[str, Any], block: Any, label: str) -> None:
    if block is None:
        return
    if not isinstance(block, dict):
        raise ValueError(f"Runtime config block '{label}' must be a mapping.")
    for key, value in block.items():
        if key in TUNABLE_KEYS:
            target[key] = value


def _parse_tuning_file(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    if yaml is None:
        raise RuntimeError(
            f"Runtime tuning file '{path}' requires PyYAML. Install with: pip install pyyaml"
        )
    loaded = yaml.safe_load(text)
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Runtime tuning file '{path}' must define a mapping at top level.")
    return loaded


def _resolve_runtime_tuning_overrides(
    config_path_arg: str | None,
    *,
    mode: str,
    axis: int,
) -> dict[str, Any]:
    cfg_path = Path(config_path_arg).expanduser() if config_path_arg else DEFAULT_RUNTIME_CONFIG_PATH
    if not cfg_path.exists():
        if config_path_arg:
            raise FileNotFoundError(f"Runtime tuning file '{cfg_path}' does not exist.")
        return {}
    data = _parse_tuning_file(cfg_path)
    merged: dict[str, Any] = {}

    # Top-level tunables are accepted as well as the "global" block.
    _merge_tunable_block(merged, data, "top_level")
    _merge_tunable_block(merged, data.get("global"), "global")

    mode_map = data.get("mode")
    if isinstance(mode_map, dict):
        _merge_tunable_block(merged, mode_map.get(mode), f"mode.{mode}")

    axis_map = data.get("axis")
    if isinstance(axis_map, dict):
        block = axis_map.get(axis, axis_map.get(str(axis)))
        _merge_tunable_block(merged, block, f"axis.{axis}")

    return merged


def _override_float(
    overrides: dict[str, Any],
    key: str,
    current: float,
) -> float:
    if key not in overrides:
        return float(current)
    value = overrides[key]
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Runtime tuning key '{key}' must be numeric, got {value!r}.") from exc


def _override_bool(
    overrides: dict[str, Any],
    key: str,
    current: bool,
) -> bool:
    if key not in overrides:
        return bool(current)
    value = overrides[key]
    if isinstance(value, bool):
        return value
    raise ValueError(f"Runtime tuning key '{key}' must be a boolean, got {value!r}.")


def _override_range(
    overrides: dict[str, Any],
    key: str,
    current: tuple[float, float],
) -> tuple[float, float]:
    if key not in overrides:
        return current
    value = np.asarray(overrides[key], dtype=float)
    if value.shape != (2,):
        raise ValueError(f"Runtime tuning key '{key}' must be a [min, max] pair, got shape {value.shape}.")
    if value[1] < value[0]:
        raise ValueError(f"Runtime tuning key '{key}' must satisfy min <= max, got {value.tolist()}.")
    return float(value[0]), float(value[1])


@dataclass(frozen=True)
class RuntimeConfig:
    mode: str
    verbose: bool
    seed: int
    n_clusters: int
    muscles_per_cluster: int
    n_prisms: int
    joint_names: tuple[str, ...]
    initial_length: float
    axis: int
    use_manual_params: bool
    manual_param_file: str | None
    manual_param_line: int
    manual_param_jitter: float
    warmup_s: float
    warmup_lock_all_joints: bool
    tick_rate_hz: float
    setup_dt: float
    default_hysteresis_s: float
    default_ignore_touch_sensors: bool
    hysteresis_range: tuple[float, float]
    amplitude_range: tuple[float, float]
    frequency_range: tuple[float, float]
    phase_range: tuple[float, float]
    offset_range: tuple[float, float]
    n_flag_params: int
    impedance_offset_tension: float
    impedance_length_stiffness: float
    impedance_velocity_stiffness: float
    model_path: str
    cable_stiffness: float
    cable_max_tension: float
    cable_motor_speed: float
    cable_min_rest_length: float
    prism_motor_speed: float
    touch_threshold: float
    episodes: int
    episode_duration_s: float
    playback_file: str | None
    playback_hz: float
    trace_events_csv: str | None
    episodes_csv: str | None

    @property
    def n_actions(self) -> int:
        return self.n_clusters + self.n_prisms

    @property
    def n_params(self) -> int:
        """Length of a full parameter vector: 4 sine terms per channel plus the trailing flags."""
        return 4 * self.n_actions + self.n_flag_params


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="DuCTT sine-gait learning controller episode runner.")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help=(
            "Optional runtime tuning YAML file. "
            f"If omitted, auto-loads {DEFAULT_RUNTIME_CONFIG_PATH.as_posix()} when present."
        ),
    )
    parser.add_argument(
        "--mode",
        choices=["learning", "playback"],
        default="learning",
        help="'learning' runs the sine-gait controller, 'playback' replays recorded rest lengths.",
    )
    parser.add_argument("--verbose", action="store_true", help="Print controller diagnostics.")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--clusters", type=int, default=2, help="Number of cable clusters.")
    parser.add_argument("--muscles-per-cluster", type=int, default=4)
    parser.add_argument(
        "--prisms",
        type=int,
        default=2,
        help="Number of prismatic joint channels. Only 'bottom' and 'top' can be bound.",
    )
    parser.add_argument(
        "--initial-length",
        type=float,
        default=0.3,
        help="Neutral cable length set at episode start; also the impedance set length.",
    )
    parser.add_argument(
        "--axis",
        type=int,
        default=1,
        help="Displacement axis: 0=|x|, 1=y (signed), 2=|z|, 3=3-D distance. Other values fall back to y.",
    )
    parser.add_argument(
        "--manual-params",
        type=str,
        default=None,
        help="Read the parameter vector from this comma-separated text file instead of the optimizer.",
    )
    parser.add_argument("--manual-param-line", type=int, default=1, help="1-based record line in --manual-params.")
    parser.add_argument("--manual-param-jitter", type=float, default=0.005)
    parser.add_argument("--warmup-s", type=float, default=3.0, help="Settling time before the gait starts.")
    parser.add_argument(
        "--warmup-lock-all-joints",
        action="store_true",
        help="Evaluate lock state for every joint during warmup (default: bottom joint only).",
    )
    parser.add_argument(
        "--tick-rate-hz",
        type=float,
        default=1000.0,
        help="Control ticks per second; converts hysteresis seconds into debounce ticks.",
    )
    parser.add_argument("--hysteresis-s", type=float, default=0.5, help="Hysteresis used when the vector has no flags.")
    parser.add_argument(
        "--use-touch-sensors",
        action="store_true",
        help="Honor touch-sensor locking when the vector carries no flag (default: sensors ignored).",
    )
    parser.add_argument(
        "--flag-params",
        type=int,
        choices=[0, 1, 2],
        default=2,
        help="Trailing flag slots appended to generated parameter vectors.",
    )
    parser.add_argument("--impedance-offset-tension", type=float, default=1000.0)
    parser.add_argument("--impedance-length-stiffness", type=float, default=500.0)
    parser.add_argument("--impedance-velocity-stiffness", type=float, default=10.0)
    parser.add_argument("--model", type=str, default=None, help=f"MuJoCo XML (default {DEFAULT_MODEL_PATH.name}).")
    parser.add_argument("--cable-stiffness", type=float, default=400.0, help="Cable spring constant (N/m).")
    parser.add_argument("--cable-max-tension", type=float, default=300.0)
    parser.add_argument("--cable-motor-speed", type=float, default=0.5, help="Max rest-length change (m/s).")
    parser.add_argument("--cable-min-rest-length", type=float, default=0.05)
    parser.add_argument("--prism-motor-speed", type=float, default=0.2, help="Max prismatic travel (m/s).")
    parser.add_argument("--touch-threshold", type=float, default=1e-6)
    parser.add_argument("--episodes", type=int, default=1)
    parser.add_argument("--episode-duration-s", type=float, default=10.0)
    parser.add_argument("--playback-file", type=str, default=None, help="Rest-length command CSV for --mode playback.")
    parser.add_argument("--playback-hz", type=float, default=100.0, help="Row rate of --playback-file.")
    parser.add_argument(
        "--trace-events-csv",
        type=str,
        default=None,
        help="Optional CSV of lock transitions for every episode.",
    )
    parser.add_argument(
        "--episodes-csv",
        type=str,
        default=None,
        help="Optional CSV of per-episode scores.",
    )
    return parser.parse_args(argv)


def build_config(args) -> RuntimeConfig:
    mode = str(getattr(args, "mode", "learning"))
    axis = int(getattr(args, "axis", 1))
    overrides = _resolve_runtime_tuning_overrides(getattr(args, "config", None), mode=mode, axis=axis)

    manual_param_file = getattr(args, "manual_params", None)
    manual_param_line = int(getattr(args, "manual_param_line", 1))
    if manual_param_line < 1:
        raise ValueError(f"--manual-param-line is 1-based, got {manual_param_line}.")

    n_prisms = int(max(getattr(args, "prisms", 2), 0))
    joint_names = tuple(
        JOINT_NAMES[i] if i < len(JOINT_NAMES) else f"prism{i + 1}" for i in range(n_prisms)
    )

    initial_length = _override_float(overrides, "initial_length", args.initial_length)
    warmup_s = _override_float(overrides, "warmup_s", args.warmup_s)
    tick_rate_hz = _override_float(overrides, "tick_rate_hz", args.tick_rate_hz)
    default_hysteresis_s = _override_float(overrides, "default_hysteresis_s", args.hysteresis_s)
    default_ignore_touch_sensors = _override_bool(
        overrides, "default_ignore_touch_sensors", not bool(getattr(args, "use_touch_sensors", False))
    )
    hysteresis_range = _override_range(overrides, "hysteresis_range", (0.0, 2.0))
    amplitude_range = _override_range(overrides, "amplitude_range", (0.0, 40.0))
    frequency_range = _override_range(overrides, "frequency_range", (0.3, 20.0))
    phase_range = _override_range(overrides, "phase_range", (-np.pi, np.pi))
    offset_range = _override_range(overrides, "offset_range", (0.0, 40.0))
    impedance_offset_tension = _override_float(overrides, "impedance_offset_tension", args.impedance_offset_tension)
    impedance_length_stiffness = _override_float(
        overrides, "impedance_length_stiffness", args.impedance_length_stiffness
    )
    impedance_velocity_stiffness = _override_float(
        overrides, "impedance_velocity_stiffness", args.impedance_velocity_stiffness
    )
    cable_stiffness = _override_float(overrides, "cable_stiffness", args.cable_stiffness)
    cable_max_tension = _override_float(overrides, "cable_max_tension", args.cable_max_tension)
    cable_motor_speed = _override_float(overrides, "cable_motor_speed", args.cable_motor_speed)
    cable_min_rest_length = _override_float(overrides, "cable_min_rest_length", args.cable_min_rest_length)
    prism_motor_speed = _override_float(overrides, "prism_motor_speed", args.prism_motor_speed)
    touch_threshold = _override_float(overrides, "touch_threshold", args.touch_threshold)
    manual_param_jitter = _override_float(overrides, "manual_param_jitter", args.manual_param_jitter)

    if tick_rate_hz <= 0.0:
        raise ValueError(f"tick_rate_hz must be positive, got {tick_rate_hz}.")
    if cable_stiffness <= 0.0:
        raise ValueError(f"cable_stiffness must be positive, got {cable_stiffness}.")

    return RuntimeConfig(
        mode=mode,
        verbose=bool(getattr(args, "verbose", False)),
        seed=int(getattr(args, "seed", 0)),
        n_clusters=int(max(args.clusters, 0)),
        muscles_per_cluster=int(max(args.muscles_per_cluster, 0)),
        n_prisms=n_prisms,
        joint_names=joint_names,
        initial_length=float(max(initial_length, 0.0)),
        axis=axis,
        use_manual_params=manual_param_file is not None,
        manual_param_file=manual_param_file,
        manual_param_line=manual_param_line,
        manual_param_jitter=float(max(manual_param_jitter, 0.0)),
        warmup_s=float(max(warmup_s, 0.0)),
        warmup_lock_all_joints=bool(getattr(args, "warmup_lock_all_joints", False)),
        tick_rate_hz=tick_rate_hz,
        setup_dt=1e-4,
        default_hysteresis_s=float(max(default_hysteresis_s, 0.0)),
        default_ignore_touch_sensors=default_ignore_touch_sensors,
        hysteresis_range=hysteresis_range,
        amplitude_range=amplitude_range,
        frequency_range=frequency_range,
        phase_range=phase_range,
        offset_range=offset_range,
        n_flag_params=int(np.clip(getattr(args, "flag_params", 2), 0, 2)),
        impedance_offset_tension=impedance_offset_tension,
        impedance_length_stiffness=float(max(impedance_length_stiffness, 0.0)),
        impedance_velocity_stiffness=float(max(impedance_velocity_stiffness, 0.0)),
        model_path=str(args.model) if getattr(args, "model", None) else str(DEFAULT_MODEL_PATH),
        cable_stiffness=cable_stiffness,
        cable_max_tension=float(max(cable_max_tension, 0.0)),
        cable_motor_speed=float(max(cable_motor_speed, 1e-6)),
        cable_min_rest_length=float(max(cable_min_rest_length, 0.0)),
        prism_motor_speed=float(max(prism_motor_speed, 1e-6)),
        touch_threshold=float(max(touch_threshold, 0.0)),
        episodes=int(max(getattr(args, "episodes", 1), 1)),
        episode_duration_s=float(max(getattr(args, "episode_duration_s", 10.0), 0.0)),
        playback_file=getattr(args, "playback_file", None),
        playback_hz=float(max(getattr(args, "playback_hz", 100.0), 1e-6)),
        trace_events_csv=getattr(args, "trace_events_csv", None),
        episodes_csv=getattr(args, "episodes_csv", None),
    )
