import csv
from pathlib import Path

import numpy as np

from episode_scoring import episode_scores
from learning_controller import LearningController
from parameter_sources import UniformRandomSource
from playback import RestLengthPlaybackController
from runtime_config import build_config, parse_args
from runtime_model import MujocoTensegrity

"""
Episode runner for the DuCTT learning controller.

Reader Guide
------------
- `ductt.xml` defines the two tetra bodies, the eight cluster cables (spatial
  tendons), the bottom/top prismatic legs and their touch sensors. Names in the
  XML are the contract read by `runtime_model.lookup_model_ids`.
- `learning` mode draws one random parameter vector per episode (or reads
  `--manual-params`), runs the sine-gait controller for
  `--episode-duration-s` seconds of simulated time and prints the score vector
  `[displacement, energy]`.
- `playback` mode replays a recorded rest-length CSV instead.

Run:
- Install deps: `pip install -r requirements.txt`
- Tests: `python -m unittest discover -s ductt`
- `python ductt/run_episodes.py --episodes 5 --use-touch-sensors`
- `python ductt/run_episodes.py --manual-params params.txt --manual-param-line 3 --verbose`
- `python ductt/run_episodes.py --mode playback --playback-file restlengths.csv --playback-hz 50`
"""


EPISODE_FIELDS = ["episode", "displacement", "energy", "lock_events"]
TRACE_FIELDS = ["episode", "time_s", "joint", "event"]


def run_episode(controller, subject: MujocoTensegrity, duration_s: float) -> list[float]:
    """One setup/step/teardown cycle; the subject is reset to the XML pose first."""
    subject.reset()
    dt = subject.timestep
    n_steps = int(round(duration_s / dt))
    controller.on_setup(subject)
    for _ in range(n_steps):
        controller.on_step(subject, dt)
        subject.step()
    return controller.on_teardown(subject)


def run_playback(cfg, subject: MujocoTensegrity) -> list[float]:
    if not cfg.playback_file:
        raise ValueError("--mode playback requires --playback-file.")
    controller = RestLengthPlaybackController(cfg.playback_file, cfg.playback_hz)
    subject.reset()
    dt = subject.timestep
    controller.on_setup(subject)
    start = subject.center_of_mass()
    duration_s = cfg.episode_duration_s if cfg.episode_duration_s > 0.0 else controller.duration_s
    for _ in range(int(round(duration_s / dt))):
        controller.on_step(subject, dt)
        subject.step()
    return episode_scores(start, subject.center_of_mass(), subject.all_actuators(), axis=cfg.axis)


def _open_writer(path_str: str | None, fieldnames):
    if not path_str:
        return None, None
    path = Path(path_str)
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = path.open("w", newline="", encoding="utf-8")
    writer = csv.DictWriter(handle, fieldnames=fieldnames)
    writer.writeheader()
    return handle, writer


def run(argv=None) -> list[list[float]]:
    """Run the configured episodes and return one score vector per episode."""
    args = parse_args(argv)
    cfg = build_config(args)
    subject = MujocoTensegrity.from_config(cfg)

    print("\n=== MODEL ===")
    print(f"model={cfg.model_path}")
    print(f"timestep={subject.timestep:.6f}s cables={len(subject.cables)} prismatics={sorted(subject.prismatics)}")
    group_sizes = {group: len(sensors) for group, sensors in subject.touch_groups.items()}
    print(f"touch_groups={group_sizes}")
    tick_rate_model = 1.0 / subject.timestep
    if abs(tick_rate_model - cfg.tick_rate_hz) > 1e-6 * cfg.tick_rate_hz:
        print(
            f"Warning: model runs at {tick_rate_model:.1f} ticks/s but hysteresis assumes "
            f"{cfg.tick_rate_hz:.1f} ticks/s (--tick-rate-hz)."
        )

    if cfg.mode == "playback":
        print("\n=== PLAYBACK ===")
        scores = run_playback(cfg, subject)
        print(f"Scores [displacement, energy]: {scores}")
        return [scores]

    print("\n=== CONTROLLER ===")
    print(f"clusters={cfg.n_clusters} muscles_per_cluster={cfg.muscles_per_cluster} prisms={cfg.n_prisms}")
    print(f"axis={cfg.axis} warmup_s={cfg.warmup_s} episode_duration_s={cfg.episode_duration_s}")
    print(f"manual_params={cfg.manual_param_file} line={cfg.manual_param_line}")
    print(
        f"impedance offset={cfg.impedance_offset_tension} length_k={cfg.impedance_length_stiffness} "
        f"velocity_k={cfg.impedance_velocity_stiffness}"
    )
    print(f"parameter vector length={cfg.n_params}")

    source = UniformRandomSource(cfg.n_params, seed=cfg.seed)
    controller = LearningController(cfg, source)
    episodes_file, episodes_writer = _open_writer(cfg.episodes_csv, EPISODE_FIELDS)
    trace_file, trace_writer = _open_writer(cfg.trace_events_csv, TRACE_FIELDS)
    results = []
    try:
        for episode in range(cfg.episodes):
            scores = run_episode(controller, subject, cfg.episode_duration_s)
            results.append(scores)
            events = controller.last_lock_events
            print(
                f"Episode {episode}: displacement={scores[0]:.4f} energy={scores[1]:.4f} "
                f"lock_events={len(events)}"
            )
            if episodes_writer is not None:
                episodes_writer.writerow(
                    {"episode": episode, "displacement": scores[0], "energy": scores[1], "lock_events": len(events)}
                )
            if trace_writer is not None:
                for event in events:
                    trace_writer.writerow({"episode": episode, **event})
    finally:
        if episodes_file is not None:
            episodes_file.close()
        if trace_file is not None:
            trace_file.close()

    print("\n=== RUN ENDED ===")
    print(f"Episodes: {len(results)}")
    best = source.best()
    if best is not None:
        vector, scores = best
        print(f"Best scores [displacement, energy]: {scores}")
        print(f"Best vector: {np.array2string(vector, precision=4, separator=',')}")
    return results


def main(argv=None) -> None:
    run(argv)


if __name__ == "__main__":
    main()
