"""
Sine-gait learning controller for the duct-climbing tensegrity (DuCTT).

Episode lifecycle
-----------------
- `on_setup`: neutral cable lengths, joints at minimum extent, bind clusters and
  joints, pull one parameter vector from the optimizer (or a manual file) and
  decode it. Parameters are stateless, so this happens once per episode.
- `on_step`: warmup lets the robot settle; only the bottom joint's lock state
  is tracked and a joint that locks is held at its actual length. After warmup
  the start centre of mass is recorded and every tick drives the cable clusters
  through the impedance controller and the prismatic joints through their
  sine targets, unless a joint is paused by its touch sensors.
- `on_teardown`: score the episode, report to the optimizer, reset per-episode
  state so the same controller runs the next episode.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from control_core import (
    ImpedanceController,
    JointChannel,
    apply_cluster_pass,
    move_motors,
    populate_clusters,
    populate_joints,
)
from episode_scoring import episode_scores
from lock_state import LockState, LockStateMachine, group_fully_touching
from param_decoder import (
    DecodedParameters,
    ParameterRanges,
    decode_parameters,
    format_sine_params,
    read_manual_params,
)
from runtime_config import RuntimeConfig
from sine_model import SineActuationModel
from substrate import RobotSubject


PHASE_INIT = "init"
PHASE_WARMUP = "warmup"
PHASE_ACTIVE = "active"
PHASE_TEARDOWN = "teardown"


class InvalidArgumentError(ValueError):
    """Raised for a non-positive control timestep."""


class ControllerStateError(RuntimeError):
    """Raised when lifecycle calls arrive out of order."""


@dataclass
class EpisodeContext:
    elapsed_time: float = 0.0
    start_position: np.ndarray | None = None
    recorded_start: bool = False
    bad_run: bool = False
    ignore_touch_sensors: bool = True
    hysteresis_s: float = 0.5
    lock_events: list[dict] = field(default_factory=list)


def _first_row(actions) -> np.ndarray:
    arr = np.asarray(actions, dtype=float)
    if arr.ndim > 1:
        arr = arr[0]
    return arr.reshape(-1)


class LearningController:
    def __init__(self, cfg: RuntimeConfig, parameter_source, rng: np.random.Generator | None = None):
        self.cfg = cfg
        self.parameter_source = parameter_source
        self.rng = rng if rng is not None else np.random.default_rng(cfg.seed)
        self.impedance = ImpedanceController.from_config(cfg)
        self.lock_machine = LockStateMachine(cfg.tick_rate_hz)
        self.ranges = ParameterRanges.from_config(cfg)
        self.context = EpisodeContext(
            ignore_touch_sensors=cfg.default_ignore_touch_sensors,
            hysteresis_s=cfg.default_hysteresis_s,
        )
        self.lock_states = {name: LockState() for name in cfg.joint_names}
        self.clusters = []
        self.joints: list[JointChannel] = []
        self.actuators = []
        self.decoded: DecodedParameters | None = None
        self.sine_model: SineActuationModel | None = None
        self.last_lock_events: list[dict] = []
        self._source_length = 0
        self._phase = PHASE_INIT

    @property
    def phase(self) -> str:
        return self._phase

    @property
    def lock_events(self) -> list[dict]:
        return self.context.lock_events

    def on_setup(self, subject: RobotSubject) -> None:
        if self._phase in (PHASE_WARMUP, PHASE_ACTIVE):
            raise ControllerStateError("on_setup called twice without on_teardown.")
        cfg = self.cfg
        dt = cfg.setup_dt
        if cfg.verbose:
            print("Setting up")

        self.actuators = list(subject.all_actuators())
        for actuator in self.actuators:
            actuator.set_target_length(cfg.initial_length, dt)

        for name in ("bottom", "top"):
            joint = subject.prismatic(name)
            if joint is not None:
                joint.set_preferred_length(joint.get_min_length())
                joint.apply_motor_step(dt)

        self.clusters = populate_clusters(subject, cfg.n_clusters, cfg.muscles_per_cluster, verbose=cfg.verbose)
        self.joints = populate_joints(subject, cfg.joint_names, first_channel=cfg.n_clusters)
        for channel in self.joints:
            if channel.bound:
                for group in (channel.pause_group, channel.unpause_group):
                    if not subject.touch_group(group):
                        print(f"Warning: touch group '{group}' is empty and always reads as touching.")

        self.decoded = self._decode(self._request_actions(dt))
        self.sine_model = SineActuationModel(self.decoded.channels)
        self.context.ignore_touch_sensors = self.decoded.ignore_touch_sensors
        self.context.hysteresis_s = self.decoded.hysteresis_s
        if cfg.verbose:
            print(f"Ignoring touch sensors: {self.context.ignore_touch_sensors}")
            print(f"Hysteresis: {self.context.hysteresis_s:.3f}s")
            print(format_sine_params(self.decoded.channels))
        self._phase = PHASE_WARMUP

    def _request_actions(self, dt: float) -> np.ndarray:
        actions = _first_row(self.parameter_source.step(dt, []))
        self._source_length = int(actions.shape[0])
        if self.cfg.use_manual_params:
            if self.cfg.verbose:
                print("Using manually set parameters")
            return read_manual_params(
                self.cfg.manual_param_file,
                self.cfg.manual_param_line,
                4 * self.cfg.n_actions + 2,
                rng=self.rng,
                jitter=self.cfg.manual_param_jitter,
            )
        return actions

    def _decode(self, params: np.ndarray) -> DecodedParameters:
        return decode_parameters(
            params,
            self.cfg.n_actions,
            source_length=self._source_length,
            ranges=self.ranges,
            default_ignore_touch_sensors=self.cfg.default_ignore_touch_sensors,
            default_hysteresis_s=self.cfg.default_hysteresis_s,
        )

    def is_locked(self, subject: RobotSubject, channel: JointChannel) -> bool:
        """Run one lock-machine tick for this joint; True only on the tick it locks."""
        state = self.lock_states[channel.name]
        was_paused = state.is_paused
        locked = self.lock_machine.update(
            state,
            pause_signal=group_fully_touching(subject.touch_group(channel.pause_group)),
            unpause_signal=group_fully_touching(subject.touch_group(channel.unpause_group)),
            hysteresis_s=self.context.hysteresis_s,
        )
        if state.is_paused != was_paused:
            self.context.lock_events.append(
                {
                    "time_s": self.context.elapsed_time,
                    "joint": channel.name,
                    "event": "pause" if state.is_paused else "unpause",
                }
            )
        return locked

    def on_step(self, subject: RobotSubject, dt: float) -> None:
        if dt <= 0.0:
            raise InvalidArgumentError("dt is not positive")
        if self._phase not in (PHASE_WARMUP, PHASE_ACTIVE):
            raise ControllerStateError(f"on_step called in phase '{self._phase}'.")
        ctx = self.context
        ctx.elapsed_time += dt

        if ctx.elapsed_time < self.cfg.warmup_s:
            warmup_joints = self.joints if self.cfg.warmup_lock_all_joints else self.joints[:1]
            for channel in warmup_joints:
                if channel.bound and self.is_locked(subject, channel):
                    channel.joint.set_preferred_length(channel.joint.get_actual_length())
            return

        self._phase = PHASE_ACTIVE
        if not ctx.recorded_start:
            com = np.asarray(subject.center_of_mass(), dtype=float).reshape(3)
            if not np.all(np.isfinite(com)):
                ctx.bad_run = True
            ctx.start_position = com.copy()
            ctx.recorded_start = True

        outputs = apply_cluster_pass(
            self.clusters, self.sine_model, self.impedance, ctx.elapsed_time, dt, self.cfg.initial_length
        )
        if not np.all(np.isfinite(outputs)):
            ctx.bad_run = True
        self._set_prismatic_lengths(subject)
        move_motors(self.actuators, self.joints, dt)

    def _set_prismatic_lengths(self, subject: RobotSubject) -> None:
        ctx = self.context
        outputs = self.sine_model.evaluate_pass([channel.channel for channel in self.joints], ctx.elapsed_time)
        for channel, new_length in zip(self.joints, outputs):
            if not channel.bound:
                continue
            if not ctx.ignore_touch_sensors:
                self.is_locked(subject, channel)
                if self.lock_states[channel.name].is_paused:
                    continue
            if not np.isfinite(new_length):
                ctx.bad_run = True
                continue
            channel.joint.set_preferred_length(new_length)

    def on_teardown(self, subject: RobotSubject) -> list[float]:
        if self._phase not in (PHASE_WARMUP, PHASE_ACTIVE):
            raise ControllerStateError(f"on_teardown called in phase '{self._phase}'.")
        self._phase = PHASE_TEARDOWN
        ctx = self.context
        final_position = np.asarray(subject.center_of_mass(), dtype=float).reshape(3)
        scores = episode_scores(
            ctx.start_position,
            final_position,
            self.actuators,
            axis=self.cfg.axis,
            bad_run=ctx.bad_run,
        )
        self.parameter_source.end_episode(scores)
        self.last_lock_events = list(ctx.lock_events)
        self.reset()
        if self.cfg.verbose:
            print("Torn down")
        return scores

    def reset(self) -> None:
        self.context = EpisodeContext(
            ignore_touch_sensors=self.cfg.default_ignore_touch_sensors,
            hysteresis_s=self.cfg.default_hysteresis_s,
        )
        for state in self.lock_states.values():
            state.reset()
        self.decoded = None
        self.sine_model = None
        self._phase = PHASE_INIT
