from dataclasses import dataclass
from pathlib import Path

import mujoco
import numpy as np

from runtime_config import JOINT_NAMES, RuntimeConfig
from substrate import ActuatorHistory


@dataclass(frozen=True)
class CableIds:
    name: str
    tendon_id: int
    actuator_id: int


@dataclass(frozen=True)
class PrismaticIds:
    name: str
    joint_id: int
    qpos_adr: int
    actuator_id: int


@dataclass(frozen=True)
class ModelIds:
    cables: tuple[CableIds, ...]
    prismatics: tuple[PrismaticIds, ...]
    touch_sensor_adr: dict[str, tuple[int, ...]]


def lookup_model_ids(model: mujoco.MjModel) -> ModelIds:
    """
    Resolve the XML naming contract:
    - tendon `clusterN_cableM` driven by motor `clusterN_cableM_motor`,
    - slide joint `<joint>_prismatic` driven by position actuator `<joint>_prismatic_motor`,
    - touch sensors `<group>_*` grouped by their name prefix.
    """

    def aid(name):
        return mujoco.mj_name2id(model, mujoco.mjtObj.mjOBJ_ACTUATOR, name)

    cables = []
    for tid in range(model.ntendon):
        name = mujoco.mj_id2name(model, mujoco.mjtObj.mjOBJ_TENDON, tid)
        if not name or not name.startswith("cluster"):
            continue
        actuator_id = aid(f"{name}_motor")
        if actuator_id < 0:
            raise ValueError(f"Cable tendon '{name}' has no '{name}_motor' actuator.")
        cables.append(CableIds(name=name, tendon_id=tid, actuator_id=actuator_id))

    prismatics = []
    for joint_name in JOINT_NAMES:
        jid = mujoco.mj_name2id(model, mujoco.mjtObj.mjOBJ_JOINT, f"{joint_name}_prismatic")
        if jid < 0:
            continue
        actuator_id = aid(f"{joint_name}_prismatic_motor")
        if actuator_id < 0:
            raise ValueError(f"Prismatic joint '{joint_name}' has no '{joint_name}_prismatic_motor' actuator.")
        prismatics.append(
            PrismaticIds(
                name=joint_name,
                joint_id=jid,
                qpos_adr=int(model.jnt_qposadr[jid]),
                actuator_id=actuator_id,
            )
        )

    touch_sensor_adr: dict[str, list[int]] = {}
    for sid in range(model.nsensor):
        if int(model.sensor_type[sid]) != int(mujoco.mjtSensor.mjSENS_TOUCH):
            continue
        name = mujoco.mj_id2name(model, mujoco.mjtObj.mjOBJ_SENSOR, sid) or ""
        group = name.split("_", 1)[0]
        touch_sensor_adr.setdefault(group, []).append(int(model.sensor_adr[sid]))

    return ModelIds(
        cables=tuple(cables),
        prismatics=tuple(prismatics),
        touch_sensor_adr={group: tuple(adrs) for group, adrs in touch_sensor_adr.items()},
    )


class MujocoCable:
    """
    Spring cable on a spatial tendon. The motor reels the rest length toward its
    target at a bounded speed; tension is k * stretch, never pushing.
    """

    def __init__(self, model, data, ids: CableIds, cfg: RuntimeConfig):
        self.name = ids.name
        self.model = model
        self.data = data
        self.ids = ids
        self._stiffness = float(cfg.cable_stiffness)
        self.max_tension = float(cfg.cable_max_tension)
        self.motor_speed = float(cfg.cable_motor_speed)
        self.min_rest_length = float(cfg.cable_min_rest_length)
        self._history = ActuatorHistory()
        self.reset()

    @property
    def current_length(self) -> float:
        return float(self.data.ten_length[self.ids.tendon_id])

    @property
    def velocity(self) -> float:
        return float(self.data.ten_velocity[self.ids.tendon_id])

    @property
    def stiffness(self) -> float:
        return self._stiffness

    def set_target_length(self, length: float, dt: float) -> None:
        self.target_length = float(max(length, self.min_rest_length))

    def apply_motor_step(self, dt: float) -> None:
        max_step = self.motor_speed * dt
        self.rest_length += float(np.clip(self.target_length - self.rest_length, -max_step, max_step))
        stretch = self.current_length - self.rest_length
        self.tension = float(np.clip(self._stiffness * stretch, 0.0, self.max_tension))
        # Positive motor force lengthens the tendon, so tension is applied negated.
        self.data.ctrl[self.ids.actuator_id] = -self.tension
        self._history.record(self.tension, self.rest_length)

    def history(self) -> ActuatorHistory:
        return self._history

    def reset(self) -> None:
        self.rest_length = float(max(self.current_length, self.min_rest_length))
        self.target_length = self.rest_length
        self.tension = 0.0
        self.data.ctrl[self.ids.actuator_id] = 0.0
        self._history.clear()


class MujocoPrismatic:
    def __init__(self, model, data, ids: PrismaticIds, cfg: RuntimeConfig):
        self.name = ids.name
        self.model = model
        self.data = data
        self.ids = ids
        self.motor_speed = float(cfg.prism_motor_speed)
        self.reset()

    def get_min_length(self) -> float:
        return float(self.model.jnt_range[self.ids.joint_id, 0])

    def get_max_length(self) -> float:
        return float(self.model.jnt_range[self.ids.joint_id, 1])

    def get_actual_length(self) -> float:
        return float(self.data.qpos[self.ids.qpos_adr])

    def set_preferred_length(self, length: float) -> None:
        self.preferred_length = float(np.clip(length, self.get_min_length(), self.get_max_length()))

    def apply_motor_step(self, dt: float) -> None:
        max_step = self.motor_speed * dt
        self.command += float(np.clip(self.preferred_length - self.command, -max_step, max_step))
        self.data.ctrl[self.ids.actuator_id] = self.command

    def reset(self) -> None:
        length = float(np.clip(self.get_actual_length(), self.get_min_length(), self.get_max_length()))
        self.preferred_length = length
        self.command = length
        self.data.ctrl[self.ids.actuator_id] = length


class MujocoTouchSensor:
    def __init__(self, data, adr: int, threshold: float):
        self.data = data
        self.adr = int(adr)
        self.threshold = float(threshold)

    def is_touching(self) -> bool:
        return bool(self.data.sensordata[self.adr] > self.threshold)


def load_model(path: str | Path):
    model = mujoco.MjModel.from_xml_path(str(path))
    data = mujoco.MjData(model)
    return model, data


def reset_state(model, data):
    # Back to the XML pose (qpos0) with zero velocity and controls.
    mujoco.mj_resetData(model, data)
    mujoco.mj_forward(model, data)


class MujocoTensegrity:
    """RobotSubject over a MuJoCo model following the naming contract of `lookup_model_ids`."""

    def __init__(self, model, data, cfg: RuntimeConfig):
        self.model = model
        self.data = data
        self.cfg = cfg
        reset_state(model, data)
        self.ids = lookup_model_ids(model)
        self.cables = [MujocoCable(model, data, ids, cfg) for ids in self.ids.cables]
        self.prismatics = {ids.name: MujocoPrismatic(model, data, ids, cfg) for ids in self.ids.prismatics}
        self.touch_groups = {
            group: [MujocoTouchSensor(data, adr, cfg.touch_threshold) for adr in adrs]
            for group, adrs in self.ids.touch_sensor_adr.items()
        }

    @classmethod
    def from_config(cls, cfg: RuntimeConfig) -> "MujocoTensegrity":
        model, data = load_model(cfg.model_path)
        return cls(model, data, cfg)

    @property
    def time(self) -> float:
        return float(self.data.time)

    @property
    def timestep(self) -> float:
        return float(self.model.opt.timestep)

    def all_actuators(self):
        return list(self.cables)

    def find_actuators(self, tag: str):
        return [cable for cable in self.cables if cable.name.startswith(f"{tag}_")]

    def prismatic(self, name: str):
        return self.prismatics.get(name)

    def touch_group(self, name: str):
        return list(self.touch_groups.get(name, []))

    def center_of_mass(self) -> np.ndarray:
        # subtree_com of the world body is the mass-weighted centre of the whole robot.
        return np.array(self.data.subtree_com[0], dtype=float)

    def step(self) -> None:
        mujoco.mj_step(self.model, self.data)

    def reset(self) -> None:
        reset_state(self.model, self.data)
        for cable in self.cables:
            cable.reset()
        for joint in self.prismatics.values():
            joint.reset()
