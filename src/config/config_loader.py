from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


CONFIG_ENV_VAR = "AIPILOT_CONFIG"

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RcChannelMap:
    throttle: int
    rudder: int
    tiller: int
    brake_left: int
    brake_right: int
    parking_brake: int


@dataclass(slots=True)
class SimConfig:
    connection_string: str
    connect_timeout_s: float
    heartbeat_timeout_s: float
    reconnect_interval_s: float
    snapshot_hz: float
    brake_tap_s: float
    channels: RcChannelMap


@dataclass(slots=True)
class Level1Config:
    target_altitude_feet: int
    taxi_speed_kts_max: int
    hold_short: bool


@dataclass(slots=True)
class RuntimeConfig:
    loop_hz: float
    autostart: bool


@dataclass(slots=True)
class IpcConfig:
    host: str
    status_udp_port: int
    command_udp_port: int
    status_hz: float


@dataclass(slots=True)
class LogsConfig:
    dir: Path
    level: int


@dataclass(slots=True)
class PilotConfig:
    sim: SimConfig
    level1: Level1Config
    runtime: RuntimeConfig
    ipc: IpcConfig
    logs: LogsConfig


class _Missing:
    pass


MISSING = _Missing()


def _lookup(section: dict[str, Any], keys: list[str], default: Any = MISSING) -> Any:
    for key in keys:
        if key in section:
            return section[key]
    if default is not MISSING:
        return default
    raise KeyError(f"Missing required key. Tried: {keys}")


def _as_bool(v: Any, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        text = v.strip().lower()
        if text in {"1", "true", "yes", "y", "on"}:
            return True
        if text in {"0", "false", "no", "n", "off"}:
            return False
    if isinstance(v, (int, float)):
        return bool(v)
    return default


def _as_level(v: Any, default: int = logging.INFO) -> int:
    if isinstance(v, int):
        return v
    level = logging.getLevelName(str(v).strip().upper())
    return level if isinstance(level, int) else default


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    return value if isinstance(value, dict) else {}


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root in {path}")
    return data


def default_config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path(__file__).resolve().parents[2] / "config.yaml"


def load_config(path: Path | None = None) -> PilotConfig:
    cfg_path = Path(path) if path is not None else default_config_path()
    if cfg_path.is_file():
        data = _load_yaml(cfg_path)
    else:
        LOGGER.warning("Config file %s not found, using defaults", cfg_path)
        data = {}

    sim = _section(data, "sim")
    channels = _section(sim, "channels")
    level1 = _section(data, "level1")
    runtime = _section(data, "runtime")
    ipc = _section(data, "ipc")
    logs = _section(data, "logs")

    logs_dir = Path(str(_lookup(logs, ["dir"], default="logs")))
    if not logs_dir.is_absolute():
        logs_dir = cfg_path.resolve().parent / logs_dir

    return PilotConfig(
        sim=SimConfig(
            connection_string=str(_lookup(sim, ["connection_string"], default="udpin:0.0.0.0:14550")),
            connect_timeout_s=float(_lookup(sim, ["connect_timeout_s"], default=10.0)),
            heartbeat_timeout_s=float(_lookup(sim, ["heartbeat_timeout_s"], default=3.0)),
            reconnect_interval_s=float(_lookup(sim, ["reconnect_interval_s"], default=5.0)),
            snapshot_hz=float(_lookup(sim, ["snapshot_hz", "update_hz"], default=1.0)),
            brake_tap_s=float(_lookup(sim, ["brake_tap_s"], default=0.5)),
            channels=RcChannelMap(
                throttle=int(_lookup(channels, ["throttle"], default=3)),
                rudder=int(_lookup(channels, ["rudder"], default=4)),
                tiller=int(_lookup(channels, ["tiller", "steering"], default=4)),
                brake_left=int(_lookup(channels, ["brake_left"], default=9)),
                brake_right=int(_lookup(channels, ["brake_right"], default=10)),
                parking_brake=int(_lookup(channels, ["parking_brake"], default=11)),
            ),
        ),
        level1=Level1Config(
            target_altitude_feet=int(_lookup(level1, ["target_altitude_feet"], default=4500)),
            taxi_speed_kts_max=int(_lookup(level1, ["taxi_speed_kts_max"], default=15)),
            hold_short=_as_bool(_lookup(level1, ["hold_short"], default=False), default=False),
        ),
        runtime=RuntimeConfig(
            loop_hz=float(_lookup(runtime, ["loop_hz"], default=5.0)),
            autostart=_as_bool(_lookup(runtime, ["autostart"], default=False), default=False),
        ),
        ipc=IpcConfig(
            host=str(_lookup(ipc, ["host"], default="127.0.0.1")),
            status_udp_port=int(_lookup(ipc, ["status_udp_port"], default=14651)),
            command_udp_port=int(_lookup(ipc, ["command_udp_port"], default=14652)),
            status_hz=float(_lookup(ipc, ["status_hz"], default=2.0)),
        ),
        logs=LogsConfig(
            dir=logs_dir.resolve(),
            level=_as_level(_lookup(logs, ["level"], default="INFO")),
        ),
    )
