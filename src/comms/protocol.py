from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from typing import Any


PROTO_VERSION = 1
PILOT_STATUS_TYPE = "pilot_status"
OPERATOR_COMMAND_TYPE = "operator_command"

OPERATOR_ACTIONS = frozenset(
    {
        "start",
        "stop",
        "hold_short",
        "throttle",
        "gear_toggle",
        "brakes_tap",
        "brakes_hold",
        "toe_brakes",
        "parking_brake_toggle",
        "parking_brake",
        "rudder",
        "rudder_center",
        "tiller",
        "connect",
        "disconnect",
    }
)


@dataclass(slots=True)
class PilotStatus:
    v: int
    type: str
    phase: str
    running: bool
    connected: bool
    hold_short: bool
    sim_status: str
    title: str | None
    latitude_deg: float | None
    longitude_deg: float | None
    altitude_ft: float | None
    indicated_airspeed_kts: float | None
    heading_mag_deg: float | None
    on_ground: bool | None
    ground_speed_kts: float | None
    parking_brake_on: bool | None
    brake_left_pct: float | None
    brake_right_pct: float | None
    engine_combustion_1: bool | None
    engine_rpm_1: float | None
    t_mono_ns: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class OperatorCommand:
    v: int
    type: str
    seq: int
    action: str
    value: float | None = None
    value2: float | None = None
    flag: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _decode_json(data: bytes) -> dict[str, Any] | None:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def _opt_float(payload: dict[str, Any], key: str) -> float | None:
    value = payload.get(key)
    if value is None:
        return None
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{key} is not finite")
    return number


def _opt_bool(payload: dict[str, Any], key: str) -> bool | None:
    value = payload.get(key)
    return None if value is None else bool(value)


def decode_pilot_status(data: bytes) -> PilotStatus | None:
    payload = _decode_json(data)
    if payload is None:
        return None

    try:
        if int(payload.get("v")) != PROTO_VERSION:
            return None
        if payload.get("type") != PILOT_STATUS_TYPE:
            return None
        return PilotStatus(
            v=PROTO_VERSION,
            type=PILOT_STATUS_TYPE,
            phase=str(payload["phase"]),
            running=bool(payload["running"]),
            connected=bool(payload["connected"]),
            hold_short=bool(payload["hold_short"]),
            sim_status=str(payload["sim_status"]),
            title=None if payload.get("title") is None else str(payload["title"]),
            latitude_deg=_opt_float(payload, "latitude_deg"),
            longitude_deg=_opt_float(payload, "longitude_deg"),
            altitude_ft=_opt_float(payload, "altitude_ft"),
            indicated_airspeed_kts=_opt_float(payload, "indicated_airspeed_kts"),
            heading_mag_deg=_opt_float(payload, "heading_mag_deg"),
            on_ground=_opt_bool(payload, "on_ground"),
            ground_speed_kts=_opt_float(payload, "ground_speed_kts"),
            parking_brake_on=_opt_bool(payload, "parking_brake_on"),
            brake_left_pct=_opt_float(payload, "brake_left_pct"),
            brake_right_pct=_opt_float(payload, "brake_right_pct"),
            engine_combustion_1=_opt_bool(payload, "engine_combustion_1"),
            engine_rpm_1=_opt_float(payload, "engine_rpm_1"),
            t_mono_ns=int(payload["t_mono_ns"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def decode_operator_command(data: bytes) -> OperatorCommand | None:
    payload = _decode_json(data)
    if payload is None:
        return None

    try:
        if int(payload.get("v")) != PROTO_VERSION:
            return None
        if payload.get("type") != OPERATOR_COMMAND_TYPE:
            return None
        cmd = OperatorCommand(
            v=PROTO_VERSION,
            type=OPERATOR_COMMAND_TYPE,
            seq=int(payload["seq"]),
            action=str(payload["action"]),
            value=_opt_float(payload, "value"),
            value2=_opt_float(payload, "value2"),
            flag=_opt_bool(payload, "flag"),
        )
    except (KeyError, TypeError, ValueError):
        return None

    if cmd.seq < 0 or not cmd.action:
        return None
    return cmd


def encode_payload(payload: PilotStatus | OperatorCommand) -> bytes:
    return json.dumps(payload.to_dict(), separators=(",", ":")).encode("utf-8")
