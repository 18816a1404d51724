from __future__ import annotations

from pymavlink import mavutil

from flight.state import TelemetrySnapshot


FT_PER_M = 3.280839895
KTS_PER_MPS = 1.943844492
PWM_MIN = 1000
PWM_MAX = 2000
PWM_ENGAGED = 1500


def pwm_to_percent(pwm: int | None) -> float:
    if pwm is None or pwm in (0, 65535):
        return 0.0
    pct = (float(pwm) - PWM_MIN) * 100.0 / (PWM_MAX - PWM_MIN)
    return max(0.0, min(100.0, pct))


def vehicle_title(mav_type: int) -> str:
    entry = mavutil.mavlink.enums["MAV_TYPE"].get(int(mav_type))
    if entry is None:
        return f"MAV_TYPE {mav_type}"
    return entry.name.replace("MAV_TYPE_", "").replace("_", " ").title()


class TelemetryAssembler:
    """Folds MAVLink messages into the fields of a TelemetrySnapshot."""

    def __init__(self, channels):
        self._channels = channels
        self._title = ""
        self._position: tuple[float, float, float] | None = None
        self._hud: tuple[float, float, float] | None = None
        self._on_ground = True
        self._rc: dict[int, int] = {}
        self._rpm_1 = 0.0

    def reset(self) -> None:
        self._position = None
        self._hud = None
        self._rc = {}

    def ingest(self, msg) -> None:
        mtype = msg.get_type()
        if mtype == "HEARTBEAT":
            self._title = vehicle_title(msg.type)
        elif mtype == "GLOBAL_POSITION_INT":
            self._position = (
                msg.lat / 1e7,
                msg.lon / 1e7,
                (msg.alt / 1000.0) * FT_PER_M,
            )
        elif mtype == "VFR_HUD":
            self._hud = (
                float(msg.airspeed) * KTS_PER_MPS,
                float(msg.heading) % 360.0,
                float(msg.groundspeed) * KTS_PER_MPS,
            )
        elif mtype == "EXTENDED_SYS_STATE":
            landed = int(msg.landed_state)
            if landed != mavutil.mavlink.MAV_LANDED_STATE_UNDEFINED:
                self._on_ground = landed == mavutil.mavlink.MAV_LANDED_STATE_ON_GROUND
        elif mtype == "RC_CHANNELS":
            for ch in range(1, 19):
                raw = getattr(msg, f"chan{ch}_raw", None)
                if raw is not None:
                    self._rc[ch] = int(raw)
        elif mtype == "RPM":
            self._rpm_1 = max(0.0, float(msg.rpm1))

    def build(self) -> TelemetrySnapshot | None:
        if self._position is None or self._hud is None:
            return None

        lat, lon, alt_ft = self._position
        ias_kts, heading_deg, gs_kts = self._hud
        park_pwm = self._rc.get(self._channels.parking_brake)
        return TelemetrySnapshot(
            title=self._title,
            latitude_deg=lat,
            longitude_deg=lon,
            altitude_ft=alt_ft,
            indicated_airspeed_kts=ias_kts,
            heading_mag_deg=heading_deg,
            on_ground=self._on_ground,
            ground_speed_kts=gs_kts,
            parking_brake_on=park_pwm is not None and park_pwm >= PWM_ENGAGED,
            brake_left_pct=pwm_to_percent(self._rc.get(self._channels.brake_left)),
            brake_right_pct=pwm_to_percent(self._rc.get(self._channels.brake_right)),
            engine_combustion_1=self._rpm_1 > 0.0,
            engine_rpm_1=self._rpm_1,
        )
