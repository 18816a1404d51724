"""
sim_link.py

MAVLink connection to the simulated aircraft, built on pymavlink.

Features:
- Connect via a MAVLink connection string (e.g., "udpin:0.0.0.0:14550") and
  wait for the vehicle heartbeat
- Non-blocking poll() that folds telemetry into an immutable TelemetrySnapshot
  and republishes it at a fixed rate
- Actuator sink used by the command dispatcher:
  - axis values (0..16383, or -16383..16383 for rudder/tiller) mapped onto
    RC_CHANNELS_OVERRIDE PWM
  - landing gear via MAV_CMD_AIRFRAME_CONFIGURATION
  - momentary brake tap and parking brake on RC channels
- Connection health from heartbeat age
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Optional

from pymavlink import mavutil

from flight.dispatch import AXIS_FULL_SCALE
from flight.state import TelemetrySnapshot
from hw.telemetry import PWM_MAX, PWM_MIN, TelemetryAssembler


PWM_CENTER = 1500
RC_OVERRIDE_CHANNELS = 18
RC_OVERRIDE_REFRESH_S = 1.0

STREAM_RATES_HZ = {
    "GLOBAL_POSITION_INT": 5.0,
    "VFR_HUD": 5.0,
    "EXTENDED_SYS_STATE": 2.0,
    "RC_CHANNELS": 2.0,
    "RPM": 2.0,
}


def axis_to_pwm(value: int) -> int:
    value = max(0, min(AXIS_FULL_SCALE, int(value)))
    return PWM_MIN + int(round((PWM_MAX - PWM_MIN) * value / AXIS_FULL_SCALE))


def bipolar_axis_to_pwm(value: int) -> int:
    value = max(-AXIS_FULL_SCALE, min(AXIS_FULL_SCALE, int(value)))
    return PWM_CENTER + int(round((PWM_MAX - PWM_CENTER) * value / AXIS_FULL_SCALE))


def _ignored_channel_value(channel: int) -> int:
    # MAVLink: UINT16_MAX ignores channels 1..8, 0 ignores channels 9..18.
    return 65535 if channel <= 8 else 0


class SimLink:
    """
    Telemetry source and actuator sink for one simulated aircraft.
    """

    def __init__(
        self,
        connection_string: str,
        channels,
        logger: logging.Logger,
        *,
        heartbeat_timeout_s: float = 3.0,
        snapshot_hz: float = 1.0,
        brake_tap_s: float = 0.5,
        source_system: int = 255,
        source_component: int = 190,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            connection_string: e.g. "udpin:0.0.0.0:14550", "tcp:127.0.0.1:5760"
            channels: RC channel map (throttle, rudder, tiller, brake_left,
                brake_right, parking_brake)
            heartbeat_timeout_s: link counts as lost after this long without
                a vehicle heartbeat
            snapshot_hz: rate at which a fresh TelemetrySnapshot is published
            brake_tap_s: how long a momentary brake application is held
        """
        self.connection_string = connection_string
        self.channels = channels
        self.logger = logger
        self.heartbeat_timeout_s = float(heartbeat_timeout_s)
        self.snapshot_period_s = 1.0 / max(0.1, float(snapshot_hz))
        self.brake_tap_s = float(brake_tap_s)
        self.source_system = source_system
        self.source_component = source_component
        self._clock = clock
        # connect() runs on a worker thread while the loop may be sending overrides.
        self._send_lock = threading.Lock()

        self.m = None
        self.target_system: Optional[int] = None
        self.target_component: Optional[int] = None
        self.status_text = "Disconnected"

        self._assembler = TelemetryAssembler(channels)
        self._snapshot: Optional[TelemetrySnapshot] = None
        self._last_heartbeat: Optional[float] = None
        self._next_snapshot = 0.0

        self._overrides: dict[int, int] = {}
        self._next_override_refresh = 0.0
        self._brake_release_at: Optional[float] = None
        self._brake_restore: tuple[int, int] = (PWM_MIN, PWM_MIN)
        self._gear_down = True
        self._parking_brake = False

    # ------------------------
    # Connection
    # ------------------------
    def connect(self, timeout_s: float = 10.0) -> None:
        """
        Open the MAVLink connection and wait for a vehicle heartbeat.
        """
        if self.is_connected():
            return
        if self.m is not None:
            self.close()

        self._set_status("Connecting")
        self.m = mavutil.mavlink_connection(
            self.connection_string,
            autoreconnect=True,
            source_system=self.source_system,
            source_component=self.source_component,
        )

        t0 = self._clock()
        while True:
            if self._clock() - t0 > timeout_s:
                self.close()
                raise TimeoutError(f"Timeout waiting for heartbeat on {self.connection_string}")

            hb = self.m.wait_heartbeat(timeout=1.0)
            if hb is not None:
                self.target_system = self.m.target_system
                self.target_component = self.m.target_component
                self._last_heartbeat = self._clock()
                self._assembler.ingest(hb)
                break

        self._request_streams()
        self._set_status(f"Connected (sys={self.target_system} comp={self.target_component})")

    def close(self) -> None:
        if self.m is not None:
            try:
                self.m.close()
            except OSError as exc:
                self.logger.info("[SIM] close failed (ignored on shutdown): %s", exc)
        self.m = None
        self._last_heartbeat = None
        self._snapshot = None
        self._brake_release_at = None
        self._assembler.reset()
        self._set_status("Disconnected")

    def is_connected(self) -> bool:
        if self.m is None or self._last_heartbeat is None:
            return False
        return (self._clock() - self._last_heartbeat) <= self.heartbeat_timeout_s

    def latest_snapshot(self) -> Optional[TelemetrySnapshot]:
        return self._snapshot

    def _set_status(self, text: str) -> None:
        if text != self.status_text:
            self.logger.info("[SIM] %s", text)
        self.status_text = text

    def _request_streams(self) -> None:
        for name, rate_hz in STREAM_RATES_HZ.items():
            msg_id = getattr(mavutil.mavlink, f"MAVLINK_MSG_ID_{name}", None)
            if msg_id is None:
                continue
            self._command_long(mavutil.mavlink.MAV_CMD_SET_MESSAGE_INTERVAL, float(msg_id), 1e6 / rate_hz)

    # ------------------------
    # Telemetry
    # ------------------------
    def poll(self) -> None:
        """
        Drain pending MAVLink messages without blocking and publish a new
        snapshot when the snapshot period has elapsed.
        """
        if self.m is None:
            return

        try:
            while True:
                msg = self.m.recv_match(blocking=False)
                if msg is None:
                    break
                mtype = msg.get_type()
                if mtype == "BAD_DATA":
                    continue
                if mtype == "HEARTBEAT":
                    if msg.get_srcSystem() != self.target_system:
                        continue
                    self._last_heartbeat = self._clock()
                self._assembler.ingest(msg)
        except OSError as exc:
            self.logger.error("[SIM] receive failed: %s. Disconnecting.", exc)
            self.close()
            return

        now = self._clock()
        if not self.is_connected():
            self._set_status("Connection lost (no heartbeat)")
            return

        if now >= self._next_snapshot:
            snap = self._assembler.build()
            if snap is not None:
                self._snapshot = snap
            self._next_snapshot = now + self.snapshot_period_s

        if self._brake_release_at is not None and now >= self._brake_release_at:
            self._brake_release_at = None
            left, right = self._brake_restore
            self._override({self.channels.brake_left: left, self.channels.brake_right: right})
        elif self._overrides and now >= self._next_override_refresh:
            self._send_overrides()

    # ------------------------
    # Actuators
    # ------------------------
    def set_throttle_axis(self, value: int) -> None:
        if not self.is_connected():
            return
        self._override({self.channels.throttle: axis_to_pwm(value)})

    def set_rudder_axis(self, value: int) -> None:
        if not self.is_connected():
            return
        self._override({self.channels.rudder: bipolar_axis_to_pwm(value)})

    def set_tiller_axis(self, value: int) -> None:
        if not self.is_connected():
            return
        self._override({self.channels.tiller: bipolar_axis_to_pwm(value)})

    def set_toe_brakes_axis(self, left: int, right: int) -> None:
        if not self.is_connected():
            return
        left_pwm, right_pwm = axis_to_pwm(left), axis_to_pwm(right)
        if self._brake_release_at is not None:
            self._brake_restore = (left_pwm, right_pwm)
            return
        self._override({self.channels.brake_left: left_pwm, self.channels.brake_right: right_pwm})

    def apply_brakes(self) -> None:
        if not self.is_connected():
            return
        if self._brake_release_at is None:
            self._brake_restore = (
                self._overrides.get(self.channels.brake_left, PWM_MIN),
                self._overrides.get(self.channels.brake_right, PWM_MIN),
            )
        self._brake_release_at = self._clock() + self.brake_tap_s
        self._override({self.channels.brake_left: PWM_MAX, self.channels.brake_right: PWM_MAX})

    def parking_brake_set(self, engaged: bool) -> None:
        if not self.is_connected():
            return
        self._parking_brake = bool(engaged)
        self._override({self.channels.parking_brake: PWM_MAX if engaged else PWM_MIN})

    def parking_brake_toggle(self) -> None:
        if not self.is_connected():
            return
        current = self._parking_brake
        if self._snapshot is not None:
            current = self._snapshot.parking_brake_on
        self.parking_brake_set(not current)

    def gear_toggle(self) -> None:
        if not self.is_connected():
            return
        self._gear_down = not self._gear_down
        self._command_long(
            mavutil.mavlink.MAV_CMD_AIRFRAME_CONFIGURATION,
            -1.0,
            0.0 if self._gear_down else 1.0,
        )

    # ------------------------
    # Transport
    # ------------------------
    def _override(self, values: dict[int, int]) -> None:
        self._overrides.update(values)
        self._send_overrides()

    def _send_overrides(self) -> None:
        raw = [
            self._overrides.get(ch, _ignored_channel_value(ch))
            for ch in range(1, RC_OVERRIDE_CHANNELS + 1)
        ]
        self._safe_send(
            "RC_CHANNELS_OVERRIDE",
            lambda: self.m.mav.rc_channels_override_send(self.target_system, self.target_component, *raw),
        )
        self._next_override_refresh = self._clock() + RC_OVERRIDE_REFRESH_S

    def _command_long(self, command: int, *params: float) -> None:
        padded = (list(params) + [0.0] * 7)[:7]
        self._safe_send(
            f"COMMAND_LONG {command}",
            lambda: self.m.mav.command_long_send(self.target_system, self.target_component, command, 0, *padded),
        )

    def _safe_send(self, what: str, send: Callable[[], None]) -> bool:
        if self.m is None:
            return False
        try:
            with self._send_lock:
                send()
            return True
        except OSError as exc:
            self.logger.error("[SIM] %s send failed: %s. Disconnecting.", what, exc)
            self.close()
            return False
