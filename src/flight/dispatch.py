from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Union


AXIS_FULL_SCALE = 16383


class Channel(str, Enum):
    THROTTLE = "THROTTLE"
    GEAR = "GEAR"
    BRAKES = "BRAKES"
    TOE_BRAKES = "TOE_BRAKES"
    RUDDER = "RUDDER"
    TILLER = "TILLER"
    PARKBRAKE = "PARKBRAKE"
    PARKBRAKE_SET = "PARKBRAKE_SET"


@dataclass(frozen=True, slots=True)
class AndGate:
    """Send only when the interval has elapsed and the value moved by min_delta."""

    interval_s: float
    min_delta: float


@dataclass(frozen=True, slots=True)
class OrGate:
    """Send when the interval has elapsed or the value moved by min_delta."""

    interval_s: float
    min_delta: float


@dataclass(frozen=True, slots=True)
class RateOnly:
    interval_s: float


GatePolicy = Union[AndGate, OrGate, RateOnly]


DEFAULT_POLICIES: dict[Channel, GatePolicy] = {
    Channel.THROTTLE: AndGate(interval_s=0.100, min_delta=0.5),
    Channel.GEAR: RateOnly(interval_s=0.150),
    Channel.BRAKES: RateOnly(interval_s=0.150),
    Channel.TOE_BRAKES: OrGate(interval_s=0.050, min_delta=0.5),
    Channel.RUDDER: OrGate(interval_s=0.050, min_delta=1.0),
    Channel.TILLER: OrGate(interval_s=0.050, min_delta=1.0),
    Channel.PARKBRAKE: RateOnly(interval_s=0.250),
    Channel.PARKBRAKE_SET: RateOnly(interval_s=0.250),
}


class ActuatorSink(Protocol):
    def is_connected(self) -> bool: ...

    def set_throttle_axis(self, value: int) -> None: ...

    def gear_toggle(self) -> None: ...

    def apply_brakes(self) -> None: ...

    def set_toe_brakes_axis(self, left: int, right: int) -> None: ...

    def set_rudder_axis(self, value: int) -> None: ...

    def set_tiller_axis(self, value: int) -> None: ...

    def parking_brake_toggle(self) -> None: ...

    def parking_brake_set(self, engaged: bool) -> None: ...


@dataclass(slots=True)
class DispatchRecord:
    last_sent: float | None = None
    last_value: Any = None


class DispatchRegistry:
    """Per-channel last-sent state, one record and one lock per channel."""

    def __init__(self) -> None:
        self._records: dict[Channel, DispatchRecord] = {}
        self._locks: dict[Channel, threading.Lock] = {}
        self._guard = threading.Lock()

    def slot(self, channel: Channel) -> tuple[DispatchRecord, threading.Lock]:
        with self._guard:
            record = self._records.get(channel)
            if record is None:
                record = DispatchRecord()
                self._records[channel] = record
                self._locks[channel] = threading.Lock()
            return record, self._locks[channel]

    def get(self, channel: Channel) -> DispatchRecord | None:
        with self._guard:
            return self._records.get(channel)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def to_axis(percent: float) -> int:
    return int(round(AXIS_FULL_SCALE * (percent / 100.0)))


def _interval_elapsed(record: DispatchRecord, now: float, interval_s: float) -> bool:
    return record.last_sent is None or (now - record.last_sent) >= interval_s


def _value_changed(last: Any, value: Any, min_delta: float) -> bool:
    if last is None:
        return True
    if isinstance(value, tuple):
        return any(abs(v - prev) >= min_delta for v, prev in zip(value, last))
    return abs(value - last) >= min_delta


def should_send(policy: GatePolicy, record: DispatchRecord, value: Any, now: float) -> bool:
    elapsed = _interval_elapsed(record, now, policy.interval_s)
    if isinstance(policy, RateOnly):
        return elapsed
    changed = _value_changed(record.last_value, value, policy.min_delta)
    if isinstance(policy, AndGate):
        return elapsed and changed
    return elapsed or changed


class CommandDispatcher:
    def __init__(
        self,
        sink: ActuatorSink,
        registry: DispatchRegistry,
        logger: logging.Logger,
        clock: Callable[[], float] = time.monotonic,
        policies: dict[Channel, GatePolicy] | None = None,
    ):
        self._sink = sink
        self._registry = registry
        self._logger = logger
        self._clock = clock
        self._policies = dict(DEFAULT_POLICIES)
        if policies:
            self._policies.update(policies)

    @property
    def registry(self) -> DispatchRegistry:
        return self._registry

    def _finite(self, channel: Channel, *values: float) -> bool:
        if all(math.isfinite(v) for v in values):
            return True
        self._logger.warning("[CMD] %s dropped non-finite value %s", channel.value, values)
        return False

    def _dispatch(self, channel: Channel, value: Any, transmit: Callable[[], None]) -> bool:
        if not self._sink.is_connected():
            return False
        record, lock = self._registry.slot(channel)
        with lock:
            now = self._clock()
            if not should_send(self._policies[channel], record, value, now):
                return False
            transmit()
            # Stamped only on an actual send; a call the value gate suppresses leaves last_sent as is.
            record.last_sent = now
            record.last_value = value
        return True

    def set_throttle_percent(self, percent: float) -> bool:
        percent = float(percent)
        if not self._finite(Channel.THROTTLE, percent):
            return False
        percent = clamp(percent, 0.0, 100.0)
        axis = to_axis(percent)
        sent = self._dispatch(Channel.THROTTLE, percent, lambda: self._sink.set_throttle_axis(axis))
        if sent:
            self._logger.info("[CMD] THROTTLE %.1f%% (axis=%d)", percent, axis)
        return sent

    def toggle_gear(self) -> bool:
        sent = self._dispatch(Channel.GEAR, None, self._sink.gear_toggle)
        if sent:
            self._logger.info("[CMD] GEAR_TOGGLE")
        return sent

    def apply_brakes(self) -> bool:
        sent = self._dispatch(Channel.BRAKES, None, self._sink.apply_brakes)
        if sent:
            self._logger.info("[CMD] BRAKES")
        return sent

    def apply_brakes_hold_tick(self) -> bool:
        # Called continuously while a hold is active, so no gating and no record.
        if not self._sink.is_connected():
            return False
        self._sink.apply_brakes()
        self._logger.debug("[CMD] BRAKES (hold)")
        return True

    def set_toe_brakes_percent(self, left: float, right: float) -> bool:
        left, right = float(left), float(right)
        if not self._finite(Channel.TOE_BRAKES, left, right):
            return False
        left = clamp(left, 0.0, 100.0)
        right = clamp(right, 0.0, 100.0)
        left_axis = to_axis(left)
        right_axis = to_axis(right)
        sent = self._dispatch(
            Channel.TOE_BRAKES,
            (left, right),
            lambda: self._sink.set_toe_brakes_axis(left_axis, right_axis),
        )
        if sent:
            self._logger.info(
                "[CMD] TOE_BRAKES L=%.1f%% R=%.1f%% (axes %d/%d)", left, right, left_axis, right_axis
            )
        return sent

    def set_rudder_percent(self, percent: float) -> bool:
        percent = float(percent)
        if not self._finite(Channel.RUDDER, percent):
            return False
        percent = clamp(percent, -100.0, 100.0)
        axis = to_axis(percent)
        sent = self._dispatch(Channel.RUDDER, percent, lambda: self._sink.set_rudder_axis(axis))
        if sent:
            self._logger.info("[CMD] RUDDER %.1f%% (axis=%d)", percent, axis)
        return sent

    def center_rudder(self) -> bool:
        return self.set_rudder_percent(0.0)

    def set_tiller_percent(self, percent: float) -> bool:
        percent = float(percent)
        if not self._finite(Channel.TILLER, percent):
            return False
        percent = clamp(percent, -100.0, 100.0)
        axis = to_axis(percent)
        sent = self._dispatch(Channel.TILLER, percent, lambda: self._sink.set_tiller_axis(axis))
        if sent:
            self._logger.info("[CMD] TILLER %.1f%% (axis=%d)", percent, axis)
        return sent

    def toggle_parking_brake(self) -> bool:
        sent = self._dispatch(Channel.PARKBRAKE, None, self._sink.parking_brake_toggle)
        if sent:
            self._logger.info("[CMD] PARKING_BRAKES_TOGGLE")
        return sent

    def set_parking_brake(self, engaged: bool) -> bool:
        engaged = bool(engaged)
        sent = self._dispatch(Channel.PARKBRAKE_SET, engaged, lambda: self._sink.parking_brake_set(engaged))
        if sent:
            self._logger.info("[CMD] PARKING_BRAKES %s", "SET" if engaged else "RELEASE")
        return sent
