from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

from flight.dispatch import CommandDispatcher
from flight.flight_states import climb, takeoff, taxi
from flight.flight_states.common import TaxiState
from flight.state import FlightPhase, TelemetrySnapshot


class TelemetrySource(Protocol):
    def is_connected(self) -> bool: ...

    def latest_snapshot(self) -> TelemetrySnapshot | None: ...


class Level1Like(Protocol):
    target_altitude_feet: int
    taxi_speed_kts_max: int
    hold_short: bool


PhaseTick = Callable[["FlightPhaseMachine", TelemetrySnapshot, float], "FlightPhase | None"]

PHASE_TICKS: dict[FlightPhase, PhaseTick] = {
    FlightPhase.TAXI: taxi.tick,
    FlightPhase.TAKEOFF: takeoff.tick,
    FlightPhase.CLIMB: climb.tick,
    FlightPhase.CRUISE: climb.cruise_tick,
}


class FlightPhaseMachine:
    def __init__(
        self,
        link: TelemetrySource,
        dispatcher: CommandDispatcher,
        cfg: Level1Like,
        logger: logging.Logger,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.link = link
        self.dispatcher = dispatcher
        self.cfg = cfg
        self.logger = logger
        self._clock = clock

        self.hold_short = bool(cfg.hold_short)
        self.taxi_state = TaxiState()

        self._phase = FlightPhase.IDLE
        self._running = False
        self._listeners: list[Callable[[FlightPhase], None]] = []
        self._state_lock = threading.RLock()
        self._tick_lock = threading.Lock()

        self.logger.info(
            "[SM] init target_alt=%d ft taxi_max=%d kt",
            int(cfg.target_altitude_feet),
            int(cfg.taxi_speed_kts_max),
        )

    @property
    def phase(self) -> FlightPhase:
        return self._phase

    def current_phase(self) -> FlightPhase:
        return self._phase

    @property
    def running(self) -> bool:
        return self._running

    def add_phase_listener(self, callback: Callable[[FlightPhase], None]) -> None:
        self._listeners.append(callback)

    def start(self) -> None:
        with self._state_lock:
            if self._running:
                return
            self.taxi_state.reset()
            self._running = True
            self._set_phase(FlightPhase.TAXI)

    def stop(self) -> None:
        with self._state_lock:
            self._running = False
            self.taxi_state.reset()
            self._set_phase(FlightPhase.IDLE)

    def _set_phase(self, phase: FlightPhase) -> None:
        if self._phase == phase:
            return
        previous = self._phase
        self._phase = phase
        self.logger.info("[PHASE] %s -> %s", previous.value, phase.value)
        for callback in list(self._listeners):
            try:
                callback(phase)
            except Exception:
                self.logger.exception("[SM] phase listener failed")

    def tick(self) -> None:
        if not self._tick_lock.acquire(blocking=False):
            self.logger.debug("[SM] tick skipped, previous tick still running")
            return
        try:
            self._tick()
        finally:
            self._tick_lock.release()

    def _tick(self) -> None:
        if not self._running:
            return
        if not self.link.is_connected():
            return
        snap = self.link.latest_snapshot()
        if snap is None:
            return

        phase_tick = PHASE_TICKS.get(self._phase)
        if phase_tick is None:
            return

        next_phase = phase_tick(self, snap, self._clock())
        if next_phase is None:
            return

        with self._state_lock:
            # stop() may have landed while the phase logic ran.
            if self._running:
                self._set_phase(next_phase)
