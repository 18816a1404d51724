from __future__ import annotations

from flight.flight_states.common import TAXI_THROTTLE_PCT, is_overspeed, stopped_too_long
from flight.state import FlightPhase, TelemetrySnapshot


def tick(machine: "FlightPhaseMachine", snap: TelemetrySnapshot, now: float) -> FlightPhase | None:
    if not snap.on_ground:
        return FlightPhase.TAKEOFF

    dispatcher = machine.dispatcher

    if not machine.hold_short and snap.parking_brake_on:
        # Let the release show up in telemetry before touching throttle or brakes.
        dispatcher.set_parking_brake(False)
        return None

    if machine.hold_short:
        dispatcher.set_throttle_percent(0)
        dispatcher.set_parking_brake(True)
        dispatcher.apply_brakes()
        return None

    if stopped_too_long(machine.taxi_state, snap.ground_speed_kts, now):
        dispatcher.set_throttle_percent(0)
        return None

    if is_overspeed(snap.ground_speed_kts, machine.cfg.taxi_speed_kts_max):
        dispatcher.set_throttle_percent(0)
        dispatcher.apply_brakes()
    else:
        dispatcher.set_throttle_percent(TAXI_THROTTLE_PCT)
    return None


from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flight.state_machine import FlightPhaseMachine
