from __future__ import annotations

from flight.flight_states.common import TAKEOFF_THROTTLE_PCT
from flight.state import FlightPhase, TelemetrySnapshot


def tick(machine: "FlightPhaseMachine", snap: TelemetrySnapshot, now: float) -> FlightPhase | None:
    if not snap.on_ground:
        return FlightPhase.CLIMB

    if snap.parking_brake_on:
        machine.dispatcher.set_parking_brake(False)
    machine.dispatcher.set_throttle_percent(TAKEOFF_THROTTLE_PCT)
    return None


from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flight.state_machine import FlightPhaseMachine
