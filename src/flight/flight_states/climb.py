from __future__ import annotations

from flight.altitude import suggest_throttle
from flight.flight_states.common import CRUISE_CAPTURE_FT, altitude_error_ft
from flight.state import FlightPhase, TelemetrySnapshot


def _hold_altitude(machine: "FlightPhaseMachine", snap: TelemetrySnapshot) -> float:
    err = altitude_error_ft(machine.cfg.target_altitude_feet, snap)
    machine.dispatcher.set_throttle_percent(suggest_throttle(err))
    return err


def tick(machine: "FlightPhaseMachine", snap: TelemetrySnapshot, now: float) -> FlightPhase | None:
    err = _hold_altitude(machine, snap)
    if abs(err) < CRUISE_CAPTURE_FT:
        return FlightPhase.CRUISE
    return None


def cruise_tick(machine: "FlightPhaseMachine", snap: TelemetrySnapshot, now: float) -> FlightPhase | None:
    _hold_altitude(machine, snap)
    return None


from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flight.state_machine import FlightPhaseMachine
