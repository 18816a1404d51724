from __future__ import annotations

from dataclasses import dataclass

from flight.state import TelemetrySnapshot


STOPPED_KTS = 0.5
STOPPED_HOLD_S = 2.0
OVERSPEED_MARGIN_KTS = 2.0
TAXI_THROTTLE_PCT = 5
TAKEOFF_THROTTLE_PCT = 90
CRUISE_CAPTURE_FT = 300.0


@dataclass(slots=True)
class TaxiState:
    stopped_since: float | None = None

    def reset(self) -> None:
        self.stopped_since = None


def stopped_too_long(state: TaxiState, ground_speed_kts: float, now: float) -> bool:
    """Track continuous low-speed time; True once it exceeds STOPPED_HOLD_S."""
    if ground_speed_kts >= STOPPED_KTS:
        state.stopped_since = None
        return False
    if state.stopped_since is None:
        state.stopped_since = now
    return (now - state.stopped_since) > STOPPED_HOLD_S


def is_overspeed(ground_speed_kts: float, taxi_speed_kts_max: float) -> bool:
    return ground_speed_kts > taxi_speed_kts_max + OVERSPEED_MARGIN_KTS


def altitude_error_ft(target_altitude_ft: float, snap: TelemetrySnapshot) -> float:
    return float(target_altitude_ft) - snap.altitude_ft
