from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FlightPhase(str, Enum):
    IDLE = "Idle"
    TAXI = "Taxi"
    TAKEOFF = "Takeoff"
    CLIMB = "Climb"
    CRUISE = "Cruise"
    # Declared for the full flight profile; nothing transitions into these yet.
    DESCENT = "Descent"
    APPROACH = "Approach"
    LANDING = "Landing"
    TAXI_IN = "TaxiIn"
    PARK = "Park"


@dataclass(frozen=True, slots=True)
class TelemetrySnapshot:
    title: str = ""
    latitude_deg: float = 0.0
    longitude_deg: float = 0.0
    altitude_ft: float = 0.0
    indicated_airspeed_kts: float = 0.0
    heading_mag_deg: float = 0.0
    on_ground: bool = True
    ground_speed_kts: float = 0.0
    parking_brake_on: bool = False
    brake_left_pct: float = 0.0
    brake_right_pct: float = 0.0
    engine_combustion_1: bool = False
    engine_rpm_1: float = 0.0
