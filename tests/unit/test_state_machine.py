import logging
import sys
from dataclasses import replace
from pathlib import Path
from types import SimpleNamespace
import unittest

SRC = Path(__file__).resolve().parents[2] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from flight.dispatch import AXIS_FULL_SCALE, Channel, CommandDispatcher, DispatchRegistry, to_axis
from flight.state import FlightPhase, TelemetrySnapshot
from flight.state_machine import FlightPhaseMachine


class _Clock:
    def __init__(self, t: float = 0.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


class _Link:
    def __init__(self, snapshot=None, connected: bool = True):
        self.snapshot = snapshot
        self.connected = connected
        self.calls = []
        self.on_throttle = None

    def is_connected(self) -> bool:
        return self.connected

    def latest_snapshot(self):
        return self.snapshot

    def set_throttle_axis(self, value):
        self.calls.append(("throttle", value))
        if self.on_throttle is not None:
            self.on_throttle()

    def gear_toggle(self):
        self.calls.append(("gear",))

    def apply_brakes(self):
        self.calls.append(("brakes",))

    def set_toe_brakes_axis(self, left, right):
        self.calls.append(("toe", left, right))

    def set_rudder_axis(self, value):
        self.calls.append(("rudder", value))

    def set_tiller_axis(self, value):
        self.calls.append(("tiller", value))

    def parking_brake_toggle(self):
        self.calls.append(("park_toggle",))

    def parking_brake_set(self, engaged):
        self.calls.append(("park_set", engaged))

    def kinds(self):
        return [c[0] for c in self.calls]


GROUND = TelemetrySnapshot(on_ground=True, ground_speed_kts=8.0, parking_brake_on=False, altitude_ft=500.0)
AIRBORNE = replace(GROUND, on_ground=False, ground_speed_kts=70.0, altitude_ft=900.0)


def _make(snapshot=GROUND, target_alt=4500, taxi_max=15, hold_short=False):
    clock = _Clock()
    link = _Link(snapshot)
    dispatcher = CommandDispatcher(link, DispatchRegistry(), logging.getLogger("test.sm"), clock=clock)
    cfg = SimpleNamespace(target_altitude_feet=target_alt, taxi_speed_kts_max=taxi_max, hold_short=hold_short)
    machine = FlightPhaseMachine(link, dispatcher, cfg, logging.getLogger("test.sm"), clock=clock)
    return machine, link, clock


def _advance_to_climb(machine, link, clock):
    machine.start()
    link.snapshot = AIRBORNE
    machine.tick()
    machine.tick()
    assert machine.phase == FlightPhase.CLIMB
    link.calls.clear()
    clock.t += 1.0


class TestLifecycle(unittest.TestCase):
    def test_initial_idle_and_no_commands(self):
        machine, link, _ = _make()
        self.assertEqual(machine.current_phase(), FlightPhase.IDLE)
        machine.tick()
        self.assertEqual(link.calls, [])

    def test_start_moves_to_taxi_once(self):
        machine, _, _ = _make()
        seen = []
        machine.add_phase_listener(seen.append)
        machine.start()
        machine.start()
        self.assertEqual(machine.phase, FlightPhase.TAXI)
        self.assertTrue(machine.running)
        self.assertEqual(seen, [FlightPhase.TAXI])

    def test_stop_from_any_phase(self):
        machine, link, clock = _make()
        seen = []
        machine.add_phase_listener(seen.append)
        _advance_to_climb(machine, link, clock)
        machine.stop()
        self.assertEqual(machine.phase, FlightPhase.IDLE)
        self.assertFalse(machine.running)
        self.assertEqual(seen[-1], FlightPhase.IDLE)
        machine.tick()
        self.assertEqual(link.calls, [])

    def test_restart_after_stop(self):
        machine, _, _ = _make()
        machine.start()
        machine.stop()
        machine.start()
        self.assertEqual(machine.phase, FlightPhase.TAXI)

    def test_phase_changes_logged(self):
        machine, _, _ = _make()
        with self.assertLogs("test.sm", level="INFO") as logs:
            machine.start()
        self.assertTrue(any("[PHASE] Idle -> Taxi" in line for line in logs.output))

    def test_failing_listener_does_not_break_transition(self):
        machine, _, _ = _make()

        def _boom(phase):
            raise RuntimeError("listener")

        machine.add_phase_listener(_boom)
        with self.assertLogs("test.sm", level="ERROR"):
            machine.start()
        self.assertEqual(machine.phase, FlightPhase.TAXI)


class TestTickGuards(unittest.TestCase):
    def test_not_connected_is_noop(self):
        machine, link, _ = _make(snapshot=AIRBORNE)
        machine.start()
        link.connected = False
        machine.tick()
        self.assertEqual(machine.phase, FlightPhase.TAXI)
        self.assertEqual(link.calls, [])

    def test_no_snapshot_is_noop(self):
        machine, link, _ = _make(snapshot=None)
        machine.start()
        machine.tick()
        self.assertEqual(machine.phase, FlightPhase.TAXI)
        self.assertEqual(link.calls, [])

    def test_overlapping_tick_skipped(self):
        machine, link, _ = _make()
        machine.start()
        link.on_throttle = machine.tick
        machine.tick()
        self.assertEqual(link.kinds().count("throttle"), 1)

    def test_stop_during_tick_wins(self):
        machine, link, clock = _make()
        _advance_to_climb(machine, link, clock)
        link.snapshot = replace(AIRBORNE, altitude_ft=4400.0)
        link.on_throttle = machine.stop
        machine.tick()
        self.assertEqual(machine.phase, FlightPhase.IDLE)


class TestTaxi(unittest.TestCase):
    def test_scenario_a_parking_brake_release_only(self):
        snap = TelemetrySnapshot(on_ground=True, ground_speed_kts=0.0, parking_brake_on=True)
        machine, link, _ = _make(snapshot=snap)
        machine.start()
        machine.tick()
        self.assertEqual(link.calls, [("park_set", False)])
        self.assertEqual(machine.phase, FlightPhase.TAXI)

    def test_taxi_throttle(self):
        machine, link, _ = _make()
        machine.start()
        machine.tick()
        self.assertEqual(link.calls, [("throttle", to_axis(5))])

    def test_scenario_e_overspeed_brakes(self):
        machine, link, _ = _make(snapshot=replace(GROUND, ground_speed_kts=20.0), taxi_max=15)
        machine.start()
        machine.tick()
        self.assertEqual(link.calls, [("throttle", 0), ("brakes",)])

    def test_overspeed_margin_is_exclusive(self):
        machine, link, _ = _make(snapshot=replace(GROUND, ground_speed_kts=17.0), taxi_max=15)
        machine.start()
        machine.tick()
        self.assertEqual(link.calls, [("throttle", to_axis(5))])

    def test_scenario_d_stopped_hysteresis(self):
        machine, link, clock = _make(snapshot=replace(GROUND, ground_speed_kts=0.3))
        machine.start()
        for t in (0.0, 1.0, 2.0):
            clock.t = t
            machine.tick()
        throttle = machine.dispatcher.registry.get(Channel.THROTTLE)
        self.assertEqual(throttle.last_value, 5.0)

        clock.t = 2.1
        machine.tick()
        self.assertEqual(throttle.last_value, 0.0)
        self.assertEqual(link.calls[-1], ("throttle", 0))
        self.assertNotIn(("brakes",), link.calls)

    def test_hysteresis_resets_when_moving(self):
        machine, link, clock = _make(snapshot=replace(GROUND, ground_speed_kts=0.3))
        machine.start()
        machine.tick()
        clock.t = 1.5
        link.snapshot = replace(GROUND, ground_speed_kts=3.0)
        machine.tick()
        clock.t = 2.5
        link.snapshot = replace(GROUND, ground_speed_kts=0.3)
        machine.tick()
        self.assertEqual(machine.dispatcher.registry.get(Channel.THROTTLE).last_value, 5.0)
        self.assertEqual(machine.taxi_state.stopped_since, 2.5)

    def test_hold_short_every_tick(self):
        snap = TelemetrySnapshot(on_ground=True, ground_speed_kts=4.0, parking_brake_on=True)
        machine, link, clock = _make(snapshot=snap, hold_short=True)
        machine.start()
        machine.tick()
        self.assertEqual(link.calls, [("throttle", 0), ("park_set", True), ("brakes",)])

        clock.t = 1.0
        machine.tick()
        self.assertEqual(link.kinds().count("park_set"), 2)
        self.assertEqual(link.kinds().count("brakes"), 2)

    def test_hold_short_released_at_runtime(self):
        snap = TelemetrySnapshot(on_ground=True, ground_speed_kts=0.0, parking_brake_on=True)
        machine, link, clock = _make(snapshot=snap, hold_short=True)
        machine.start()
        machine.tick()
        machine.hold_short = False
        clock.t = 1.0
        link.calls.clear()
        machine.tick()
        self.assertEqual(link.calls, [("park_set", False)])

    def test_airborne_goes_to_takeoff_without_commands(self):
        machine, link, _ = _make(snapshot=AIRBORNE)
        machine.start()
        machine.tick()
        self.assertEqual(machine.phase, FlightPhase.TAKEOFF)
        self.assertEqual(link.calls, [])


class TestTakeoff(unittest.TestCase):
    def _to_takeoff(self, machine, link, clock):
        machine.start()
        link.snapshot = AIRBORNE
        machine.tick()
        link.calls.clear()
        clock.t += 1.0

    def test_on_ground_full_throttle_and_release(self):
        machine, link, clock = _make()
        self._to_takeoff(machine, link, clock)
        link.snapshot = replace(GROUND, parking_brake_on=True)
        machine.tick()
        self.assertEqual(link.calls, [("park_set", False), ("throttle", to_axis(90))])
        self.assertEqual(machine.phase, FlightPhase.TAKEOFF)

    def test_on_ground_brake_already_released(self):
        machine, link, clock = _make()
        self._to_takeoff(machine, link, clock)
        link.snapshot = GROUND
        machine.tick()
        self.assertEqual(link.calls, [("throttle", to_axis(90))])

    def test_airborne_moves_to_climb(self):
        machine, link, clock = _make()
        self._to_takeoff(machine, link, clock)
        machine.tick()
        self.assertEqual(machine.phase, FlightPhase.CLIMB)


class TestClimbCruise(unittest.TestCase):
    def test_scenario_b_stays_in_climb(self):
        machine, link, clock = _make()
        _advance_to_climb(machine, link, clock)
        link.snapshot = replace(AIRBORNE, altitude_ft=4100.0)
        machine.tick()
        # 400 ft below target falls in the (200, 500] band of the step law.
        self.assertEqual(link.calls, [("throttle", to_axis(65))])
        self.assertEqual(machine.phase, FlightPhase.CLIMB)

    def test_far_below_target_stays_in_climb(self):
        machine, link, clock = _make()
        _advance_to_climb(machine, link, clock)
        link.snapshot = replace(AIRBORNE, altitude_ft=3900.0)
        machine.tick()
        self.assertEqual(link.calls, [("throttle", to_axis(80))])
        self.assertEqual(machine.phase, FlightPhase.CLIMB)

    def test_scenario_c_captures_cruise(self):
        machine, link, clock = _make()
        _advance_to_climb(machine, link, clock)
        link.snapshot = replace(AIRBORNE, altitude_ft=4250.0)
        machine.tick()
        self.assertEqual(link.calls, [("throttle", to_axis(65))])
        self.assertEqual(machine.phase, FlightPhase.CRUISE)

    def test_capture_threshold_exclusive(self):
        machine, link, clock = _make()
        _advance_to_climb(machine, link, clock)
        link.snapshot = replace(AIRBORNE, altitude_ft=4800.0)
        machine.tick()
        self.assertEqual(machine.phase, FlightPhase.CLIMB)
        self.assertEqual(link.calls, [("throttle", to_axis(30))])

    def test_cruise_holds_without_transition(self):
        machine, link, clock = _make()
        _advance_to_climb(machine, link, clock)
        link.snapshot = replace(AIRBORNE, altitude_ft=4500.0)
        machine.tick()
        self.assertEqual(machine.phase, FlightPhase.CRUISE)

        clock.t += 1.0
        link.snapshot = replace(AIRBORNE, altitude_ft=2000.0)
        machine.tick()
        self.assertEqual(machine.phase, FlightPhase.CRUISE)
        self.assertEqual(link.calls[-1], ("throttle", to_axis(90)))

        clock.t += 1.0
        link.snapshot = replace(AIRBORNE, altitude_ft=6000.0)
        machine.tick()
        self.assertEqual(link.calls[-1], ("throttle", to_axis(15)))

    def test_full_throttle_axis(self):
        self.assertEqual(to_axis(100), AXIS_FULL_SCALE)


if __name__ == "__main__":
    unittest.main()
