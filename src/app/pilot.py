from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from comms.protocol import PILOT_STATUS_TYPE, PROTO_VERSION, OperatorCommand, PilotStatus
from flight.dispatch import CommandDispatcher, DispatchRegistry
from flight.scheduler import TickScheduler
from flight.state import FlightPhase
from flight.state_machine import FlightPhaseMachine


POLL_PERIOD_S = 0.05
BRAKE_HOLD_PERIOD_S = 0.125


class BrakeHold:
    """Re-applies the brakes at a fixed period while the hold is active."""

    def __init__(self, dispatcher: CommandDispatcher, logger: logging.Logger, period_s: float = BRAKE_HOLD_PERIOD_S):
        self._dispatcher = dispatcher
        self._logger = logger
        self._period_s = float(period_s)
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.active:
            return
        self._logger.info("[OPS] brakes hold start")
        self._task = asyncio.get_running_loop().create_task(self._run(), name="brake-hold")

    def stop(self) -> None:
        if self._task is None:
            return
        self._logger.info("[OPS] brakes hold stop")
        self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            self._dispatcher.apply_brakes_hold_tick()
            await asyncio.sleep(self._period_s)


class PilotApp:
    def __init__(self, cfg, logger: logging.Logger, link, status_sender, command_receiver, clock: Callable[[], float] = time.monotonic):
        self.cfg = cfg
        self.logger = logger
        self.link = link
        self.status_sender = status_sender
        self.command_receiver = command_receiver

        self.registry = DispatchRegistry()
        self.dispatcher = CommandDispatcher(sink=link, registry=self.registry, logger=logger, clock=clock)
        self.machine = FlightPhaseMachine(
            link=link,
            dispatcher=self.dispatcher,
            cfg=cfg.level1,
            logger=logger,
            clock=clock,
        )
        self.scheduler = TickScheduler(1.0 / max(0.1, float(cfg.runtime.loop_hz)), self.machine.tick, logger)
        self.brake_hold = BrakeHold(self.dispatcher, logger)
        self.machine.add_phase_listener(self._on_phase_changed)

        self._connecting = False
        self._tasks: list[asyncio.Task] = []
        self._background: set[asyncio.Task] = set()
        self._handlers: dict[str, Callable[[OperatorCommand], None]] = {
            "start": lambda cmd: self.machine.start(),
            "stop": lambda cmd: self.machine.stop(),
            "hold_short": self._cmd_hold_short,
            "throttle": lambda cmd: self.dispatcher.set_throttle_percent(self._value(cmd)),
            "gear_toggle": lambda cmd: self.dispatcher.toggle_gear(),
            "brakes_tap": lambda cmd: self.dispatcher.apply_brakes(),
            "brakes_hold": self._cmd_brakes_hold,
            "toe_brakes": self._cmd_toe_brakes,
            "parking_brake_toggle": lambda cmd: self.dispatcher.toggle_parking_brake(),
            "parking_brake": lambda cmd: self.dispatcher.set_parking_brake(bool(cmd.flag)),
            "rudder": lambda cmd: self.dispatcher.set_rudder_percent(self._value(cmd)),
            "rudder_center": lambda cmd: self.dispatcher.center_rudder(),
            "tiller": lambda cmd: self.dispatcher.set_tiller_percent(self._value(cmd)),
            "connect": lambda cmd: self._spawn_background(self.connect_sim(), "sim-connect"),
            "disconnect": lambda cmd: self.link.close(),
        }

    # ------------------------
    # Lifecycle
    # ------------------------
    async def run(self) -> None:
        await self.connect_sim()
        try:
            await self.command_receiver.start(self.handle_command)
        except OSError as exc:
            self.logger.error("[OPS] operator command endpoint unavailable: %s", exc)

        self.scheduler.start()
        self._spawn(self._poll_loop(), "sim-poll")
        self._spawn(self._reconnect_loop(), "sim-reconnect")
        self._spawn(self._status_loop(), "status-publisher")

        if self.cfg.runtime.autostart:
            self.machine.start()

        try:
            await asyncio.gather(*self._tasks)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        self.machine.stop()
        self.brake_hold.stop()
        await self.scheduler.stop()

        tasks = self._tasks + list(self._background)
        self._tasks = []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        self.command_receiver.stop()
        self.status_sender.close()
        self.link.close()
        self.logger.info("[OPS] shutdown complete")

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.append(task)
        return task

    def _spawn_background(self, coro, name: str) -> asyncio.Task:
        # One-shot work outside the run() gather; forgotten once finished.
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------
    # Simulator connection
    # ------------------------
    async def connect_sim(self) -> bool:
        if self._connecting:
            return False
        self._connecting = True
        try:
            await asyncio.to_thread(self.link.connect, self.cfg.sim.connect_timeout_s)
            return True
        except (TimeoutError, OSError) as exc:
            self.logger.warning("[SIM] connection failed: %s", exc)
            return False
        finally:
            self._connecting = False

    async def _poll_loop(self) -> None:
        while True:
            if not self._connecting:
                self.link.poll()
            await asyncio.sleep(POLL_PERIOD_S)

    async def _reconnect_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cfg.sim.reconnect_interval_s)
            if not self._connecting and not self.link.is_connected():
                self.logger.info("[OPS] attempting reconnect")
                await self.connect_sim()

    # ------------------------
    # Status / operator
    # ------------------------
    def build_status(self) -> PilotStatus:
        snap = self.link.latest_snapshot()
        return PilotStatus(
            v=PROTO_VERSION,
            type=PILOT_STATUS_TYPE,
            phase=self.machine.phase.value,
            running=self.machine.running,
            connected=self.link.is_connected(),
            hold_short=self.machine.hold_short,
            sim_status=self.link.status_text,
            title=None if snap is None else snap.title,
            latitude_deg=None if snap is None else snap.latitude_deg,
            longitude_deg=None if snap is None else snap.longitude_deg,
            altitude_ft=None if snap is None else snap.altitude_ft,
            indicated_airspeed_kts=None if snap is None else snap.indicated_airspeed_kts,
            heading_mag_deg=None if snap is None else snap.heading_mag_deg,
            on_ground=None if snap is None else snap.on_ground,
            ground_speed_kts=None if snap is None else snap.ground_speed_kts,
            parking_brake_on=None if snap is None else snap.parking_brake_on,
            brake_left_pct=None if snap is None else snap.brake_left_pct,
            brake_right_pct=None if snap is None else snap.brake_right_pct,
            engine_combustion_1=None if snap is None else snap.engine_combustion_1,
            engine_rpm_1=None if snap is None else snap.engine_rpm_1,
            t_mono_ns=time.monotonic_ns(),
        )

    def publish_status(self) -> None:
        self.status_sender.send(self.build_status())

    async def _status_loop(self) -> None:
        period_s = 1.0 / max(0.1, float(self.cfg.ipc.status_hz))
        while True:
            self.publish_status()
            await asyncio.sleep(period_s)

    def _on_phase_changed(self, phase: FlightPhase) -> None:
        if phase == FlightPhase.IDLE:
            self.brake_hold.stop()
        self.publish_status()

    def handle_command(self, cmd: OperatorCommand) -> None:
        handler = self._handlers.get(cmd.action)
        if handler is None:
            self.logger.warning("[OPS] unknown operator action %r (seq=%d)", cmd.action, cmd.seq)
            return
        self.logger.info(
            "[OPS] %s value=%s value2=%s flag=%s", cmd.action, cmd.value, cmd.value2, cmd.flag
        )
        try:
            handler(cmd)
        except ValueError as exc:
            self.logger.warning("[OPS] rejected %s: %s", cmd.action, exc)

    @staticmethod
    def _value(cmd: OperatorCommand) -> float:
        if cmd.value is None:
            raise ValueError("value required")
        return cmd.value

    def _cmd_hold_short(self, cmd: OperatorCommand) -> None:
        self.machine.hold_short = (not self.machine.hold_short) if cmd.flag is None else bool(cmd.flag)
        self.logger.info("[OPS] hold short %s", "ON" if self.machine.hold_short else "OFF")

    def _cmd_brakes_hold(self, cmd: OperatorCommand) -> None:
        if cmd.flag is False:
            self.brake_hold.stop()
        else:
            self.brake_hold.start()

    def _cmd_toe_brakes(self, cmd: OperatorCommand) -> None:
        left = self._value(cmd)
        right = left if cmd.value2 is None else cmd.value2
        self.dispatcher.set_toe_brakes_percent(left, right)
