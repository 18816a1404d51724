"""Operator console for a running aipilot process."""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Optional

from comms.protocol import OPERATOR_ACTIONS, PilotStatus
from comms.udp import OperatorCommandUdpSender, PilotStatusReceiver
from config.config_loader import load_config


def _fmt(value, spec: str, unit: str = "") -> str:
    if value is None:
        return "--"
    return f"{value:{spec}}{unit}"


def _on_off(value: bool | None) -> str:
    if value is None:
        return "--"
    return "ON" if value else "OFF"


def format_status(status: PilotStatus) -> str:
    lines = [
        f"Phase: {status.phase}  running={status.running}  hold_short={_on_off(status.hold_short)}",
        f"Sim: {status.sim_status}  connected={status.connected}",
    ]
    if status.altitude_ft is None:
        lines.append("Telemetry: waiting")
        return "\n".join(lines)

    lines.extend(
        [
            f"Title: {status.title or '--'}",
            f"Lat/Lon: {_fmt(status.latitude_deg, '.6f')}, {_fmt(status.longitude_deg, '.6f')}",
            f"Alt MSL: {_fmt(status.altitude_ft, '.0f', ' ft')}",
            f"Airspeed: {_fmt(status.indicated_airspeed_kts, '.0f', ' kt')}",
            f"Heading: {_fmt(status.heading_mag_deg, '.0f', ' deg')}",
            f"On Ground: {status.on_ground}",
            f"Gnd Spd: {_fmt(status.ground_speed_kts, '.1f', ' kt')}",
            f"Park Brake: {_on_off(status.parking_brake_on)}",
            f"Brake L/R: {_fmt(status.brake_left_pct, '.0f', '%')} / {_fmt(status.brake_right_pct, '.0f', '%')}",
            f"Combustion1: {status.engine_combustion_1}",
            f"RPM1: {_fmt(status.engine_rpm_1, '.0f')}",
        ]
    )
    return "\n".join(lines)


def _parse_flag(text: str | None) -> bool | None:
    if text is None:
        return None
    lowered = text.strip().lower()
    if lowered in {"on", "true", "1", "yes"}:
        return True
    if lowered in {"off", "false", "0", "no"}:
        return False
    raise argparse.ArgumentTypeError(f"expected on/off, got {text!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aipilot-console", description="Operator console for aipilot")
    parser.add_argument("-c", "--config", type=Path, default=None, help="Path to configuration file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_parser = subparsers.add_parser("watch", help="Print pilot status as it arrives")
    watch_parser.add_argument("--once", action="store_true", help="Exit after the first status")

    send_parser = subparsers.add_parser("send", help="Send one operator command")
    send_parser.add_argument("action", choices=sorted(OPERATOR_ACTIONS))
    send_parser.add_argument("value", nargs="?", type=float, default=None)
    send_parser.add_argument("value2", nargs="?", type=float, default=None)
    send_parser.add_argument("--flag", type=_parse_flag, default=None, help="on/off for hold_short, brakes_hold, parking_brake")

    return parser


def _watch(cfg, once: bool) -> int:
    receiver = PilotStatusReceiver(cfg.ipc.host, cfg.ipc.status_udp_port)
    last_stamp = None
    try:
        while True:
            status = receiver.poll()
            if status is not None and status.t_mono_ns != last_stamp:
                last_stamp = status.t_mono_ns
                print(format_status(status))
                print()
                if once:
                    return 0
            time.sleep(0.1)
    except KeyboardInterrupt:
        return 0
    finally:
        receiver.close()


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = load_config(args.config)

    if args.command == "watch":
        return _watch(cfg, args.once)

    if args.command == "send":
        try:
            sender = OperatorCommandUdpSender(cfg.ipc.host, cfg.ipc.command_udp_port)
            try:
                cmd = sender.send(args.action, value=args.value, value2=args.value2, flag=args.flag)
            finally:
                sender.close()
        except OSError as exc:
            print(f"send failed: {exc}", file=sys.stderr)
            return 1
        print(f"sent {cmd.action} seq={cmd.seq}")
        return 0

    parser.error(f"Unknown command: {args.command}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
