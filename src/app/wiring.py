from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config.config_loader import load_config


class LoggerFactory:
    _fmt = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"

    def __init__(self, logs_dir: Path):
        self._logs_dir = logs_dir

    def get(self, name: str, level: int = logging.INFO) -> logging.Logger:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if logger.handlers:
            return logger

        self._logs_dir.mkdir(parents=True, exist_ok=True)
        formatter = logging.Formatter(self._fmt)

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(formatter)
        logger.addHandler(console)

        file_handler = RotatingFileHandler(
            self._logs_dir / f"{name}.log",
            maxBytes=10_485_760,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        logger.propagate = False
        return logger


def build_pilot(config_path: Path | None = None):
    from app.pilot import PilotApp
    from comms.udp import OperatorCommandUdpReceiver, PilotStatusUdpSender
    from hw.sim_link import SimLink

    cfg = load_config(config_path)
    logger = LoggerFactory(cfg.logs.dir).get("aipilot", cfg.logs.level)
    logger.info(
        "Config loaded: loop_hz=%.1f target_alt=%d taxi_max=%d sim=%s",
        cfg.runtime.loop_hz,
        cfg.level1.target_altitude_feet,
        cfg.level1.taxi_speed_kts_max,
        cfg.sim.connection_string,
    )

    link = SimLink(
        connection_string=cfg.sim.connection_string,
        channels=cfg.sim.channels,
        logger=logger,
        heartbeat_timeout_s=cfg.sim.heartbeat_timeout_s,
        snapshot_hz=cfg.sim.snapshot_hz,
        brake_tap_s=cfg.sim.brake_tap_s,
    )

    return PilotApp(
        cfg=cfg,
        logger=logger,
        link=link,
        status_sender=PilotStatusUdpSender(host=cfg.ipc.host, port=cfg.ipc.status_udp_port),
        command_receiver=OperatorCommandUdpReceiver(host=cfg.ipc.host, port=cfg.ipc.command_udp_port, logger=logger),
    )
