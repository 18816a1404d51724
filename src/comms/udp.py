from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Callable

from comms.protocol import (
    OPERATOR_COMMAND_TYPE,
    PROTO_VERSION,
    OperatorCommand,
    PilotStatus,
    decode_operator_command,
    decode_pilot_status,
    encode_payload,
)


class OperatorCommandDatagramProtocol(asyncio.DatagramProtocol):
    def __init__(self, on_command: Callable[[OperatorCommand], None], logger: logging.Logger):
        self._on_command = on_command
        self._logger = logger

    def datagram_received(self, data: bytes, addr) -> None:
        cmd = decode_operator_command(data)
        if cmd is None:
            self._logger.debug("Dropped malformed operator packet from %s", addr)
            return
        self._on_command(cmd)


class OperatorCommandUdpReceiver:
    def __init__(self, host: str, port: int, logger: logging.Logger):
        self._host = host
        self._port = port
        self._logger = logger
        self._transport = None

    async def start(self, on_command: Callable[[OperatorCommand], None]) -> None:
        loop = asyncio.get_running_loop()
        self._transport, _ = await loop.create_datagram_endpoint(
            lambda: OperatorCommandDatagramProtocol(on_command=on_command, logger=self._logger),
            local_addr=(self._host, self._port),
        )

    def stop(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None


class OperatorCommandUdpSender:
    def __init__(self, host: str, port: int):
        self._addr = (host, port)
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._seq = 0

    def send(
        self,
        action: str,
        value: float | None = None,
        value2: float | None = None,
        flag: bool | None = None,
    ) -> OperatorCommand:
        cmd = OperatorCommand(
            v=PROTO_VERSION,
            type=OPERATOR_COMMAND_TYPE,
            seq=self._seq,
            action=action,
            value=value,
            value2=value2,
            flag=flag,
        )
        self._seq += 1
        self._sock.sendto(encode_payload(cmd), self._addr)
        return cmd

    def close(self) -> None:
        try:
            self._sock.close()
        except OSError:
            pass


class PilotStatusUdpSender:
    def __init__(self, host: str, port: int):
        self._addr = (host, port)
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.setblocking(False)

    def send(self, status: PilotStatus) -> None:
        try:
            self._sock.sendto(encode_payload(status), self._addr)
        except (BlockingIOError, OSError):
            pass

    def close(self) -> None:
        try:
            self._sock.close()
        except OSError:
            pass


class PilotStatusReceiver:
    def __init__(self, host: str, port: int):
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.bind((host, port))
        self._sock.setblocking(False)
        self.latest: PilotStatus | None = None

    def poll(self) -> PilotStatus | None:
        while True:
            try:
                data, _ = self._sock.recvfrom(4096)
            except BlockingIOError:
                break
            except OSError:
                break
            status = decode_pilot_status(data)
            if status is not None:
                self.latest = status
        return self.latest

    def close(self) -> None:
        try:
            self._sock.close()
        except OSError:
            pass
