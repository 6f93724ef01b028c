"""A real MLLP receiver on localhost for tests.

Speaks the actual wire protocol: reads ``<VT> message <FS><CR>`` frames and
answers each with a framed ACK built from the received MSH. Behaviour can be
switched per test (accept, reject, stay silent, hang up).
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

MLLP_START = b"\x0b"
MLLP_END = b"\x1c\r"


def build_ack(message: str, code: str = "AA", text: str = "") -> str:
    """ACK^R01 for ``message``: MSH swapped sender/receiver plus MSA."""
    msh = message.split("\r", 1)[0].split("|")
    control_id = msh[9] if len(msh) > 9 else ""
    sender = msh[2] if len(msh) > 2 else ""
    facility = msh[3] if len(msh) > 3 else ""
    header = f"MSH|^~\\&|RECEIVER|LAB|{sender}|{facility}|20260101120000||ACK^R01|ACK{control_id}|P|2.5"
    return f"{header}\rMSA|{code}|{control_id}|{text}"


@dataclass
class MllpReceiver:
    host: str = "127.0.0.1"
    port: int = 0
    mode: str = "accept"  # accept | reject | silent | hangup
    received: list[str] = field(default_factory=list)
    connections: int = 0

    @property
    def endpoint(self) -> str:
        return f"mllp://{self.host}:{self.port}"

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        try:
            if self.mode == "hangup":
                return
            raw = await reader.readuntil(MLLP_END)
            message = raw[len(MLLP_START):-len(MLLP_END)].decode("utf-8")
            self.received.append(message)
            if self.mode == "silent":
                # Hold the connection open until the sender gives up
                await reader.read()
                return
            code = "AA" if self.mode == "accept" else "AE"
            ack = build_ack(message, code, "" if code == "AA" else "Unknown patient")
            writer.write(MLLP_START + ack.encode("utf-8") + MLLP_END)
            await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()


@asynccontextmanager
async def running_receiver(mode: str = "accept"):
    receiver = MllpReceiver(mode=mode)
    server = await asyncio.start_server(receiver.handle, receiver.host, 0)
    receiver.port = server.sockets[0].getsockname()[1]
    try:
        yield receiver
    finally:
        server.close()
        await server.wait_closed()
