"""MLLP (Minimal Lower Layer Protocol) transmission over asyncio TCP streams.

Each message is framed as ``<VT> message <FS><CR>`` and the receiver answers
with a framed ACK whose MSA-1 code decides the outcome.
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlsplit

from ..hl7.encoding import HL7EncodingError
from ..hl7.message import decode_message
from .base_provider import Acknowledgment, BaseTransmissionProvider
from .exceptions import TransmissionError
from .models import FailureCategory, TransmissionProtocol, TransmissionRequest

logger = logging.getLogger(__name__)

MLLP_START = b"\x0b"
MLLP_END = b"\x1c\r"
ACCEPT_CODES = ("AA", "CA")
CONNECTION_TEST_TIMEOUT = 10.0


def frame(message: str) -> bytes:
    return MLLP_START + message.encode("utf-8") + MLLP_END


def unframe(payload: bytes) -> str:
    text = payload.decode("utf-8", errors="replace")
    return text.lstrip("\x0b").removesuffix("\r").rstrip("\x1c")


def parse_endpoint(endpoint: str) -> tuple[str, int] | None:
    """Split ``mllp://host:port`` (or bare ``host:port``) into its parts."""
    if not endpoint or not endpoint.strip():
        return None
    text = endpoint.strip()
    if "://" not in text:
        text = f"mllp://{text}"
    parts = urlsplit(text)
    if parts.scheme.lower() != "mllp":
        return None
    try:
        port = parts.port
    except ValueError:
        return None
    if not parts.hostname or port is None or port == 0:
        return None
    return parts.hostname, port


class MllpTransmissionProvider(BaseTransmissionProvider):
    """Send one framed message per connection and wait for the framed ACK."""

    name = "MLLP Provider"
    supported_protocols = frozenset({TransmissionProtocol.MLLP})

    async def validate_endpoint(self, endpoint: str) -> bool:
        return parse_endpoint(endpoint) is not None

    async def test_connection(self, endpoint: str) -> bool:
        target = parse_endpoint(endpoint)
        if target is None:
            return False
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(*target), timeout=CONNECTION_TEST_TIMEOUT
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.info("Connection test to %s failed: %s", endpoint, exc)
            return False
        writer.close()
        await writer.wait_closed()
        return True

    async def _transmit(self, request: TransmissionRequest, transmission_id: str) -> Acknowledgment:
        host, port = parse_endpoint(request.endpoint)
        try:
            raw_ack = await asyncio.wait_for(
                self._exchange(host, port, frame(request.message)),
                timeout=request.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TransmissionError(
                f"MLLP transmission timed out after {request.timeout_seconds:g} seconds",
                FailureCategory.TIMEOUT,
            ) from exc
        except asyncio.IncompleteReadError as exc:
            raise TransmissionError(
                "MLLP connection closed before an acknowledgment was received",
                FailureCategory.TRANSPORT,
            ) from exc
        except OSError as exc:
            raise TransmissionError(f"MLLP connection to {host}:{port} failed: {exc}") from exc

        ack = unframe(raw_ack)
        code = _ack_code(ack)
        if code not in ACCEPT_CODES:
            raise TransmissionError(
                f"MLLP receiver rejected message with acknowledgment code {code or 'missing'}",
                FailureCategory.REJECTED,
                acknowledgment=ack,
            )
        return Acknowledgment(ack)

    @staticmethod
    async def _exchange(host: str, port: int, payload: bytes) -> bytes:
        reader, writer = await asyncio.open_connection(host, port)
        try:
            writer.write(payload)
            await writer.drain()
            return await reader.readuntil(MLLP_END)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass


def _ack_code(ack: str) -> str | None:
    try:
        message = decode_message(ack)
    except HL7EncodingError:
        logger.warning("Unparseable MLLP acknowledgment: %r", ack[:200])
        return None
    msa = message.first("MSA")
    if msa is None:
        return None
    return msa.value(1).upper() or None
