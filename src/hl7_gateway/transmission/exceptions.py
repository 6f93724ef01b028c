"""Transmission error types."""

from __future__ import annotations

from .models import FailureCategory, TransmissionProtocol


class TransmissionError(Exception):
    """A transport-level failure, tagged with the category used for retry decisions.

    Providers raise this from their transport code; ``BaseTransmissionProvider.send``
    turns it into a failed ``TransmissionResult``.
    """

    def __init__(
        self,
        message: str,
        category: FailureCategory = FailureCategory.TRANSPORT,
        status_code: int | None = None,
        acknowledgment: str | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code
        self.acknowledgment = acknowledgment


class UnsupportedProtocolError(TransmissionError):
    """No provider is registered for the requested protocol."""

    def __init__(self, protocol: TransmissionProtocol | str) -> None:
        name = protocol.name if isinstance(protocol, TransmissionProtocol) else str(protocol)
        super().__init__(
            f"Transmission protocol {name} is not supported",
            category=FailureCategory.UNSUPPORTED_PROTOCOL,
        )
        self.protocol = protocol
