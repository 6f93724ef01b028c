"""Lab result delivery use case.

JSON clinical data is converted to an HL7v2 ORU^R01 message and handed to
the transmission orchestrator, which delivers it and writes the audit record.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from ..conversion.converter import JsonHL7Converter
from ..models import JsonHL7Input
from ..transmission.exceptions import UnsupportedProtocolError
from ..transmission.factory import to_protocol
from ..transmission.models import TransmissionProtocol, TransmissionRequest, TransmissionResult
from ..transmission.orchestrator import TransmissionOrchestrator


class SendORUResult(BaseModel):
    """Outcome of one convert-and-send call."""

    success: bool
    control_id: str = Field(default="", description="MSH-10 of the generated message")
    hl7_message: str | None = Field(default=None, description="ER7 text that was sent")
    transmission: TransmissionResult | None = None
    errors: list[str] = Field(default_factory=list, description="Validation errors, if any")
    error_message: str | None = None


class SendORUMessagePipeline:
    """Lab results: JSON → ORU^R01 → receiver (HTTP, MLLP or file drop)."""

    def __init__(self, converter: JsonHL7Converter, orchestrator: TransmissionOrchestrator) -> None:
        self._converter = converter
        self._orchestrator = orchestrator

    async def send(
        self,
        data: JsonHL7Input | Mapping[str, Any],
        endpoint: str,
        protocol: TransmissionProtocol | str = TransmissionProtocol.HTTPS,
        headers: dict[str, str] | None = None,
        timeout_seconds: float | None = None,
        source: str = "",
        cancel_event: asyncio.Event | None = None,
    ) -> SendORUResult:
        """Convert ``data`` and deliver it to ``endpoint``.

        Conversion failures come back as a failed result without any
        transmission or audit record.

        Raises:
            UnsupportedProtocolError: if ``protocol`` has no provider. Nothing
                is converted or audited.
        """
        factory = self._orchestrator.factory
        if not factory.is_protocol_supported(protocol):
            raise UnsupportedProtocolError(protocol)
        resolved = to_protocol(protocol)

        conversion = self._converter.convert(data)
        if not conversion.success:
            return SendORUResult(
                success=False,
                errors=list(conversion.errors),
                error_message=conversion.error_message,
            )

        request = TransmissionRequest(
            endpoint=endpoint,
            message=conversion.hl7_string,
            headers=dict(headers or {}),
            timeout_seconds=timeout_seconds or self._orchestrator.settings.default_timeout_seconds,
            protocol=resolved,
        )
        control_id = conversion.message.control_id
        transmission = await self._orchestrator.transmit(
            request,
            cancel_event=cancel_event,
            source=source,
            metadata={"control_id": control_id},
        )
        return SendORUResult(
            success=transmission.success,
            control_id=control_id,
            hl7_message=conversion.hl7_string,
            transmission=transmission,
            error_message=transmission.error_message,
        )
