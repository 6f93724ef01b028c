"""Abstract base class for HL7 transmission providers."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple, TypeVar

from .exceptions import TransmissionError
from .models import FailureCategory, TransmissionProtocol, TransmissionRequest, TransmissionResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking transport call in the default executor.

    If the awaiting task is cancelled, the worker thread is waited on before
    ``CancelledError`` is re-raised. The caller's concurrency slot therefore
    stays held until the socket or file work has really ended.
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        try:
            await future
        except Exception as exc:
            logger.debug("Call abandoned by its caller failed afterwards: %s", exc)
        raise


class Acknowledgment(NamedTuple):
    """What a receiver sent back for an accepted message."""

    payload: str | None
    status_code: int | None = None


class BaseTransmissionProvider(ABC):
    """Common send/validate/test contract for HTTP, MLLP, file drop and others."""

    name: str = "Transmission Provider"
    supported_protocols: frozenset[TransmissionProtocol] = frozenset()

    async def send(
        self, request: TransmissionRequest, transmission_id: str | None = None
    ) -> TransmissionResult:
        """Deliver ``request.message`` and report the outcome.

        Transport errors never escape: they come back as a failed result.
        The request is not modified.
        """
        transmission_id = transmission_id or str(uuid.uuid4())
        sent_at = datetime.now(timezone.utc)
        started = time.perf_counter()

        try:
            await self._check_request(request)
            logger.info(
                "Starting %s transmission %s to %s",
                request.protocol.name, transmission_id, request.endpoint,
            )
            ack = await self._transmit(request, transmission_id)
        except TransmissionError as exc:
            elapsed = timedelta(seconds=time.perf_counter() - started)
            logger.warning(
                "%s transmission %s failed after %dms (%s): %s",
                request.protocol.name, transmission_id,
                elapsed.total_seconds() * 1000, exc.category.value, exc,
            )
            return TransmissionResult.failed(
                str(exc),
                exc.category,
                transmission_id=transmission_id,
                response_time=elapsed,
                sent_at=sent_at,
                status_code=exc.status_code,
                acknowledgment_message=exc.acknowledgment,
            )
        except Exception as exc:
            elapsed = timedelta(seconds=time.perf_counter() - started)
            logger.exception(
                "%s transmission %s failed after %dms with an unexpected error",
                request.protocol.name, transmission_id, elapsed.total_seconds() * 1000,
            )
            return TransmissionResult.failed(
                f"{request.protocol.name} transmission failed with unexpected error: {exc}",
                FailureCategory.TRANSPORT,
                transmission_id=transmission_id,
                response_time=elapsed,
                sent_at=sent_at,
            )

        elapsed = timedelta(seconds=time.perf_counter() - started)
        logger.info(
            "%s transmission %s completed in %dms",
            request.protocol.name, transmission_id, elapsed.total_seconds() * 1000,
        )
        return TransmissionResult.succeeded(
            transmission_id,
            ack.payload,
            elapsed,
            sent_at=sent_at,
            status_code=ack.status_code,
        )

    @abstractmethod
    async def validate_endpoint(self, endpoint: str) -> bool:
        """Return True if ``endpoint`` is well-formed for this protocol."""

    @abstractmethod
    async def test_connection(self, endpoint: str) -> bool:
        """Lightweight reachability check; no payload is transmitted."""

    @abstractmethod
    async def _transmit(self, request: TransmissionRequest, transmission_id: str) -> Acknowledgment:
        """Perform the transport call. Raise ``TransmissionError`` on failure."""

    async def _check_request(self, request: TransmissionRequest) -> None:
        if not request.endpoint or not request.endpoint.strip():
            raise TransmissionError("Endpoint cannot be empty", FailureCategory.INVALID_REQUEST)
        if not request.message or not request.message.strip():
            raise TransmissionError("HL7 message cannot be empty", FailureCategory.INVALID_REQUEST)
        if request.protocol not in self.supported_protocols:
            raise TransmissionError(
                f"Protocol {request.protocol.name} is not handled by {self.name}",
                FailureCategory.INVALID_REQUEST,
            )
        if not await self.validate_endpoint(request.endpoint):
            raise TransmissionError(
                f"Invalid {request.protocol.name} endpoint: {request.endpoint}",
                FailureCategory.INVALID_REQUEST,
            )
