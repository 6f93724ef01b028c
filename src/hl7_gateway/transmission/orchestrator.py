"""Transmission orchestration: provider lookup, timeouts, retries and the audit trail.

One ``transmit`` call walks ``IDLE -> ATTEMPTING -> {SUCCEEDED, RETRYING, FAILED}``
and writes exactly one ``TransmissionLog`` summarising the last attempt.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..config import GatewaySettings
from ..hl7.encoding import HL7EncodingError
from ..hl7.message import decode_message
from .base_provider import BaseTransmissionProvider
from .factory import TransmissionProviderFactory
from .models import FailureCategory, TransmissionLog, TransmissionRequest, TransmissionResult

if TYPE_CHECKING:
    from ..audit.repository import TransmissionRepository

logger = logging.getLogger(__name__)


class TransmissionState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class _Progress:
    """Where one ``transmit`` call is in its state machine."""

    def __init__(self, request: TransmissionRequest) -> None:
        self.request_id = request.request_id
        self.state = TransmissionState.IDLE
        self.attempts = 0

    def move(self, new: TransmissionState) -> None:
        logger.debug("Request %s: %s -> %s", self.request_id, self.state.value, new.value)
        self.state = new


class TransmissionOrchestrator:
    """Drive a request through its provider under the configured retry policy.

    The semaphore bounds in-flight attempts across every caller sharing this
    orchestrator. Retry delays are spent outside it.
    """

    def __init__(
        self,
        factory: TransmissionProviderFactory,
        repository: TransmissionRepository,
        settings: GatewaySettings | None = None,
    ) -> None:
        self._factory = factory
        self._repository = repository
        self._settings = settings or GatewaySettings()
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrent_transmissions)

    @property
    def settings(self) -> GatewaySettings:
        return self._settings

    @property
    def factory(self) -> TransmissionProviderFactory:
        return self._factory

    async def transmit(
        self,
        request: TransmissionRequest,
        *,
        cancel_event: asyncio.Event | None = None,
        source: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> TransmissionResult:
        """Send ``request``, retrying transient failures.

        Raises:
            UnsupportedProtocolError: before any attempt when no provider
                handles ``request.protocol``. No audit record is written.
            asyncio.CancelledError: if the calling task is cancelled. The
                audit record is written first.
        """
        provider = self._factory.create_provider(request.protocol)
        progress = _Progress(request)

        try:
            result = await self._precheck(provider, request)
            if result is not None:
                logger.warning("Request %s not sent: %s", request.request_id, result.error_message)
                progress.move(TransmissionState.FAILED)
            else:
                result = await self._run(provider, request, cancel_event, progress)
        except asyncio.CancelledError:
            result = TransmissionResult.failed(
                "Transmission task was cancelled", FailureCategory.CANCELLED
            )
            progress.move(TransmissionState.FAILED)
            await self._audit(request, result, progress.attempts, source, metadata)
            raise

        result = result.model_copy(update={"attempts": progress.attempts})
        await self._audit(request, result, progress.attempts, source, metadata)
        return result

    async def _precheck(
        self, provider: BaseTransmissionProvider, request: TransmissionRequest
    ) -> TransmissionResult | None:
        size = len(request.message.encode("utf-8"))
        limit = self._settings.max_message_size_bytes
        if size > limit:
            return TransmissionResult.failed(
                f"Message size {size} bytes exceeds the maximum of {limit} bytes",
                FailureCategory.INVALID_REQUEST,
            )
        if not await provider.validate_endpoint(request.endpoint):
            return TransmissionResult.failed(
                f"Invalid endpoint for {request.protocol.name}: {request.endpoint}",
                FailureCategory.INVALID_REQUEST,
            )
        return None

    async def _run(
        self,
        provider: BaseTransmissionProvider,
        request: TransmissionRequest,
        cancel_event: asyncio.Event | None,
        progress: _Progress,
    ) -> TransmissionResult:
        total = self._settings.total_attempts
        result = None

        for attempt in range(1, total + 1):
            if cancel_event is not None and cancel_event.is_set():
                result = _cancelled()
                break

            progress.move(TransmissionState.ATTEMPTING)
            progress.attempts = attempt
            result = await self._attempt(provider, request, cancel_event)
            if result.success:
                progress.move(TransmissionState.SUCCEEDED)
                logger.info(
                    "Request %s delivered to %s on attempt %d",
                    request.request_id, request.endpoint, attempt,
                )
                return result
            if result.failure_category is FailureCategory.CANCELLED:
                break
            if not self._should_retry(result):
                break
            if attempt == total:
                if total > 1:
                    result = result.model_copy(update={
                        "error_message": f"{result.error_message} (gave up after {total} attempts)"
                    })
                break

            progress.move(TransmissionState.RETRYING)
            logger.warning(
                "Attempt %d/%d for request %s failed (%s); retrying in %gs",
                attempt, total, request.request_id,
                result.failure_category.value, self._settings.retry_delay_seconds,
            )
            if await self._wait_retry_delay(cancel_event):
                result = _cancelled()
                break

        progress.move(TransmissionState.FAILED)
        logger.error(
            "Request %s to %s failed after %d attempt(s): %s",
            request.request_id, request.endpoint, progress.attempts, result.error_message,
        )
        return result

    async def _attempt(
        self,
        provider: BaseTransmissionProvider,
        request: TransmissionRequest,
        cancel_event: asyncio.Event | None,
    ) -> TransmissionResult:
        transmission_id = str(uuid.uuid4())
        sent_at = datetime.now(timezone.utc)
        started = time.perf_counter()
        async with self._semaphore:
            send_task = asyncio.ensure_future(provider.send(request, transmission_id))
            waiters = {send_task}
            cancel_task = None
            if cancel_event is not None:
                cancel_task = asyncio.ensure_future(cancel_event.wait())
                waiters.add(cancel_task)
            try:
                done, _ = await asyncio.wait(
                    waiters, timeout=request.timeout_seconds, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                for task in waiters:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*waiters, return_exceptions=True)
            elapsed = timedelta(seconds=time.perf_counter() - started)

        if send_task in done:
            return send_task.result()
        if cancel_task is not None and cancel_task in done:
            return _cancelled(transmission_id=transmission_id, response_time=elapsed, sent_at=sent_at)
        return TransmissionResult.failed(
            f"Transmission timed out after {request.timeout_seconds:g} seconds",
            FailureCategory.TIMEOUT,
            transmission_id=transmission_id,
            response_time=elapsed,
            sent_at=sent_at,
        )

    def _should_retry(self, result: TransmissionResult) -> bool:
        category = result.failure_category
        if category is FailureCategory.TRANSPORT:
            return True
        if category is FailureCategory.TIMEOUT:
            return self._settings.retry_on_timeout
        if category is FailureCategory.REJECTED:
            return result.status_code in self._settings.retry_on_status_codes
        return False

    async def _wait_retry_delay(self, cancel_event: asyncio.Event | None) -> bool:
        """Sleep between attempts. Returns True if cancellation arrived meanwhile."""
        delay = self._settings.retry_delay_seconds
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _audit(
        self,
        request: TransmissionRequest,
        result: TransmissionResult,
        attempts: int,
        source: str,
        metadata: dict[str, Any] | None,
    ) -> None:
        if not self._settings.audit_logging_enabled:
            return
        log = _build_log(request, result, attempts, source, metadata)
        try:
            await self._repository.save(log)
        except Exception:
            logger.exception("Failed to write audit log for transmission %s", log.transmission_id)


def _cancelled(**kwargs: Any) -> TransmissionResult:
    return TransmissionResult.failed("Transmission was cancelled", FailureCategory.CANCELLED, **kwargs)


def _build_log(
    request: TransmissionRequest,
    result: TransmissionResult,
    attempts: int,
    source: str,
    metadata: dict[str, Any] | None,
) -> TransmissionLog:
    message_type = control_id = patient_id = ""
    try:
        message = decode_message(request.message)
        message_type = message.message_type
        control_id = message.control_id
        pid = message.first("PID")
        if pid is not None:
            patient_id = pid.field(3).component(1)
    except HL7EncodingError as exc:
        logger.debug("Audit record for %s has no message details: %s", request.request_id, exc)

    return TransmissionLog(
        transmission_id=result.transmission_id,
        request_id=request.request_id,
        endpoint=request.endpoint,
        protocol=request.protocol,
        message_type=message_type,
        message_control_id=control_id,
        patient_id=patient_id,
        source=source,
        success=result.success,
        error_message=result.error_message,
        failure_category=result.failure_category,
        acknowledgment_message=result.acknowledgment_message,
        status_code=result.status_code,
        response_time=result.response_time,
        attempts=attempts,
        sent_at=result.sent_at,
        metadata=dict(metadata or {}),
    )
