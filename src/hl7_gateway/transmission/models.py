"""Pydantic models for HL7 message transmission and its audit trail."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class TransmissionProtocol(str, Enum):
    """Wire protocols a message can be delivered over."""

    HTTP = "http"
    HTTPS = "https"
    MLLP = "mllp"
    SFTP = "sftp"
    FILE = "file"


class FailureCategory(str, Enum):
    """Why a transmission failed; drives the orchestrator's retry decision."""

    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    INVALID_REQUEST = "invalid_request"
    UNSUPPORTED_PROTOCOL = "unsupported_protocol"


class TransmissionRequest(BaseModel):
    """One message bound for one endpoint. Immutable after construction."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(..., description="URL, host:port or directory of the receiver")
    message: str = Field(..., description="Complete ER7 message text")
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30, gt=0, le=300)
    protocol: TransmissionProtocol = Field(default=TransmissionProtocol.HTTPS)
    request_id: str = Field(default_factory=_new_id, description="Audit correlation key")
    created_at: datetime = Field(default_factory=_utcnow)


class TransmissionResult(BaseModel):
    """Outcome of a transmission (single attempt or a whole retry sequence)."""

    model_config = ConfigDict(frozen=True)

    success: bool
    transmission_id: str = Field(default_factory=_new_id)
    error_message: str | None = None
    acknowledgment_message: str | None = None
    response_time: timedelta = Field(default=timedelta(0))
    sent_at: datetime = Field(default_factory=_utcnow)
    failure_category: FailureCategory | None = None
    status_code: int | None = None
    attempts: int = Field(default=1, ge=0)

    @classmethod
    def succeeded(
        cls,
        transmission_id: str,
        acknowledgment_message: str | None,
        response_time: timedelta,
        sent_at: datetime | None = None,
        status_code: int | None = None,
    ) -> "TransmissionResult":
        return cls(
            success=True,
            transmission_id=transmission_id,
            acknowledgment_message=acknowledgment_message,
            response_time=response_time,
            sent_at=sent_at or _utcnow(),
            status_code=status_code,
        )

    @classmethod
    def failed(
        cls,
        error_message: str,
        category: FailureCategory,
        transmission_id: str | None = None,
        response_time: timedelta = timedelta(0),
        sent_at: datetime | None = None,
        status_code: int | None = None,
        acknowledgment_message: str | None = None,
    ) -> "TransmissionResult":
        return cls(
            success=False,
            transmission_id=transmission_id or _new_id(),
            error_message=error_message,
            acknowledgment_message=acknowledgment_message,
            response_time=response_time,
            sent_at=sent_at or _utcnow(),
            failure_category=category,
            status_code=status_code,
        )


class TransmissionLog(BaseModel):
    """Audit record: one per orchestrated request, summarising its last attempt."""

    model_config = ConfigDict(frozen=True)

    transmission_id: str
    request_id: str
    endpoint: str
    protocol: TransmissionProtocol
    message_type: str = ""
    message_control_id: str = ""
    patient_id: str = ""
    source: str = ""
    success: bool
    error_message: str | None = None
    failure_category: FailureCategory | None = None
    acknowledgment_message: str | None = None
    status_code: int | None = None
    response_time: timedelta = Field(default=timedelta(0))
    attempts: int = 1
    sent_at: datetime
    created_at: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


class HistoryFilter(BaseModel):
    """Optional criteria for ``TransmissionRepository.query_history``."""

    patient_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    protocol: TransmissionProtocol | None = None
    success: bool | None = None


class TransmissionStatistics(BaseModel):
    """Aggregate counts for a reporting period."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: float = 0.0
    average_response_time: timedelta = Field(default=timedelta(0))
    period_start: datetime
    period_end: datetime
    by_protocol: dict[TransmissionProtocol, int] = Field(default_factory=dict)
