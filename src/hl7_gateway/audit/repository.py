"""Transmission audit log storage."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta, timezone

from ..transmission.models import HistoryFilter, TransmissionLog, TransmissionStatistics

logger = logging.getLogger(__name__)


class TransmissionRepository(ABC):
    """Append-only store of ``TransmissionLog`` records, keyed by transmission id."""

    @abstractmethod
    async def save(self, log: TransmissionLog) -> None:
        """Persist ``log``. Raises ``ValueError`` if its id was already saved."""

    @abstractmethod
    async def get(self, transmission_id: str) -> TransmissionLog | None: ...

    @abstractmethod
    async def query_history(
        self, filters: HistoryFilter | None = None, limit: int = 100
    ) -> list[TransmissionLog]:
        """Matching records, newest ``sent_at`` first, at most ``limit`` of them."""

    @abstractmethod
    async def get_statistics(self, start: datetime, end: datetime) -> TransmissionStatistics: ...

    @abstractmethod
    async def delete_older_than(self, retention_days: int) -> int:
        """Drop records created more than ``retention_days`` ago. Returns the count removed."""


class InMemoryTransmissionRepository(TransmissionRepository):
    """Dict-backed repository for tests and single-process deployments."""

    def __init__(self) -> None:
        self._logs: dict[str, TransmissionLog] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._logs)

    async def save(self, log: TransmissionLog) -> None:
        with self._lock:
            if log.transmission_id in self._logs:
                raise ValueError(f"Transmission log {log.transmission_id} already exists")
            self._logs[log.transmission_id] = log
        logger.debug("Saved audit log %s (success=%s)", log.transmission_id, log.success)

    async def get(self, transmission_id: str) -> TransmissionLog | None:
        with self._lock:
            return self._logs.get(transmission_id)

    async def query_history(
        self, filters: HistoryFilter | None = None, limit: int = 100
    ) -> list[TransmissionLog]:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        filters = filters or HistoryFilter()
        matches = [log for log in self._snapshot() if _matches(log, filters)]
        matches.sort(key=lambda log: log.sent_at, reverse=True)
        return matches[:limit]

    async def get_statistics(self, start: datetime, end: datetime) -> TransmissionStatistics:
        if end < start:
            raise ValueError("end must not be before start")
        logs = [log for log in self._snapshot() if start <= log.sent_at <= end]
        total = len(logs)
        successful = sum(1 for log in logs if log.success)
        average = (
            sum((log.response_time for log in logs), timedelta(0)) / total if total else timedelta(0)
        )
        return TransmissionStatistics(
            total=total,
            successful=successful,
            failed=total - successful,
            success_rate=successful / total if total else 0.0,
            average_response_time=average,
            period_start=start,
            period_end=end,
            by_protocol=dict(Counter(log.protocol for log in logs)),
        )

    async def delete_older_than(self, retention_days: int) -> int:
        if retention_days < 0:
            raise ValueError("retention_days cannot be negative")
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        with self._lock:
            expired = [key for key, log in self._logs.items() if log.created_at < cutoff]
            for key in expired:
                del self._logs[key]
        if expired:
            logger.info("Deleted %d audit log(s) older than %d days", len(expired), retention_days)
        return len(expired)

    def _snapshot(self) -> list[TransmissionLog]:
        with self._lock:
            return list(self._logs.values())


def _matches(log: TransmissionLog, filters: HistoryFilter) -> bool:
    if filters.patient_id is not None and log.patient_id != filters.patient_id:
        return False
    if filters.start is not None and log.sent_at < filters.start:
        return False
    if filters.end is not None and log.sent_at > filters.end:
        return False
    if filters.protocol is not None and log.protocol != filters.protocol:
        return False
    if filters.success is not None and log.success != filters.success:
        return False
    return True
