"""File-drop transmission: write each message into a watched directory."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import unquote, urlsplit

from .base_provider import Acknowledgment, BaseTransmissionProvider, run_blocking
from .exceptions import TransmissionError
from .models import FailureCategory, TransmissionProtocol, TransmissionRequest

logger = logging.getLogger(__name__)


def resolve_directory(endpoint: str) -> Path | None:
    """Accept ``file:///some/dir`` or a plain directory path."""
    if not endpoint or not endpoint.strip():
        return None
    text = endpoint.strip()
    if text.lower().startswith("file://"):
        parts = urlsplit(text)
        if parts.netloc not in ("", "localhost"):
            return None
        text = unquote(parts.path)
    return Path(text) if text else None


class FileDropTransmissionProvider(BaseTransmissionProvider):
    """Write ``HL7_ORU_<id>_<timestamp>.hl7`` files for a downstream pickup job.

    Files appear atomically: the message is written to a temporary name and
    renamed into place, so a watcher never sees a half-written file.
    """

    name = "File Drop Provider"
    supported_protocols = frozenset({TransmissionProtocol.FILE})

    def __init__(self, file_prefix: str = "HL7_ORU", suffix: str = ".hl7") -> None:
        self.file_prefix = file_prefix
        self.suffix = suffix

    async def validate_endpoint(self, endpoint: str) -> bool:
        return resolve_directory(endpoint) is not None

    async def test_connection(self, endpoint: str) -> bool:
        directory = resolve_directory(endpoint)
        if directory is None:
            return False
        return directory.is_dir() and os.access(directory, os.W_OK)

    async def _transmit(self, request: TransmissionRequest, transmission_id: str) -> Acknowledgment:
        directory = resolve_directory(request.endpoint)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        target = directory / f"{self.file_prefix}_{transmission_id}_{stamp}{self.suffix}"
        try:
            await asyncio.wait_for(
                run_blocking(_write_atomically, target, request.message),
                timeout=request.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TransmissionError(
                f"File write timed out after {request.timeout_seconds:g} seconds",
                FailureCategory.TIMEOUT,
            ) from exc
        except OSError as exc:
            raise TransmissionError(f"Could not write {target}: {exc}") from exc

        logger.debug("Wrote %d bytes to %s", len(request.message), target)
        return Acknowledgment(str(target))


def _write_atomically(target: Path, text: str) -> None:
    if not target.parent.is_dir():
        raise FileNotFoundError(f"Drop directory does not exist: {target.parent}")
    tmp = target.with_name(target.name + ".tmp")
    try:
        # newline="" keeps the CR segment terminators intact.
        with open(tmp, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        os.replace(tmp, target)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
