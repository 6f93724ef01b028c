"""HTTP/HTTPS transmission of HL7 messages via ``requests``."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

import requests

from .base_provider import Acknowledgment, BaseTransmissionProvider, run_blocking
from .exceptions import TransmissionError
from .models import FailureCategory, TransmissionProtocol, TransmissionRequest

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/hl7-v2"
CONNECTION_TEST_TIMEOUT = 10.0


class HttpTransmissionProvider(BaseTransmissionProvider):
    """POST the ER7 text to an HTTP(S) endpoint.

    The blocking ``requests`` call runs in a worker thread so the event loop
    stays free for other transmissions. A timed-out or cancelled attempt
    does not return until that thread has finished its request.
    """

    name = "HTTP/HTTPS Provider"
    supported_protocols = frozenset({TransmissionProtocol.HTTP, TransmissionProtocol.HTTPS})

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session = session or requests.Session()

    async def validate_endpoint(self, endpoint: str) -> bool:
        return _parse_http_url(endpoint) is not None

    async def test_connection(self, endpoint: str) -> bool:
        if not await self.validate_endpoint(endpoint):
            return False
        try:
            await run_blocking(self._session.head, endpoint, timeout=CONNECTION_TEST_TIMEOUT)
        except requests.RequestException as exc:
            logger.info("Connection test to %s failed: %s", endpoint, exc)
            return False
        return True

    async def _check_request(self, request: TransmissionRequest) -> None:
        await super()._check_request(request)
        scheme = urlparse(request.endpoint).scheme.lower()
        if request.protocol is TransmissionProtocol.HTTPS and scheme != "https":
            raise TransmissionError(
                f"HTTPS transmission requires an https:// endpoint, got {request.endpoint}",
                FailureCategory.INVALID_REQUEST,
            )

    async def _transmit(self, request: TransmissionRequest, transmission_id: str) -> Acknowledgment:
        headers = _build_headers(request.headers)
        try:
            response = await run_blocking(
                self._session.post,
                request.endpoint,
                data=request.message.encode("utf-8"),
                headers=headers,
                timeout=request.timeout_seconds,
            )
        except requests.Timeout as exc:
            raise TransmissionError(
                f"HTTP transmission timed out after {request.timeout_seconds:g} seconds: {exc}",
                FailureCategory.TIMEOUT,
            ) from exc
        except requests.RequestException as exc:
            raise TransmissionError(f"HTTP request failed: {exc}", FailureCategory.TRANSPORT) from exc

        if not response.ok:
            raise TransmissionError(
                f"HTTP transmission failed with status {response.status_code}: "
                f"{response.reason} - Response: {response.text}",
                FailureCategory.REJECTED,
                status_code=response.status_code,
                acknowledgment=response.text or None,
            )
        return Acknowledgment(response.text or None, response.status_code)


def _build_headers(custom: dict[str, str]) -> dict[str, str]:
    headers = {"Content-Type": DEFAULT_CONTENT_TYPE}
    for key, value in custom.items():
        if not key or not key.strip() or value is None:
            continue
        # Caller's Content-Type wins regardless of case.
        if key.lower() == "content-type":
            headers.pop("Content-Type", None)
        headers[key] = value
    return headers


def _parse_http_url(endpoint: str):
    if not endpoint or not endpoint.strip():
        return None
    parsed = urlparse(endpoint.strip())
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return None
    return parsed
