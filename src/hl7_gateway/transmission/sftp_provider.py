"""SFTP transmission: upload each message as a file over SSH with ``paramiko``."""

from __future__ import annotations

import asyncio
import io
import logging
import os
import posixpath
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import unquote, urlsplit

import paramiko

from .base_provider import Acknowledgment, BaseTransmissionProvider, run_blocking
from .exceptions import TransmissionError
from .models import FailureCategory, TransmissionProtocol, TransmissionRequest

logger = logging.getLogger(__name__)

DEFAULT_PORT = 22
CONNECTION_TEST_TIMEOUT = 10.0

USERNAME_HEADERS = ("Username", "SFTP-Username")
PASSWORD_HEADERS = ("Password", "SFTP-Password")
PRIVATE_KEY_HEADERS = ("PrivateKeyPath", "SFTP-PrivateKeyPath")


@dataclass(frozen=True)
class SftpTarget:
    host: str
    port: int
    remote_dir: str
    username: str | None = None


@dataclass(frozen=True)
class SftpCredentials:
    username: str
    password: str | None = None
    key_filename: str | None = None


def parse_endpoint(endpoint: str) -> SftpTarget | None:
    """Split ``sftp://user@host:port/path`` (or bare ``host:port/path``).

    The port defaults to 22 and the remote directory to ``/``.
    """
    if not endpoint or not endpoint.strip():
        return None
    text = endpoint.strip()
    if "://" not in text:
        text = f"sftp://{text}"
    parts = urlsplit(text)
    if parts.scheme.lower() != "sftp" or not parts.hostname:
        return None
    try:
        port = parts.port
    except ValueError:
        return None
    if port == 0:
        return None
    return SftpTarget(
        host=parts.hostname,
        port=port or DEFAULT_PORT,
        remote_dir=unquote(parts.path) or "/",
        username=unquote(parts.username) if parts.username else None,
    )


def resolve_credentials(target: SftpTarget, headers: Mapping[str, str]) -> SftpCredentials | None:
    """Credentials come from the request headers; the URL may carry the username.

    A private key is used only when its file exists. Without a key or a
    password there is nothing to authenticate with and None is returned.
    """
    username = _header(headers, USERNAME_HEADERS) or target.username
    if not username:
        return None
    password = _header(headers, PASSWORD_HEADERS)
    key_path = _header(headers, PRIVATE_KEY_HEADERS)
    key_filename = key_path if key_path and os.path.isfile(key_path) else None
    if key_filename is None and not password:
        return None
    return SftpCredentials(username, password, key_filename)


def _header(headers: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in names:
        value = lowered.get(name.lower())
        if value and value.strip():
            return value
    return None


class SftpTransmissionProvider(BaseTransmissionProvider):
    """Upload ``HL7_ORU_<id>_<timestamp>.hl7`` into a remote directory.

    Host keys are checked against the system ``known_hosts`` file; pass a
    different ``host_key_policy`` to accept unknown servers.
    """

    name = "SFTP Provider"
    supported_protocols = frozenset({TransmissionProtocol.SFTP})

    def __init__(
        self,
        file_prefix: str = "HL7_ORU",
        suffix: str = ".hl7",
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
        host_key_policy: paramiko.MissingHostKeyPolicy | None = None,
    ) -> None:
        self.file_prefix = file_prefix
        self.suffix = suffix
        self._client_factory = client_factory
        self._host_key_policy = host_key_policy or paramiko.RejectPolicy()

    async def validate_endpoint(self, endpoint: str) -> bool:
        return parse_endpoint(endpoint) is not None

    async def test_connection(self, endpoint: str) -> bool:
        target = parse_endpoint(endpoint)
        if target is None:
            return False
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(target.host, target.port), timeout=CONNECTION_TEST_TIMEOUT
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.info("Connection test to %s failed: %s", endpoint, exc)
            return False
        writer.close()
        await writer.wait_closed()
        return True

    async def _check_request(self, request: TransmissionRequest) -> None:
        await super()._check_request(request)
        if resolve_credentials(parse_endpoint(request.endpoint), request.headers) is None:
            raise TransmissionError(
                f"Invalid SFTP endpoint or missing credentials: {request.endpoint}",
                FailureCategory.INVALID_REQUEST,
            )

    async def _transmit(self, request: TransmissionRequest, transmission_id: str) -> Acknowledgment:
        target = parse_endpoint(request.endpoint)
        credentials = resolve_credentials(target, request.headers)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        filename = f"{self.file_prefix}_{transmission_id}_{stamp}{self.suffix}"
        remote_path = posixpath.join(target.remote_dir, filename)

        try:
            await run_blocking(
                self._upload, target, credentials, remote_path,
                request.message.encode("utf-8"), request.timeout_seconds,
            )
        except paramiko.AuthenticationException as exc:
            raise TransmissionError(
                f"SFTP transmission failed with authentication error: {exc}",
                FailureCategory.REJECTED,
            ) from exc
        except FileNotFoundError as exc:
            raise TransmissionError(
                f"SFTP transmission failed, remote path not found: {target.remote_dir}",
                FailureCategory.REJECTED,
            ) from exc
        except TimeoutError as exc:
            raise TransmissionError(
                f"SFTP transmission timed out after {request.timeout_seconds:g} seconds",
                FailureCategory.TIMEOUT,
            ) from exc
        except (paramiko.SSHException, OSError) as exc:
            raise TransmissionError(f"SFTP transmission failed with connection error: {exc}") from exc

        logger.debug("Uploaded %s to %s:%d", remote_path, target.host, target.port)
        return Acknowledgment(f"File uploaded successfully: {remote_path}")

    def _upload(
        self,
        target: SftpTarget,
        credentials: SftpCredentials,
        remote_path: str,
        payload: bytes,
        timeout: float,
    ) -> None:
        client = self._client_factory()
        try:
            client.load_system_host_keys()
            client.set_missing_host_key_policy(self._host_key_policy)
            client.connect(
                target.host,
                port=target.port,
                username=credentials.username,
                password=credentials.password,
                key_filename=credentials.key_filename,
                timeout=timeout,
                banner_timeout=timeout,
                auth_timeout=timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            sftp = client.open_sftp()
            try:
                sftp.get_channel().settimeout(timeout)
                sftp.putfo(io.BytesIO(payload), remote_path)
            finally:
                sftp.close()
        finally:
            client.close()
