"""Protocol -> provider registry."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .base_provider import BaseTransmissionProvider
from .exceptions import UnsupportedProtocolError
from .file_provider import FileDropTransmissionProvider
from .http_provider import HttpTransmissionProvider
from .mllp_provider import MllpTransmissionProvider
from .models import TransmissionProtocol
from .sftp_provider import SftpTransmissionProvider

logger = logging.getLogger(__name__)


def default_providers() -> list[BaseTransmissionProvider]:
    return [
        HttpTransmissionProvider(),
        MllpTransmissionProvider(),
        FileDropTransmissionProvider(),
        SftpTransmissionProvider(),
    ]


class TransmissionProviderFactory:
    """Resolve the provider that handles a given protocol.

    Providers are shared: the same instance serves every request for its
    protocols. A later registration for a protocol replaces the earlier one.
    """

    def __init__(self, providers: Iterable[BaseTransmissionProvider] | None = None) -> None:
        self._providers: dict[TransmissionProtocol, BaseTransmissionProvider] = {}
        for provider in default_providers() if providers is None else providers:
            self.register(provider)

    def register(self, provider: BaseTransmissionProvider) -> None:
        for protocol in provider.supported_protocols:
            self._providers[protocol] = provider
            logger.debug("Registered %s for %s", provider.name, protocol.name)

    def create_provider(self, protocol: TransmissionProtocol | str) -> BaseTransmissionProvider:
        """Raises ``UnsupportedProtocolError`` if nothing handles ``protocol``."""
        resolved = to_protocol(protocol)
        provider = self._providers.get(resolved) if resolved is not None else None
        if provider is None:
            raise UnsupportedProtocolError(resolved or protocol)
        return provider

    def get_supported_protocols(self) -> frozenset[TransmissionProtocol]:
        return frozenset(self._providers)

    def is_protocol_supported(self, protocol: TransmissionProtocol | str) -> bool:
        resolved = to_protocol(protocol)
        return resolved is not None and resolved in self._providers

    def get_provider_name(self, protocol: TransmissionProtocol | str) -> str | None:
        resolved = to_protocol(protocol)
        provider = self._providers.get(resolved) if resolved is not None else None
        return provider.name if provider else None


def to_protocol(protocol: TransmissionProtocol | str) -> TransmissionProtocol | None:
    """Accept an enum member or its case-insensitive value; None if unknown."""
    if isinstance(protocol, TransmissionProtocol):
        return protocol
    try:
        return TransmissionProtocol(str(protocol).strip().lower())
    except ValueError:
        return None
