from .base_provider import BaseTransmissionProvider
from .exceptions import TransmissionError, UnsupportedProtocolError
from .factory import TransmissionProviderFactory
from .file_provider import FileDropTransmissionProvider
from .http_provider import HttpTransmissionProvider
from .mllp_provider import MllpTransmissionProvider
from .models import (
    FailureCategory,
    TransmissionLog,
    TransmissionProtocol,
    TransmissionRequest,
    TransmissionResult,
)
from .orchestrator import TransmissionOrchestrator
from .sftp_provider import SftpTransmissionProvider

__all__ = [
    "BaseTransmissionProvider",
    "HttpTransmissionProvider",
    "MllpTransmissionProvider",
    "FileDropTransmissionProvider",
    "SftpTransmissionProvider",
    "TransmissionProviderFactory",
    "TransmissionOrchestrator",
    "TransmissionError",
    "UnsupportedProtocolError",
    "FailureCategory",
    "TransmissionLog",
    "TransmissionProtocol",
    "TransmissionRequest",
    "TransmissionResult",
]
