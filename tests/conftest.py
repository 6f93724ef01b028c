"""Shared pytest fixtures, fake providers, and test markers.

Test tiers
----------
  unit        Fast, fully offline. Codec, mapping, validation, providers
              against local servers or mocked HTTP, orchestration with
              scripted providers.

  integration Convert-and-send flows end to end against a real MLLP
              receiver on localhost, mocked HTTP and a temp drop directory.

  quality     Deep validation: HL7 field-level checks with python-hl7,
              property-based round trips (Hypothesis).

Run specific tiers:
  pytest tests/unit
  pytest tests/ -m quality
  pytest tests/ -v                                    # everything
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable
from pathlib import Path

import pytest

from hl7_gateway.audit.repository import InMemoryTransmissionRepository
from hl7_gateway.config import GatewaySettings
from hl7_gateway.models import JsonHL7Input
from hl7_gateway.transmission.base_provider import Acknowledgment, BaseTransmissionProvider
from hl7_gateway.transmission.exceptions import TransmissionError
from hl7_gateway.transmission.models import (
    FailureCategory,
    TransmissionProtocol,
    TransmissionRequest,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"

SAMPLE_ER7 = (
    "MSH|^~\\&|HL7GATEWAY|MAIN_LAB|HL7GATEWAY|EHR|20260314093000||ORU^R01^ORU_R01|MSG00001|P|2.5\r"
    "PID|1||P12345^^^HOSPITAL||DOE^JOHN||19900115|M\r"
    "OBR|1||MSG00001|LAB^LABORATORY^L|||20260314093000\r"
    "OBX|1|NM|GLU^Glucose^L||95|mg/dL|70-99|N|||F"
)


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast offline unit tests")
    config.addinivalue_line("markers", "integration: end-to-end flows against local or mocked receivers")
    config.addinivalue_line("markers", "quality: HL7 field-level and property-based validation")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# Conversion input fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_input_dict() -> dict:
    return {
        "patient": {
            "patientId": "P12345",
            "firstName": "John",
            "lastName": "Doe",
            "gender": "M",
            "dateOfBirth": "1990-01-15",
        },
        "observations": [
            {
                "observationId": "GLU",
                "description": "Glucose",
                "value": "95",
                "units": "mg/dL",
                "status": "N",
            }
        ],
    }


@pytest.fixture
def sample_input(sample_input_dict: dict) -> JsonHL7Input:
    return JsonHL7Input.model_validate(sample_input_dict)


@pytest.fixture
def lab_results_json() -> dict:
    with open(FIXTURES_DIR / "lab_results.json") as f:
        return json.load(f)


@pytest.fixture
def lab_results_input(lab_results_json: dict) -> JsonHL7Input:
    return JsonHL7Input.model_validate(lab_results_json)


# ---------------------------------------------------------------------------
# Transmission fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fast_settings() -> GatewaySettings:
    """Default policy with no wait between retries."""
    return GatewaySettings(retry_delay_seconds=0, max_retry_attempts=3)


@pytest.fixture
def repository() -> InMemoryTransmissionRepository:
    return InMemoryTransmissionRepository()


def make_request(
    endpoint: str = "https://receiver.example.org/hl7",
    message: str = SAMPLE_ER7,
    protocol: TransmissionProtocol = TransmissionProtocol.HTTPS,
    timeout_seconds: float = 5,
    **kwargs,
) -> TransmissionRequest:
    return TransmissionRequest(
        endpoint=endpoint,
        message=message,
        protocol=protocol,
        timeout_seconds=timeout_seconds,
        **kwargs,
    )


class ScriptedProvider(BaseTransmissionProvider):
    """HTTPS stand-in whose attempts follow a script.

    Each script step is one of:
      "ok"                  acknowledge immediately
      "hang"                never answer (until cancelled)
      float                 answer "ok" after that many seconds
      Exception             raise it from the transport
    The last step repeats once the script runs out.
    """

    name = "Scripted Provider"
    supported_protocols = frozenset({TransmissionProtocol.HTTPS})

    def __init__(self, script: Iterable[object] = ("ok",)) -> None:
        self.script = list(script)
        self.calls = 0
        self.in_flight = 0
        self.peak_in_flight = 0
        self.requests: list[TransmissionRequest] = []

    async def validate_endpoint(self, endpoint: str) -> bool:
        return endpoint.startswith("https://")

    async def test_connection(self, endpoint: str) -> bool:
        return True

    async def _transmit(self, request: TransmissionRequest, transmission_id: str) -> Acknowledgment:
        step = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        self.requests.append(request)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if isinstance(step, Exception):
                raise step
            if step == "hang":
                await asyncio.Event().wait()
            if isinstance(step, (int, float)):
                await asyncio.sleep(step)
            return Acknowledgment("MSA|AA|MSG00001", 200)
        finally:
            self.in_flight -= 1


def transport_error(message: str = "Connection refused") -> TransmissionError:
    return TransmissionError(message, FailureCategory.TRANSPORT)


def rejected(status_code: int) -> TransmissionError:
    return TransmissionError(
        f"HTTP transmission failed with status {status_code}",
        FailureCategory.REJECTED,
        status_code=status_code,
    )
