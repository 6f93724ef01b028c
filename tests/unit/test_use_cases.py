"""Unit tests for the convert-and-send use case."""

from __future__ import annotations

import asyncio

import pytest

from hl7_gateway.conversion.converter import JsonHL7Converter
from hl7_gateway.transmission.exceptions import UnsupportedProtocolError
from hl7_gateway.transmission.factory import TransmissionProviderFactory
from hl7_gateway.transmission.models import FailureCategory, TransmissionProtocol
from hl7_gateway.transmission.orchestrator import TransmissionOrchestrator
from hl7_gateway.use_cases.send_oru import SendORUMessagePipeline
from tests.conftest import ScriptedProvider, transport_error

ENDPOINT = "https://receiver.example.org/hl7"


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider(["ok"])


@pytest.fixture
def pipeline(provider, repository, fast_settings) -> SendORUMessagePipeline:
    orchestrator = TransmissionOrchestrator(TransmissionProviderFactory([provider]), repository, fast_settings)
    return SendORUMessagePipeline(JsonHL7Converter(), orchestrator)


@pytest.mark.anyio
class TestSendORUMessagePipeline:
    async def test_converts_and_delivers(self, pipeline, provider, lab_results_json, repository) -> None:
        result = await pipeline.send(lab_results_json, ENDPOINT, source="lab-feed")

        assert result.success
        assert result.control_id == "MSG00001"
        assert result.transmission.attempts == 1
        (sent,) = provider.requests
        assert sent.message == result.hl7_message
        assert sent.message.startswith("MSH|^~\\&|")
        assert sent.message.count("\rOBX|") == 3

        (log,) = await repository.query_history()
        assert log.message_type == "ORU^R01"
        assert log.patient_id == "P12345"
        assert log.source == "lab-feed"
        assert log.metadata == {"control_id": "MSG00001"}

    async def test_accepts_model_input(self, pipeline, lab_results_input) -> None:
        result = await pipeline.send(lab_results_input, ENDPOINT)
        assert result.success

    async def test_protocol_given_as_string(self, pipeline, provider, sample_input_dict) -> None:
        result = await pipeline.send(sample_input_dict, ENDPOINT, protocol="HTTPS")
        assert result.success
        assert provider.requests[0].protocol is TransmissionProtocol.HTTPS

    async def test_default_timeout_from_settings(self, pipeline, provider, sample_input_dict, fast_settings) -> None:
        await pipeline.send(sample_input_dict, ENDPOINT)
        assert provider.requests[0].timeout_seconds == fast_settings.default_timeout_seconds

    async def test_explicit_timeout_and_headers(self, pipeline, provider, sample_input_dict) -> None:
        await pipeline.send(sample_input_dict, ENDPOINT, headers={"X-Source": "lab"}, timeout_seconds=7)
        sent = provider.requests[0]
        assert sent.timeout_seconds == 7
        assert sent.headers == {"X-Source": "lab"}

    async def test_invalid_input_is_not_sent(self, pipeline, provider, sample_input_dict, repository) -> None:
        sample_input_dict["patient"]["patientId"] = ""
        sample_input_dict["observations"] = []

        result = await pipeline.send(sample_input_dict, ENDPOINT)

        assert not result.success
        assert result.transmission is None
        assert result.hl7_message is None
        assert "Patient ID is required" in result.errors
        assert "At least one observation is required" in result.errors
        assert provider.calls == 0
        assert len(repository) == 0

    async def test_unsupported_protocol_raises_before_conversion(self, pipeline, provider, repository) -> None:
        with pytest.raises(UnsupportedProtocolError):
            await pipeline.send({"not": "even valid"}, "sftp://lab.example.org/in", protocol=TransmissionProtocol.SFTP)
        assert provider.calls == 0
        assert len(repository) == 0

    async def test_transmission_failure_reported(self, repository, fast_settings, sample_input_dict) -> None:
        orchestrator = TransmissionOrchestrator(
            TransmissionProviderFactory([ScriptedProvider([transport_error()])]), repository, fast_settings
        )
        result = await SendORUMessagePipeline(JsonHL7Converter(), orchestrator).send(sample_input_dict, ENDPOINT)

        assert not result.success
        assert result.hl7_message is not None
        assert result.transmission.failure_category is FailureCategory.TRANSPORT
        assert result.transmission.attempts == 3
        assert "gave up after 3 attempts" in result.error_message

    async def test_cancel_event_forwarded(self, pipeline, provider, sample_input_dict) -> None:
        cancel = asyncio.Event()
        cancel.set()
        result = await pipeline.send(sample_input_dict, ENDPOINT, cancel_event=cancel)
        assert result.transmission.failure_category is FailureCategory.CANCELLED
        assert provider.calls == 0
