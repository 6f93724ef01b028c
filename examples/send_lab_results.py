"""Example: convert lab results to ORU^R01 and deliver them (demo mode drops a file).

Usage:
    # Demo mode, writes the message into a temporary drop directory:
    python examples/send_lab_results.py

    # Real receiver:
    python examples/send_lab_results.py mllp://10.0.0.5:2575 mllp
    HL7GW_MAX_RETRY_ATTEMPTS=5 python examples/send_lab_results.py https://ehr.example.org/hl7 https
"""

from __future__ import annotations

import asyncio
import json
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from hl7_gateway.audit import InMemoryTransmissionRepository
from hl7_gateway.config import GatewaySettings
from hl7_gateway.conversion import InputValidator, JsonHL7Converter
from hl7_gateway.logging_config import configure_logging
from hl7_gateway.transmission import TransmissionOrchestrator, TransmissionProviderFactory
from hl7_gateway.use_cases import SendORUMessagePipeline


LAB_RESULTS = {
    "patient": {
        "patientId": "P12345",
        "firstName": "John",
        "lastName": "Doe",
        "dateOfBirth": "1990-01-15",
        "gender": "M",
        "address": "123 Main St, Springfield, IL, 62701",
    },
    "observations": [
        {"observationId": "GLU", "description": "Glucose", "value": "95", "units": "mg/dL",
         "referenceRange": "70-99", "status": "N", "valueType": "NM"},
        {"observationId": "K", "description": "Potassium", "value": "5.9", "units": "mmol/L",
         "referenceRange": "3.5-5.1", "status": "A", "valueType": "NM"},
    ],
    "messageInfo": {"sendingFacility": "MAIN_LAB", "receivingFacility": "EHR"},
}


async def run(endpoint: str, protocol: str) -> int:
    settings = GatewaySettings.from_env()
    configure_logging(settings.log_level)

    repository = InMemoryTransmissionRepository()
    converter = JsonHL7Converter(
        InputValidator(settings.allow_empty_observations),
        sending_application=settings.sending_application,
    )
    orchestrator = TransmissionOrchestrator(TransmissionProviderFactory(), repository, settings)
    pipeline = SendORUMessagePipeline(converter, orchestrator)

    result = await pipeline.send(LAB_RESULTS, endpoint, protocol=protocol, source="example")

    print("Generated message:")
    print((result.hl7_message or "").replace("\r", "\n"))
    print()
    if not result.success:
        print(f"Delivery failed: {result.error_message}")
        return 1

    print(f"Delivered {result.control_id} in {result.transmission.attempts} attempt(s)")
    print(f"Acknowledgment: {result.transmission.acknowledgment_message}")

    (log,) = await repository.query_history()
    print("\nAudit record:")
    print(json.dumps(log.model_dump(mode="json"), indent=2))
    return 0


def main() -> None:
    if len(sys.argv) >= 3:
        sys.exit(asyncio.run(run(sys.argv[1], sys.argv[2])))

    print("=== ORU^R01 Delivery Demo (file drop) ===\n")
    with tempfile.TemporaryDirectory() as drop_dir:
        code = asyncio.run(run(Path(drop_dir).as_uri(), "file"))
    sys.exit(code)


if __name__ == "__main__":
    main()
