"""JSON -> HL7v2 ORU^R01 converter.

Orchestrates validation, mapping and encoding. Failures come back as a
``ConversionResult`` with ``success=False``; nothing is raised to the caller
and no partially built message is ever returned.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from ..hl7.encoding import HL7EncodingError
from ..hl7.message import decode_message, encode_message
from ..hl7.oru_builder import ORUBuilder
from ..models import ConversionResult, JsonHL7Input, ValidationResult
from .validator import InputValidator

logger = logging.getLogger(__name__)


class JsonHL7Converter:
    """Convert JSON clinical input into HL7v2 ORU^R01 messages."""

    def __init__(
        self,
        validator: InputValidator | None = None,
        sending_application: str = "HL7GATEWAY",
        order_per_observation: bool = False,
    ) -> None:
        self._validator = validator or InputValidator()
        self.sending_application = sending_application
        self.order_per_observation = order_per_observation

    def validate(self, data: JsonHL7Input | Mapping[str, Any]) -> ValidationResult:
        parsed, errors = _coerce(data)
        if parsed is None:
            return ValidationResult.failure(errors)
        return self._validator.validate(parsed)

    def convert(self, data: JsonHL7Input | Mapping[str, Any]) -> ConversionResult:
        """Validate, map and encode. Returns both the message and its ER7 text."""
        parsed, errors = _coerce(data)
        if parsed is None:
            return _failed(errors)

        validation = self._validator.validate(parsed)
        if not validation.is_valid:
            return _failed(validation.errors)

        try:
            message = ORUBuilder.build_r01(
                parsed,
                sending_application=self.sending_application,
                order_per_observation=self.order_per_observation,
            )
            hl7_string = encode_message(message)
        except HL7EncodingError as exc:
            logger.error("HL7 encoding failed: %s", exc)
            return ConversionResult.failed(f"Conversion failed: {exc}", [str(exc)])

        logger.info(
            "Converted input to %s control_id=%s observations=%d length=%d",
            message.message_type,
            message.control_id,
            len(parsed.observations or []),
            len(hl7_string),
        )
        return ConversionResult.succeeded(message, hl7_string)

    def convert_to_string(self, data: JsonHL7Input | Mapping[str, Any]) -> str | None:
        """Return only the ER7 text, or None when conversion fails."""
        return self.convert(data).hl7_string

    @staticmethod
    def from_hl7(text: str) -> JsonHL7Input:
        """Decode ER7 text back into the input model.

        Raises:
            HL7EncodingError: if the text is not a decodable HL7 message.
        """
        return ORUBuilder.read_r01(decode_message(text))


def _coerce(data: JsonHL7Input | Mapping[str, Any]) -> tuple[JsonHL7Input | None, list[str]]:
    if isinstance(data, JsonHL7Input):
        return data, []
    if not isinstance(data, Mapping):
        return None, [f"Input must be a JSON object, got {type(data).__name__}"]
    try:
        return JsonHL7Input.model_validate(data), []
    except ValidationError as exc:
        return None, [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]


def _failed(errors: tuple[str, ...] | list[str]) -> ConversionResult:
    message = f"JSON input validation failed: {', '.join(errors)}"
    logger.warning("Conversion rejected with %d validation error(s)", len(errors))
    return ConversionResult.failed(message, errors)
