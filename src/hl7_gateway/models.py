"""Pydantic models for the JSON conversion input, plus result value objects."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .hl7.message import HL7Message


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class PatientData(_CamelModel):
    """Patient demographics as supplied by the upstream caller."""

    patient_id: str = Field(default="", alias="patientId", description="Unique patient identifier")
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    middle_name: str | None = Field(default=None, alias="middleName")
    date_of_birth: str | None = Field(default=None, alias="dateOfBirth", description="YYYY-MM-DD")
    gender: str | None = Field(default=None, description="M, F, O or U")
    address: str | None = Field(default=None, description="Comma-separated address lines")


class ObservationData(_CamelModel):
    """One laboratory result. ``value`` stays text regardless of ``value_type``."""

    observation_id: str = Field(default="", alias="observationId")
    description: str = Field(default="")
    value: str = Field(default="")
    units: str | None = Field(default=None)
    reference_range: str | None = Field(default=None, alias="referenceRange")
    status: str | None = Field(default=None, description="N, A, C or P")
    value_type: str | None = Field(default=None, alias="valueType", description="NM, ST, TX, DT, TM or TS")


class MessageInfo(_CamelModel):
    """Optional MSH metadata; missing values are generated at build time."""

    sending_facility: str | None = Field(default=None, alias="sendingFacility")
    receiving_facility: str | None = Field(default=None, alias="receivingFacility")
    message_control_id: str | None = Field(default=None, alias="messageControlId")
    timestamp: str | None = Field(default=None, description="ISO-8601 date/time")


class JsonHL7Input(_CamelModel):
    """Top-level conversion input: patient, observations and message metadata."""

    patient: PatientData | None = Field(default=None)
    observations: list[ObservationData] | None = Field(default=None)
    message_info: MessageInfo | None = Field(default=None, alias="messageInfo")
    additional_segments: list[str] = Field(
        default_factory=list,
        alias="additionalSegments",
        description="ER7 text of segments carried through unchanged",
    )


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of input validation. A failure always carries at least one error."""

    is_valid: bool
    errors: tuple[str, ...] = ()

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(True, ())

    @classmethod
    def failure(cls, errors: Iterable[str]) -> "ValidationResult":
        errors = tuple(errors)
        if not errors:
            raise ValueError("A failed ValidationResult needs at least one error")
        return cls(False, errors)


@dataclass(frozen=True)
class ConversionResult:
    """Outcome of a conversion: both outputs on success, neither on failure."""

    success: bool
    message: HL7Message | None = None
    hl7_string: str | None = None
    errors: tuple[str, ...] = ()
    error_message: str | None = None

    @classmethod
    def succeeded(cls, message: HL7Message, hl7_string: str) -> "ConversionResult":
        return cls(True, message, hl7_string)

    @classmethod
    def failed(cls, error_message: str, errors: Iterable[str] = ()) -> "ConversionResult":
        return cls(False, None, None, tuple(errors), error_message)
