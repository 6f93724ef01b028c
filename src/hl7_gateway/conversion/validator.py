"""Validation of JSON conversion input.

Every rule runs; all violations are returned together in one failed
``ValidationResult``. The input is never modified.
"""

from __future__ import annotations

import logging

from ..hl7.timestamps import parse_iso_date, parse_iso_datetime
from ..models import JsonHL7Input, MessageInfo, ObservationData, PatientData, ValidationResult

logger = logging.getLogger(__name__)


VALID_GENDERS = ("M", "F", "O", "U")
VALID_STATUSES = ("N", "A", "C", "P")
VALID_VALUE_TYPES = ("NM", "ST", "TX", "DT", "TM", "TS")

MAX_PATIENT_ID_LENGTH = 50
MAX_NAME_LENGTH = 100
MAX_OBSERVATION_ID_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 200
MAX_VALUE_LENGTH = 100
MAX_OBSERVATIONS = 100


class InputValidator:
    """Check a ``JsonHL7Input`` for completeness and field formats."""

    def __init__(self, allow_empty_observations: bool = False) -> None:
        self.allow_empty_observations = allow_empty_observations

    def validate(self, data: JsonHL7Input) -> ValidationResult:
        errors: list[str] = []

        if data.patient is None:
            errors.append("Patient is required")
        else:
            _check_patient(data.patient, errors)

        self._check_observations(data.observations, errors)

        if data.message_info is not None:
            _check_message_info(data.message_info, errors)

        if errors:
            logger.debug("Input validation failed with %d error(s)", len(errors))
            return ValidationResult.failure(errors)
        return ValidationResult.success()

    def _check_observations(self, observations: list[ObservationData] | None, errors: list[str]) -> None:
        if observations is None:
            errors.append("Observations collection is required")
            return
        if not observations and not self.allow_empty_observations:
            errors.append("At least one observation is required")
            return
        if len(observations) > MAX_OBSERVATIONS:
            errors.append(f"Cannot exceed {MAX_OBSERVATIONS} observations per message")

        for i, obs in enumerate(observations, start=1):
            prefix = f"Observation {i}:"
            _require(obs.observation_id, f"{prefix} Observation ID", MAX_OBSERVATION_ID_LENGTH, errors)
            _require(obs.description, f"{prefix} Description", MAX_DESCRIPTION_LENGTH, errors)
            _require(obs.value, f"{prefix} Value", MAX_VALUE_LENGTH, errors)

            if obs.status and obs.status.upper() not in VALID_STATUSES:
                errors.append(f"{prefix} Status must be {_one_of(VALID_STATUSES)}")
            if obs.value_type and obs.value_type.upper() not in VALID_VALUE_TYPES:
                errors.append(f"{prefix} Value type must be {_one_of(VALID_VALUE_TYPES)}")


def _check_patient(patient: PatientData, errors: list[str]) -> None:
    _require(patient.patient_id, "Patient ID", MAX_PATIENT_ID_LENGTH, errors)
    _require(patient.first_name, "First name", MAX_NAME_LENGTH, errors)
    _require(patient.last_name, "Last name", MAX_NAME_LENGTH, errors)

    if patient.middle_name and len(patient.middle_name) > MAX_NAME_LENGTH:
        errors.append(f"Middle name cannot exceed {MAX_NAME_LENGTH} characters")
    if patient.date_of_birth and parse_iso_date(patient.date_of_birth) is None:
        errors.append("Date of birth must be in YYYY-MM-DD format")
    if patient.gender and patient.gender.upper() not in VALID_GENDERS:
        errors.append(f"Gender must be {_one_of(VALID_GENDERS)}")


def _check_message_info(info: MessageInfo, errors: list[str]) -> None:
    if info.timestamp and parse_iso_datetime(info.timestamp) is None:
        errors.append("Timestamp must be a valid ISO-8601 date/time")


def _require(value: str, label: str, max_length: int, errors: list[str]) -> None:
    if not value or not value.strip():
        errors.append(f"{label} is required")
    elif len(value) > max_length:
        errors.append(f"{label} cannot exceed {max_length} characters")


def _one_of(codes: tuple[str, ...]) -> str:
    return ", ".join(codes[:-1]) + f" or {codes[-1]}"
