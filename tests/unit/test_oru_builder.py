"""Unit tests for ORU^R01 mapping in both directions."""

from __future__ import annotations

import re
from datetime import datetime

import hl7
import pytest

from hl7_gateway.hl7.encoding import HL7EncodingError
from hl7_gateway.hl7.message import decode_message, encode_message
from hl7_gateway.hl7.oru_builder import ORUBuilder
from hl7_gateway.models import JsonHL7Input, MessageInfo, ObservationData, PatientData


def _segments(text: str, tag: str) -> list[str]:
    return [s for s in text.split("\r") if s.startswith(tag + "|")]


class TestORUBuilderStructure:
    @pytest.fixture
    def oru_message(self, sample_input: JsonHL7Input) -> str:
        return encode_message(ORUBuilder.build_r01(sample_input))

    def test_segment_order(self, oru_message: str) -> None:
        assert [s[:3] for s in oru_message.split("\r")] == ["MSH", "PID", "OBR", "OBX"]

    def test_message_type_oru_r01(self, oru_message: str) -> None:
        msh = oru_message.split("\r")[0]
        assert "|ORU^R01^ORU_R01|" in msh

    def test_pid_contains_id_and_name(self, oru_message: str) -> None:
        pid = _segments(oru_message, "PID")[0]
        assert "P12345" in pid
        assert "DOE^JOHN" in pid

    def test_obx_contains_value_and_units(self, oru_message: str) -> None:
        obx = _segments(oru_message, "OBX")
        assert len(obx) == 1
        assert "|95|" in obx[0]
        assert "mg/dL" in obx[0]

    def test_hl7_parseable(self, oru_message: str) -> None:
        parsed = hl7.parse(oru_message)
        assert "P12345" in str(parsed.segment("PID")[3])

    def test_segments_use_cr_terminator(self, oru_message: str) -> None:
        assert "\n" not in oru_message
        assert not oru_message.endswith("\r")


class TestORUBuilderObservations:
    def test_one_order_with_incrementing_obx_set_ids(self, lab_results_input: JsonHL7Input) -> None:
        text = encode_message(ORUBuilder.build_r01(lab_results_input))
        assert len(_segments(text, "OBR")) == 1
        set_ids = [obx.split("|")[1] for obx in _segments(text, "OBX")]
        assert set_ids == ["1", "2", "3"]

    def test_order_per_observation(self, lab_results_input: JsonHL7Input) -> None:
        text = encode_message(ORUBuilder.build_r01(lab_results_input, order_per_observation=True))
        tags = [s[:3] for s in text.split("\r")]
        assert tags == ["MSH", "PID", "OBR", "OBX", "OBR", "OBX", "OBR", "OBX"]
        obr = _segments(text, "OBR")
        assert obr[1].split("|")[3] == "MSG00001-2"
        assert obr[1].split("|")[4] == "HGB^Hemoglobin^L"

    def test_zero_observations_yields_msh_and_pid_only(self, sample_input: JsonHL7Input) -> None:
        data = sample_input.model_copy(update={"observations": []})
        text = encode_message(ORUBuilder.build_r01(data))
        assert [s[:3] for s in text.split("\r")] == ["MSH", "PID"]

    def test_obx_fields(self, lab_results_input: JsonHL7Input) -> None:
        text = encode_message(ORUBuilder.build_r01(lab_results_input))
        fields = _segments(text, "OBX")[1].split("|")
        assert fields[2] == "NM"
        assert fields[3] == "HGB^Hemoglobin^L"
        assert fields[5] == "13.2"
        assert fields[6] == "g/dL"
        assert fields[7] == "13.5-17.5"
        assert fields[8] == "A"
        assert fields[11] == "F"

    def test_value_type_defaults_to_st(self, sample_input: JsonHL7Input) -> None:
        text = encode_message(ORUBuilder.build_r01(sample_input))
        assert _segments(text, "OBX")[0].split("|")[2] == "ST"

    def test_numeric_value_is_carried_as_text(self) -> None:
        data = JsonHL7Input(
            patient=PatientData(patient_id="P1", first_name="A", last_name="B"),
            observations=[ObservationData(observation_id="K", description="Potassium", value="04.50", value_type="NM")],
        )
        text = encode_message(ORUBuilder.build_r01(data))
        assert _segments(text, "OBX")[0].split("|")[5] == "04.50"

    def test_obr_result_status_final(self, sample_input: JsonHL7Input) -> None:
        obr = _segments(encode_message(ORUBuilder.build_r01(sample_input)), "OBR")[0].split("|")
        assert obr[4] == "LAB^LABORATORY^L"
        assert obr[25] == "F"


class TestORUBuilderHeader:
    def test_supplied_metadata_used(self, lab_results_input: JsonHL7Input) -> None:
        # MSH-1 is the separator itself, so index n here is MSH-(n+1)
        msh = encode_message(ORUBuilder.build_r01(lab_results_input)).split("\r")[0].split("|")
        assert msh[2] == "HL7GATEWAY"
        assert msh[3] == "MAIN_LAB"
        assert msh[5] == "EHR"
        assert msh[6] == "20260314093000"
        assert msh[9] == "MSG00001"
        assert msh[10] == "P"
        assert msh[11] == "2.5"

    def test_defaults_when_metadata_missing(self, sample_input: JsonHL7Input) -> None:
        now = datetime(2026, 1, 2, 3, 4, 5)
        message = ORUBuilder.build_r01(sample_input, sending_application="LABSYS", now=now)
        msh = encode_message(message).split("\r")[0].split("|")
        assert msh[2] == msh[4] == "LABSYS"
        assert msh[3] == msh[5] == "UNKNOWN"
        assert msh[6] == "20260102030405"
        assert re.fullmatch(r"[0-9A-F]{12}", msh[9])

    def test_generated_control_ids_are_unique(self, sample_input: JsonHL7Input) -> None:
        ids = {ORUBuilder.build_r01(sample_input).control_id for _ in range(50)}
        assert len(ids) == 50

    def test_offset_timestamp_converted_to_utc(self, sample_input: JsonHL7Input) -> None:
        data = sample_input.model_copy(
            update={"message_info": MessageInfo(timestamp="2026-03-14T09:30:00+02:00")}
        )
        msh = encode_message(ORUBuilder.build_r01(data)).split("\r")[0].split("|")
        assert msh[6] == "20260314073000"


class TestORUBuilderPatient:
    def test_pid_fields(self, lab_results_input: JsonHL7Input) -> None:
        pid = _segments(encode_message(ORUBuilder.build_r01(lab_results_input)), "PID")[0].split("|")
        assert pid[1] == "1"
        assert pid[3] == "P12345^^^HOSPITAL"
        assert pid[5] == "DOE^JOHN^Q"
        assert pid[7] == "19900115"
        assert pid[8] == "M"
        assert pid[11] == "123 Main St^Springfield^IL^62701"

    def test_missing_gender_is_unknown(self) -> None:
        data = JsonHL7Input(
            patient=PatientData(patient_id="P1", first_name="Ann", last_name="Lee"),
            observations=[],
        )
        pid = _segments(encode_message(ORUBuilder.build_r01(data)), "PID")[0].split("|")
        assert pid[8] == "U"

    def test_delimiter_in_name_is_escaped(self) -> None:
        data = JsonHL7Input(
            patient=PatientData(patient_id="P1", first_name="Pat", last_name="O'Brien^Jr"),
            observations=[],
        )
        pid = _segments(encode_message(ORUBuilder.build_r01(data)), "PID")[0]
        assert "O'BRIEN\\S\\JR^PAT" in pid


class TestORUReader:
    def test_reads_back_lab_results(self, lab_results_input: JsonHL7Input) -> None:
        text = encode_message(ORUBuilder.build_r01(lab_results_input))
        back = ORUBuilder.read_r01(decode_message(text))

        assert back.patient.patient_id == "P12345"
        assert back.patient.last_name == "DOE"
        assert back.patient.first_name == "JOHN"
        assert back.patient.middle_name == "Q"
        assert back.patient.date_of_birth == "1990-01-15"
        assert back.patient.gender == "M"
        assert back.patient.address == "123 Main St, Springfield, IL, 62701"
        assert [o.value for o in back.observations] == ["95", "13.2", "Sample slightly hemolyzed"]
        assert back.observations[0].reference_range == "70-99"
        assert back.observations[2].value_type == "TX"
        assert back.message_info.message_control_id == "MSG00001"
        assert back.message_info.sending_facility == "MAIN_LAB"
        assert back.message_info.timestamp == "2026-03-14T09:30:00"

    def test_zero_obx_reads_as_empty_observations(self, sample_input: JsonHL7Input) -> None:
        data = sample_input.model_copy(update={"observations": []})
        back = ORUBuilder.read_r01(ORUBuilder.build_r01(data))
        assert back.observations == []

    def test_unknown_segments_preserved(self, sample_input: JsonHL7Input) -> None:
        data = sample_input.model_copy(
            update={"additional_segments": ["NTE|1||Fasting sample", "ZLB|LAB-7^North Wing"]}
        )
        text = encode_message(ORUBuilder.build_r01(data))
        assert text.split("\r")[-2:] == ["NTE|1||Fasting sample", "ZLB|LAB-7^North Wing"]

        back = ORUBuilder.read_r01(decode_message(text))
        assert back.additional_segments == ["NTE|1||Fasting sample", "ZLB|LAB-7^North Wing"]

    def test_invalid_additional_segment_raises(self, sample_input: JsonHL7Input) -> None:
        data = sample_input.model_copy(update={"additional_segments": ["N|1"]})
        with pytest.raises(HL7EncodingError):
            ORUBuilder.build_r01(data)
