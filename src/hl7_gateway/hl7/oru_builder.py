"""HL7v2 ORU^R01 (Observation Result Unsolicited) message mapping.

ORU^R01 carries laboratory results. Structure built here:

    MSH | PID | OBR | OBX ... OBX        (one order, N results; default)
    MSH | PID | OBR | OBX | OBR | OBX    (order_per_observation=True)

``ORUBuilder.build_r01`` maps the JSON input model onto segments and
``ORUBuilder.read_r01`` reverses it using the same field positions.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from ..models import JsonHL7Input, MessageInfo, ObservationData, PatientData
from .encoding import DEFAULT_DELIMITERS, DEFAULT_ENCODING_CHARS, DEFAULT_FIELD_SEP
from .message import HL7Message
from .segment import Field, Segment, SegmentCodec
from .timestamps import from_hl7_date, from_hl7_timestamp, to_hl7_date, to_hl7_timestamp


_MAPPED_TAGS = frozenset({"MSH", "PID", "OBR", "OBX"})


class ORUBuilder:
    """Map clinical input to and from HL7v2 ORU^R01 messages."""

    MESSAGE_TYPE = ("ORU", "R01", "ORU_R01")
    VERSION_ID = "2.5"
    PROCESSING_ID = "P"
    ASSIGNING_AUTHORITY = "HOSPITAL"
    DEFAULT_FACILITY = "UNKNOWN"
    DEFAULT_VALUE_TYPE = "ST"
    CODING_SYSTEM = "L"

    @classmethod
    def build_r01(
        cls,
        data: JsonHL7Input,
        sending_application: str = "HL7GATEWAY",
        order_per_observation: bool = False,
        now: datetime | None = None,
    ) -> HL7Message:
        """Build an ORU^R01 message from validated input.

        Args:
            data: Validated conversion input. ``patient`` must be set.
            sending_application: MSH-3 / MSH-5 application name.
            order_per_observation: Emit one OBR per OBX instead of one OBR
                for the whole batch.
            now: Clock override used when no timestamp is supplied.

        Returns:
            The in-memory message; render it with ``encode_message``.
        """
        info = data.message_info or MessageInfo()
        ts = to_hl7_timestamp(info.timestamp, now=now)
        control_id = info.message_control_id or uuid.uuid4().hex[:12].upper()
        observations = data.observations or []

        segments = [
            cls._msh(info, ts, control_id, sending_application),
            cls._pid(data.patient or PatientData()),
        ]
        if observations:
            if order_per_observation:
                for n, obs in enumerate(observations, start=1):
                    segments.append(cls._obr(n, f"{control_id}-{n}", ts, obs))
                    segments.append(cls._obx(n, obs))
            else:
                segments.append(cls._obr(1, control_id, ts))
                segments.extend(cls._obx(n, obs) for n, obs in enumerate(observations, start=1))

        segments.extend(SegmentCodec.decode(raw, DEFAULT_DELIMITERS) for raw in data.additional_segments)
        return HL7Message(segments=segments, delimiters=DEFAULT_DELIMITERS)

    @classmethod
    def read_r01(cls, message: HL7Message) -> JsonHL7Input:
        """Map a decoded ORU message back onto the input model.

        OBR segments are regenerated on build and are not carried; any tag
        other than MSH/PID/OBR/OBX is kept in ``additional_segments``.
        """
        msh = message.header
        info = MessageInfo(
            sending_facility=msh.value(4) or None,
            receiving_facility=msh.value(6) or None,
            message_control_id=msh.value(10) or None,
            timestamp=from_hl7_timestamp(msh.value(7)),
        )

        pid = message.first("PID")
        patient = cls._read_pid(pid) if pid is not None else None
        observations = [cls._read_obx(seg) for seg in message.segments_of("OBX")]

        extra = [
            SegmentCodec.encode(seg, DEFAULT_DELIMITERS)
            for seg in message.segments[1:]
            if seg.tag not in _MAPPED_TAGS or (seg.tag == "PID" and seg is not pid)
        ]
        return JsonHL7Input(
            patient=patient,
            observations=observations,
            message_info=info,
            additional_segments=extra,
        )

    # ------------------------------------------------------------------
    # Segment builders
    # ------------------------------------------------------------------

    @classmethod
    def _msh(cls, info: MessageInfo, ts: str, control_id: str, app: str) -> Segment:
        return Segment.build(
            "MSH",
            DEFAULT_FIELD_SEP,                                   # MSH-1
            DEFAULT_ENCODING_CHARS,                              # MSH-2
            app,                                                 # MSH-3
            info.sending_facility or cls.DEFAULT_FACILITY,       # MSH-4
            app,                                                 # MSH-5
            info.receiving_facility or cls.DEFAULT_FACILITY,     # MSH-6
            ts,                                                  # MSH-7
            None,                                                # MSH-8
            Field.of(*cls.MESSAGE_TYPE),                         # MSH-9
            control_id,                                          # MSH-10
            cls.PROCESSING_ID,                                   # MSH-11
            cls.VERSION_ID,                                      # MSH-12
        )

    @classmethod
    def _pid(cls, patient: PatientData) -> Segment:
        name = [patient.last_name.upper(), patient.first_name.upper()]
        if patient.middle_name:
            name.append(patient.middle_name.upper())
        gender = (patient.gender or "U").upper()

        return Segment.build(
            "PID",
            "1",                                                         # PID-1 set ID
            None,                                                        # PID-2
            Field.of(patient.patient_id, None, None, cls.ASSIGNING_AUTHORITY),  # PID-3
            None,                                                        # PID-4
            Field.of(*name),                                             # PID-5
            None,                                                        # PID-6
            to_hl7_date(patient.date_of_birth),                          # PID-7
            gender,                                                      # PID-8
            None,                                                        # PID-9
            None,                                                        # PID-10
            cls._address(patient.address),                               # PID-11
        )

    @classmethod
    def _obr(cls, set_id: int, filler_id: str, ts: str, obs: ObservationData | None = None) -> Segment:
        service = (
            Field.of(obs.observation_id, obs.description, cls.CODING_SYSTEM)
            if obs is not None
            else Field.of("LAB", "LABORATORY", cls.CODING_SYSTEM)
        )
        fields: list[Field | str | None] = [
            str(set_id),    # OBR-1
            None,           # OBR-2 placer order number
            filler_id,      # OBR-3 filler order number
            service,        # OBR-4 universal service ID
            None,
            None,
            ts,             # OBR-7 observation date/time
        ]
        fields.extend([None] * 17)
        fields.append("F")  # OBR-25 result status
        return Segment.build("OBR", *fields)

    @classmethod
    def _obx(cls, set_id: int, obs: ObservationData) -> Segment:
        return Segment.build(
            "OBX",
            str(set_id),                                                       # OBX-1
            (obs.value_type or cls.DEFAULT_VALUE_TYPE).upper(),                # OBX-2
            Field.of(obs.observation_id, obs.description, cls.CODING_SYSTEM),  # OBX-3
            None,                                                              # OBX-4
            obs.value,                                                         # OBX-5
            obs.units,                                                         # OBX-6
            obs.reference_range,                                               # OBX-7
            (obs.status or "").upper(),                                        # OBX-8
            None,
            None,
            "F",                                                               # OBX-11
        )

    @staticmethod
    def _address(address: str | None) -> Field:
        if not address:
            return Field()
        return Field.of(*(part.strip() for part in address.split(",")))

    # ------------------------------------------------------------------
    # Segment readers
    # ------------------------------------------------------------------

    @staticmethod
    def _read_pid(pid: Segment) -> PatientData:
        address = [c for c in pid.field(11).components() if c]
        return PatientData(
            patient_id=pid.value(3),
            last_name=pid.value(5, 1),
            first_name=pid.value(5, 2),
            middle_name=pid.value(5, 3) or None,
            date_of_birth=from_hl7_date(pid.value(7)),
            gender=pid.value(8) or None,
            address=", ".join(address) or None,
        )

    @staticmethod
    def _read_obx(obx: Segment) -> ObservationData:
        return ObservationData(
            observation_id=obx.value(3, 1),
            description=obx.value(3, 2),
            value=obx.value(5),
            units=obx.value(6) or None,
            reference_range=obx.value(7) or None,
            status=obx.value(8) or None,
            value_type=obx.value(2) or None,
        )
