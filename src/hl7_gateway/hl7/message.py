"""Whole-message ER7 encoding and decoding."""

from __future__ import annotations

from dataclasses import dataclass, field

from .encoding import DEFAULT_DELIMITERS, Delimiters, HL7EncodingError
from .segment import Segment, SegmentCodec


SEGMENT_TERMINATOR = "\r"

_MLLP_FRAMING = "\x0b\x1c"


@dataclass
class HL7Message:
    """An ordered list of segments sharing one delimiter set. MSH comes first."""

    segments: list[Segment] = field(default_factory=list)
    delimiters: Delimiters = DEFAULT_DELIMITERS

    def __post_init__(self) -> None:
        if self.segments and self.segments[0].tag != "MSH":
            raise HL7EncodingError(f"First segment must be MSH, got {self.segments[0].tag}")

    def segments_of(self, tag: str) -> list[Segment]:
        return [s for s in self.segments if s.tag == tag]

    def first(self, tag: str) -> Segment | None:
        return next((s for s in self.segments if s.tag == tag), None)

    @property
    def header(self) -> Segment:
        if not self.segments:
            raise HL7EncodingError("Message has no segments")
        return self.segments[0]

    @property
    def message_type(self) -> str:
        """MSH-9 rendered as ``CODE^EVENT`` (e.g. ``ORU^R01``)."""
        msh9 = self.header.field(9)
        code, event = msh9.component(1), msh9.component(2)
        return f"{code}^{event}" if event else code

    @property
    def control_id(self) -> str:
        return self.header.value(10)

    def to_er7(self) -> str:
        return encode_message(self)


def encode_message(message: HL7Message) -> str:
    """Render every segment and join them with the HL7 segment terminator."""
    if not message.segments:
        raise HL7EncodingError("Cannot encode an empty message")
    return SEGMENT_TERMINATOR.join(
        SegmentCodec.encode(seg, message.delimiters) for seg in message.segments
    )


def decode_message(text: str) -> HL7Message:
    """Parse ER7 text. Delimiters are taken from MSH before anything else."""
    if not text or not text.strip(_MLLP_FRAMING + "\r\n \t"):
        raise HL7EncodingError("Message is empty")

    cleaned = text.strip(_MLLP_FRAMING + "\r\n")
    lines = [
        line for line in cleaned.replace("\r\n", "\r").replace("\n", "\r").split("\r")
        if line.strip()
    ]
    if not lines[0].startswith("MSH"):
        raise HL7EncodingError(f"Message must start with MSH, got {lines[0][:3]!r}")

    delimiters = Delimiters.from_msh(lines[0])
    segments = [SegmentCodec.decode(line, delimiters) for line in lines]
    return HL7Message(segments=segments, delimiters=delimiters)
