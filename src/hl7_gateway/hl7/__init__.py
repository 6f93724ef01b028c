from .encoding import DEFAULT_DELIMITERS, Delimiters, HL7EncodingError, escape, unescape
from .message import HL7Message, decode_message, encode_message
from .segment import Field, Segment, SegmentCodec

__all__ = [
    "DEFAULT_DELIMITERS",
    "Delimiters",
    "HL7EncodingError",
    "escape",
    "unescape",
    "HL7Message",
    "decode_message",
    "encode_message",
    "Field",
    "Segment",
    "SegmentCodec",
]
