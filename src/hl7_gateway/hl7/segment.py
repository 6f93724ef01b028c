"""In-memory HL7v2 segments and the ER7 segment codec."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field as dc_field

from .encoding import DEFAULT_DELIMITERS, Delimiters, HL7EncodingError, escape, unescape


# A component is a tuple of subcomponents; a repetition is a tuple of components.
Component = tuple[str, ...]
Repetition = tuple[Component, ...]

_EMPTY_REPETITION: Repetition = (("",),)


@dataclass(frozen=True)
class Field:
    """One HL7 field: repetitions -> components -> subcomponents (unescaped)."""

    repetitions: tuple[Repetition, ...] = (_EMPTY_REPETITION,)

    @classmethod
    def of(cls, *components: str | None) -> "Field":
        """Build a single-repetition field from plain component values."""
        if not components:
            return cls()
        return cls(((tuple((c or "",) for c in components)),))

    @classmethod
    def repeated(cls, *repetitions: Sequence[str]) -> "Field":
        """Build a repeating field; each item is one repetition's components."""
        if not repetitions:
            return cls()
        return cls(tuple(tuple((c,) for c in (rep or [""])) for rep in repetitions))

    @property
    def value(self) -> str:
        return self.component(1)

    @property
    def is_empty(self) -> bool:
        return all(sub == "" for rep in self.repetitions for comp in rep for sub in comp)

    def component(self, index: int, repetition: int = 0) -> str:
        """Return component ``index`` (1-based) of a repetition, or ``""``."""
        if repetition >= len(self.repetitions):
            return ""
        rep = self.repetitions[repetition]
        if index < 1 or index > len(rep):
            return ""
        return rep[index - 1][0]

    def components(self, repetition: int = 0) -> list[str]:
        if repetition >= len(self.repetitions):
            return []
        return [comp[0] for comp in self.repetitions[repetition]]


EMPTY_FIELD = Field()


@dataclass(frozen=True)
class Segment:
    """A segment tag plus its fields. ``fields[0]`` is field 1 (e.g. PID-1)."""

    tag: str
    fields: tuple[Field, ...] = dc_field(default_factory=tuple)

    def __post_init__(self) -> None:
        if len(self.tag) != 3 or not self.tag.isalnum():
            raise HL7EncodingError(f"Segment tag must be 3 alphanumeric characters, got {self.tag!r}")

    def field(self, index: int) -> Field:
        """Return field ``index`` using HL7 numbering; missing fields are empty."""
        if index < 1 or index > len(self.fields):
            return EMPTY_FIELD
        return self.fields[index - 1]

    def value(self, index: int, component: int = 1) -> str:
        return self.field(index).component(component)

    @classmethod
    def build(cls, tag: str, *fields: Field | str | None) -> "Segment":
        """Convenience constructor: plain strings become one-component fields."""
        built = tuple(f if isinstance(f, Field) else Field.of(f) for f in fields)
        return cls(tag, built)


class SegmentCodec:
    """Encode/decode single segments to and from ER7 text."""

    @staticmethod
    def encode(segment: Segment, delimiters: Delimiters = DEFAULT_DELIMITERS) -> str:
        parts = [segment.tag]
        fields = list(segment.fields)
        if segment.tag == "MSH":
            # MSH-1 is the separator itself and MSH-2 the raw encoding chars
            parts.append(delimiters.encoding_characters)
            fields = fields[2:]
        parts.extend(SegmentCodec._encode_field(f, delimiters) for f in fields)

        if segment.tag == "MSH":
            return parts[0] + delimiters.field + delimiters.field.join(parts[1:])
        return delimiters.field.join(parts)

    @staticmethod
    def decode(
        text: str,
        delimiters: Delimiters = DEFAULT_DELIMITERS,
        min_fields: int = 0,
    ) -> Segment:
        """Parse one segment. Short segments are padded with empty fields."""
        text = text.rstrip("\r\n")
        if len(text) < 3:
            raise HL7EncodingError(f"Segment too short: {text!r}")

        tag = text[:3]
        if tag == "MSH":
            if text[3:4] != delimiters.field:
                raise HL7EncodingError("MSH field separator does not match the delimiter set")
            raw = text[4:].split(delimiters.field)
            encoding = raw[0]
            fields = [Field.of(delimiters.field), Field.of(encoding)]
            fields.extend(SegmentCodec._decode_field(r, delimiters) for r in raw[1:])
        else:
            if len(text) > 3 and text[3] != delimiters.field:
                raise HL7EncodingError(f"Malformed segment header: {text[:8]!r}")
            raw = text.split(delimiters.field)[1:]
            fields = [SegmentCodec._decode_field(r, delimiters) for r in raw]

        while len(fields) < min_fields:
            fields.append(EMPTY_FIELD)
        return Segment(tag, tuple(fields))

    @staticmethod
    def _encode_field(f: Field, delimiters: Delimiters) -> str:
        reps = []
        for rep in f.repetitions:
            comps = [
                delimiters.subcomponent.join(escape(sub, delimiters) for sub in comp)
                for comp in rep
            ]
            reps.append(delimiters.component.join(comps).rstrip(delimiters.component))
        return delimiters.repetition.join(reps)

    @staticmethod
    def _decode_field(raw: str, delimiters: Delimiters) -> Field:
        if raw == "":
            return EMPTY_FIELD
        repetitions = tuple(
            tuple(
                tuple(unescape(sub, delimiters) for sub in comp.split(delimiters.subcomponent))
                for comp in rep.split(delimiters.component)
            )
            for rep in raw.split(delimiters.repetition)
        )
        return Field(repetitions)
