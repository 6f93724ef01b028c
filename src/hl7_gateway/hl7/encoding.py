"""HL7v2 delimiter set and escape sequences.

Delimiters are message-local: MSH-1 carries the field separator and MSH-2 the
four encoding characters (component, repetition, escape, subcomponent). Every
other segment in the message is split and escaped with that set.

Escape sequences (HL7 v2.5 section 2.7):

    \\F\\   field separator
    \\S\\   component separator
    \\T\\   subcomponent separator
    \\R\\   repetition separator
    \\E\\   escape character
    \\Xhh\\ hexadecimal data (used here for CR and LF)
"""

from __future__ import annotations

from dataclasses import dataclass


DEFAULT_FIELD_SEP = "|"
DEFAULT_ENCODING_CHARS = "^~\\&"


class HL7EncodingError(ValueError):
    """Raised when a message or delimiter set cannot be encoded or decoded."""


@dataclass(frozen=True)
class Delimiters:
    """The five separator characters that govern one HL7 message."""

    field: str = "|"
    component: str = "^"
    repetition: str = "~"
    escape: str = "\\"
    subcomponent: str = "&"

    def __post_init__(self) -> None:
        chars = [self.field, self.component, self.repetition, self.escape, self.subcomponent]
        for ch in chars:
            if not isinstance(ch, str) or len(ch) != 1:
                raise HL7EncodingError(f"Delimiter must be a single character, got {ch!r}")
            if ch.isalnum() or ch in "\r\n":
                raise HL7EncodingError(f"Delimiter {ch!r} is not allowed")
        if len(set(chars)) != len(chars):
            raise HL7EncodingError(f"Delimiters must be distinct, got {''.join(chars)!r}")

    @property
    def encoding_characters(self) -> str:
        """MSH-2 value: component, repetition, escape, subcomponent."""
        return f"{self.component}{self.repetition}{self.escape}{self.subcomponent}"

    @classmethod
    def from_msh(cls, line: str) -> "Delimiters":
        """Read the delimiter set from the fixed positions of an MSH segment."""
        if not line.startswith("MSH") or len(line) < 8:
            raise HL7EncodingError(f"Not a valid MSH segment: {line[:20]!r}")

        field = line[3]
        end = line.find(field, 4)
        encoding = line[4:end] if end != -1 else line[4:]
        if len(encoding) < 3:
            raise HL7EncodingError(f"MSH-2 encoding characters incomplete: {encoding!r}")
        # The subcomponent separator is optional in very old messages
        subcomponent = encoding[3] if len(encoding) > 3 else "&"
        return cls(
            field=field,
            component=encoding[0],
            repetition=encoding[1],
            escape=encoding[2],
            subcomponent=subcomponent,
        )


DEFAULT_DELIMITERS = Delimiters()


def escape(value: str, delimiters: Delimiters = DEFAULT_DELIMITERS) -> str:
    """Escape every delimiter, the escape char, CR and LF inside a value."""
    esc = delimiters.escape
    table = {
        delimiters.field: f"{esc}F{esc}",
        delimiters.component: f"{esc}S{esc}",
        delimiters.subcomponent: f"{esc}T{esc}",
        delimiters.repetition: f"{esc}R{esc}",
        esc: f"{esc}E{esc}",
        "\r": f"{esc}X0D{esc}",
        "\n": f"{esc}X0A{esc}",
    }
    return "".join(table.get(ch, ch) for ch in value)


def unescape(value: str, delimiters: Delimiters = DEFAULT_DELIMITERS) -> str:
    """Reverse :func:`escape`. Unrecognised sequences are kept verbatim."""
    esc = delimiters.escape
    if esc not in value:
        return value

    table = {
        "F": delimiters.field,
        "S": delimiters.component,
        "T": delimiters.subcomponent,
        "R": delimiters.repetition,
        "E": esc,
    }
    out: list[str] = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch != esc:
            out.append(ch)
            i += 1
            continue
        end = value.find(esc, i + 1)
        if end == -1:
            # Dangling escape char: keep the rest as-is
            out.append(value[i:])
            break
        code = value[i + 1:end]
        if code in table:
            out.append(table[code])
        elif code.startswith("X") and len(code) > 1 and _is_hex(code[1:]):
            out.append(bytes.fromhex(code[1:]).decode("latin-1"))
        else:
            out.append(value[i:end + 1])
        i = end + 1
    return "".join(out)


def _is_hex(text: str) -> bool:
    if len(text) % 2:
        return False
    try:
        bytes.fromhex(text)
    except ValueError:
        return False
    return True
