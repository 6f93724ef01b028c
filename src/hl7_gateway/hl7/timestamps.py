"""Date/time conversions between ISO-8601 input and HL7 DT/TS values."""

from __future__ import annotations

from datetime import date, datetime, timezone


HL7_DATE_FORMAT = "%Y%m%d"
HL7_TS_FORMAT = "%Y%m%d%H%M%S"


def parse_iso_date(value: str) -> date | None:
    """Parse strict ``YYYY-MM-DD``; return None when it does not match."""
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_iso_datetime(value: str) -> datetime | None:
    """Parse an ISO-8601 date or date-time (``Z`` suffix allowed)."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def to_hl7_date(value: str | None) -> str:
    parsed = parse_iso_date(value) if value else None
    return parsed.strftime(HL7_DATE_FORMAT) if parsed else ""


def to_hl7_timestamp(value: str | None, now: datetime | None = None) -> str:
    """Format an ISO timestamp as YYYYMMDDHHMMSS, defaulting to now (UTC).

    Aware timestamps are converted to UTC first.
    """
    parsed = parse_iso_datetime(value) if value else None
    if parsed is None:
        parsed = now or datetime.now(timezone.utc)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime(HL7_TS_FORMAT)


def from_hl7_date(value: str) -> str | None:
    """HL7 DT (YYYYMMDD, possibly longer) -> ``YYYY-MM-DD``."""
    digits = value.strip()[:8]
    if len(digits) != 8 or not digits.isdigit():
        return None
    try:
        return datetime.strptime(digits, HL7_DATE_FORMAT).date().isoformat()
    except ValueError:
        return None


def from_hl7_timestamp(value: str) -> str | None:
    """HL7 TS (YYYY[MM[DD[HH[MM[SS]]]]] with optional offset) -> ISO string."""
    text = value.strip()
    for sep in ("+", "-"):
        if sep in text[8:]:
            text = text[: 8 + text[8:].index(sep)]
    text = text.split(".")[0]
    if not text.isdigit() or len(text) < 4:
        return None
    padded = text.ljust(14, "0")
    # Month and day default to 01 rather than 00
    if len(text) < 6:
        padded = padded[:4] + "01" + padded[6:]
    if len(text) < 8:
        padded = padded[:6] + "01" + padded[8:]
    try:
        return datetime.strptime(padded[:14], HL7_TS_FORMAT).isoformat()
    except ValueError:
        return None
