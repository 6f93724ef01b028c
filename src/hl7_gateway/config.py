"""Gateway settings, range-checked by pydantic and overridable from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_PREFIX = "HL7GW_"


class GatewaySettings(BaseModel):
    """Conversion and transmission knobs. Out-of-range values raise ``ValidationError``."""

    model_config = ConfigDict(frozen=True)

    default_timeout_seconds: float = Field(default=30, ge=1, le=300)
    max_retry_attempts: int = Field(default=3, ge=0, le=10)
    retry_delay_seconds: float = Field(default=5, ge=0, le=60)
    max_message_size_bytes: int = Field(default=1_048_576, ge=1024, le=10_485_760)
    max_concurrent_transmissions: int = Field(default=10, ge=1, le=100)
    audit_logging_enabled: bool = True
    retry_on_timeout: bool = True
    retry_on_status_codes: frozenset[int] = Field(
        default=frozenset({408, 429, 500, 502, 503, 504}),
        description="HTTP status codes whose REJECTED result is worth retrying",
    )
    allow_empty_observations: bool = False
    sending_application: str = Field(default="HL7GATEWAY", min_length=1, max_length=180)
    log_level: str = "INFO"

    @field_validator("retry_on_status_codes", mode="before")
    @classmethod
    def _split_codes(cls, value: object) -> object:
        if isinstance(value, str):
            return frozenset(int(code) for code in value.split(",") if code.strip())
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def total_attempts(self) -> int:
        """Attempts per request; zero retries still means one attempt."""
        return max(1, self.max_retry_attempts)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GatewaySettings":
        """Build settings from ``HL7GW_*`` variables; unset ones keep their defaults."""
        env = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw.strip():
                values[name] = raw.strip()
        return cls(**values)
