"""
Wire and configuration models.

Event is the unit the collection endpoint receives. Field names on the wire
are snake_case aliases (event_type, project_id, shortlink, deep_link, ...);
the Python attribute names stay readable. Every model is frozen: an Event is
built once per tracking call and never mutated afterwards.
"""

import json
import time

from pydantic import BaseModel, ConfigDict, Field, field_validator


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class SDKConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_id: str
    project_token: str
    short_link_domain: str
    server_url: str = "https://api.tryinhouse.com"
    fingerprint_url: str = ""
    enable_debug_logging: bool = False
    session_timeout_minutes: int = 30
    max_retry_attempts: int = 3
    request_timeout_seconds: float = 30.0
    sdk_version: str = "1.0"

    @field_validator("project_id", "project_token", "short_link_domain")
    @classmethod
    def _required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("server_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def fingerprint_endpoint(self) -> str:
        return self.fingerprint_url or f"{self.server_url}/check-fingureprinting"


class Event(BaseModel):
    """One tracked occurrence, ready for the register_event endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_type: str
    project_id: str
    project_token: str
    short_link: str | None = Field(default=None, alias="shortlink")
    deep_link: str | None = None
    timestamp: int = Field(default_factory=now_ms)
    device_id: str
    session_id: str
    extra: dict[str, str] = Field(default_factory=dict)
    user_agent: str | None = None
    ip_address: str | None = None  # never populated on device

    @field_validator("extra", mode="before")
    @classmethod
    def _decode_extra(cls, value):
        # Older payloads carried extra as a JSON-encoded string
        if isinstance(value, str):
            value = json.loads(value) if value else {}
        if value is None:
            return {}
        if not isinstance(value, dict):
            return value
        return {str(k): str(v) for k, v in value.items()}

    def to_wire(self) -> dict:
        """Canonical JSON object for the collection endpoint."""
        return self.model_dump(by_alias=True, exclude_none=True)


class InstallData(BaseModel):
    """Attribution key/value data fetched for the shortlink behind an install."""

    model_config = ConfigDict(frozen=True)

    short_link: str
    key_value_pairs: dict[str, str] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=now_ms)
