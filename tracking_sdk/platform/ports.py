"""
Capability interfaces the SDK calls into.

The host application (or a platform binding) supplies implementations for
the OS services the SDK cannot reach on its own: install attribution, the
advertising identifier, device descriptors, and the execution context that
host-visible callbacks must run on.
"""

from dataclasses import dataclass
from typing import Callable, Protocol

# Advertising identifier returned when the user has limited ad tracking
ZERO_ADVERTISING_ID = "00000000-0000-0000-0000-000000000000"


@dataclass(frozen=True)
class DeviceInfo:
    """Snapshot of device and app descriptors."""

    model: str = "unknown"
    name: str = "unknown"
    vendor: str = "Apple"
    os_name: str = "iOS"
    os_version: str = "unknown"
    cpu_architecture: str = "unknown"
    app_version: str = "Unknown"
    build_number: str = "Unknown"
    bundle_identifier: str = "Unknown"

    # Fingerprint signals
    screen_width: int | None = None
    screen_height: int | None = None
    screen_scale: float | None = None
    locale: str | None = None
    language: str | None = None
    timezone: str | None = None
    battery_level: float | None = None
    battery_state: str | None = None
    orientation: str | None = None
    is_low_power_mode: bool | None = None
    is_voice_over_running: bool | None = None
    is_bold_text_enabled: bool | None = None
    uptime_seconds: float | None = None
    has_cellular: bool | None = None  # coarse heuristic, no carrier lookup
    web_user_agent: str | None = None


class AttributionProvider(Protocol):
    async def fetch_attribution(self) -> str | None:
        """Platform install-attribution token, or None when unavailable."""
        ...


class AdvertisingIdProvider(Protocol):
    async def request_advertising_id(self) -> str | None:
        """Ask for tracking consent; the identifier if granted, else None."""
        ...


class DeviceInfoProvider(Protocol):
    def device_info(self) -> DeviceInfo:
        ...


class CallbackExecutor(Protocol):
    def dispatch(self, fn: Callable[..., None], *args) -> None:
        """Run `fn(*args)` on the host's callback context."""
        ...
