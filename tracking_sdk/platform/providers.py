"""
Platform provider sets, one per supported platform tier.

Tiers:
  NONE    → no OS integration (tests, server-side hosts): every capability empty
  LEGACY  → OS releases without an install-attribution API
  MODERN  → attribution API + tracking-consent prompt available

select_platform() is called once at startup; the resolver never branches on
OS version itself.
"""

import asyncio
import locale
import platform
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import structlog

from tracking_sdk.platform.ports import (
    AdvertisingIdProvider,
    AttributionProvider,
    CallbackExecutor,
    DeviceInfo,
    DeviceInfoProvider,
)

logger = structlog.get_logger()

_PROCESS_STARTED = time.monotonic()


class PlatformTier(str, Enum):
    NONE = "none"
    LEGACY = "legacy"
    MODERN = "modern"


# --- Capability implementations ---

class UnavailableAttribution:
    """Attribution API not present on this platform tier."""

    async def fetch_attribution(self) -> str | None:
        return None


class NoAdvertisingId:
    async def request_advertising_id(self) -> str | None:
        return None


class StaticAttribution:
    def __init__(self, token: str | None):
        self.token = token

    async def fetch_attribution(self) -> str | None:
        return self.token


class StaticAdvertisingId:
    def __init__(self, advertising_id: str | None, consent_granted: bool = True):
        self.advertising_id = advertising_id
        self.consent_granted = consent_granted

    async def request_advertising_id(self) -> str | None:
        if not self.consent_granted:
            return None
        return self.advertising_id


class StaticDeviceInfo:
    def __init__(self, info: DeviceInfo):
        self.info = info

    def device_info(self) -> DeviceInfo:
        return self.info


class LocalDeviceInfo:
    """Descriptors read from the running interpreter's host."""

    def __init__(self, app_version: str = "Unknown", build_number: str = "Unknown",
                 bundle_identifier: str = "Unknown"):
        self.app_version = app_version
        self.build_number = build_number
        self.bundle_identifier = bundle_identifier

    def device_info(self) -> DeviceInfo:
        lang, _ = locale.getlocale()
        return DeviceInfo(
            model=platform.machine() or "unknown",
            name=platform.node() or "unknown",
            vendor="unknown",
            os_name=platform.system() or "unknown",
            os_version=platform.release() or "unknown",
            cpu_architecture=_cpu_architecture(),
            app_version=self.app_version,
            build_number=self.build_number,
            bundle_identifier=self.bundle_identifier,
            locale=lang,
            language=lang.split("_")[0] if lang else None,
            timezone=time.tzname[0] if time.tzname else None,
            uptime_seconds=round(time.monotonic() - _PROCESS_STARTED, 3),
        )


def _cpu_architecture() -> str:
    machine = platform.machine().lower()
    if machine in ("x86_64", "amd64"):
        return "x86_64"
    if machine in ("arm64", "aarch64"):
        return "arm64"
    if machine.startswith("arm"):
        return "arm"
    return "unknown"


# --- Callback executors ---

class InlineExecutor:
    """Run callbacks immediately on whatever context completed the work."""

    def dispatch(self, fn: Callable[..., None], *args) -> None:
        _safe_call(fn, *args)


class LoopExecutor:
    """Redeliver callbacks onto a host-owned event loop (the "main" context)."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop

    def dispatch(self, fn: Callable[..., None], *args) -> None:
        self.loop.call_soon_threadsafe(_safe_call, fn, *args)


def _safe_call(fn: Callable[..., None], *args) -> None:
    # Host callback errors must not break the tracking pipeline
    try:
        fn(*args)
    except Exception as e:
        logger.error("host_callback_failed", callback=getattr(fn, "__name__", repr(fn)), error=str(e))


# --- Tier selection ---

@dataclass(frozen=True)
class PlatformProviders:
    tier: PlatformTier
    attribution: AttributionProvider
    advertising: AdvertisingIdProvider
    device: DeviceInfoProvider
    executor: CallbackExecutor


def select_platform(
    tier: PlatformTier = PlatformTier.NONE,
    attribution: AttributionProvider | None = None,
    advertising: AdvertisingIdProvider | None = None,
    device: DeviceInfoProvider | None = None,
    executor: CallbackExecutor | None = None,
) -> PlatformProviders:
    """Pick the capability set for a platform tier."""
    tier = PlatformTier(tier)
    device = device or LocalDeviceInfo()
    executor = executor or InlineExecutor()

    if tier is PlatformTier.NONE:
        providers = PlatformProviders(tier, UnavailableAttribution(), NoAdvertisingId(), device, executor)
    elif tier is PlatformTier.LEGACY:
        providers = PlatformProviders(
            tier, UnavailableAttribution(), advertising or NoAdvertisingId(), device, executor,
        )
    else:
        providers = PlatformProviders(
            tier,
            attribution or UnavailableAttribution(),
            advertising or NoAdvertisingId(),
            device,
            executor,
        )

    logger.debug("platform_selected", tier=tier.value,
                 attribution=type(providers.attribution).__name__,
                 advertising=type(providers.advertising).__name__)
    return providers
