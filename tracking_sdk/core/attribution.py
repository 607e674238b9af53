"""
Install attribution: where did this install come from?

Priority chain (fingerprinting is LAST RESORT):
  1. Stored referrer from an earlier resolution (no network at all)
  2. Platform install-attribution API (absent on some platform tiers)
  3. Advertising identifier, only with user consent, never the all-zero value
  4. Device fingerprint matched server-side

The first step that yields a value wins and is persisted (step 1 already is).
If every step comes back empty the outcome is None and nothing is stored;
that is a normal result, not an error.
"""

from dataclasses import dataclass
from enum import Enum

import structlog

from tracking_sdk.api.client import NetworkClient
from tracking_sdk.core.fingerprint import build_fingerprint
from tracking_sdk.platform.ports import ZERO_ADVERTISING_ID
from tracking_sdk.platform.providers import PlatformProviders
from tracking_sdk.storage import StorageManager

logger = structlog.get_logger()


class AttributionSource(str, Enum):
    STORED = "stored"
    PLATFORM = "platform_attribution"
    ADVERTISING_ID = "advertising_identifier"
    FINGERPRINT = "device_fingerprint"


@dataclass(frozen=True)
class Attribution:
    referrer: str
    source: AttributionSource


class InstallReferrerManager:
    def __init__(self, storage: StorageManager, network: NetworkClient, providers: PlatformProviders):
        self.storage = storage
        self.network = network
        self.providers = providers

    async def resolve(self) -> Attribution | None:
        """Walk the fallback chain; the first usable referrer, or None."""

        # --- 1. Stored referrer ---
        stored = self.storage.get_install_referrer()
        if stored:
            logger.debug("install_referrer_stored", referrer=stored)
            return Attribution(stored, AttributionSource.STORED)

        # --- 2. Platform attribution ---
        referrer = await self._platform_attribution()
        if referrer:
            return self._persist(referrer, AttributionSource.PLATFORM)

        # --- 3. Advertising identifier ---
        referrer = await self._advertising_id()
        if referrer:
            return self._persist(referrer, AttributionSource.ADVERTISING_ID)

        # --- 4. Device fingerprint ---
        referrer = await self._fingerprint()
        if referrer:
            return self._persist(referrer, AttributionSource.FINGERPRINT)

        logger.info("attribution_exhausted")
        return None

    async def get_install_referrer(self) -> str | None:
        attribution = await self.resolve()
        return attribution.referrer if attribution else None

    def store_install_referrer(self, referrer: str) -> None:
        logger.debug("install_referrer_store", referrer=referrer)
        self.storage.store_install_referrer(referrer)

    def process_app_store_attribution(self, attribution_data: dict) -> str | None:
        """Record a store attribution payload; returns the referrer stored."""
        logger.debug("app_store_attribution", keys=list(attribution_data))

        referrer = None
        campaign_id = attribution_data.get("campaign_id")
        if campaign_id:
            referrer = f"campaign_id={campaign_id}"
            self.storage.store_install_referrer(referrer)
            logger.info("campaign_attributed", campaign_id=campaign_id)

        ad_group_id = attribution_data.get("ad_group_id")
        if ad_group_id:
            logger.debug("ad_group_attributed", ad_group_id=ad_group_id)

        return referrer

    # --- Steps ---

    def _persist(self, referrer: str, source: AttributionSource) -> Attribution:
        self.storage.store_install_referrer(referrer)
        logger.info("install_referrer_resolved", source=source.value, referrer=referrer)
        return Attribution(referrer, source)

    async def _platform_attribution(self) -> str | None:
        try:
            token = await self.providers.attribution.fetch_attribution()
        except Exception as e:
            logger.warning("platform_attribution_failed", error=str(e))
            return None
        return token or None

    async def _advertising_id(self) -> str | None:
        try:
            advertising_id = await self.providers.advertising.request_advertising_id()
        except Exception as e:
            logger.warning("advertising_id_failed", error=str(e))
            return None

        if not advertising_id or advertising_id == ZERO_ADVERTISING_ID:
            logger.debug("advertising_id_unavailable")
            return None
        return f"idfa={advertising_id}"

    async def _fingerprint(self) -> str | None:
        try:
            info = self.providers.device.device_info()
        except Exception as e:
            logger.warning("device_info_failed", error=str(e))
            return None

        signals = build_fingerprint(info, device_id=self.storage.get_device_id())
        return await self.network.check_fingerprint(signals)
