"""
Event construction and dispatch.

Every event is stamped with:
  - the install's device id (generated once, stable forever)
  - the process's session id
  - wall-clock timestamp in milliseconds
  - device/app descriptors (device, OS, CPU, app version/build, bundle id)
  - a synthesized SDK user agent

Caller data is merged after the descriptors, so a caller key wins over a
descriptor of the same name. ip_address is never set on device.

Events the backend did not accept (network failure or non-2xx) go to the
failed-event log. They are recorded, not retried.
"""

import structlog

from tracking_sdk.api.client import NetworkClient
from tracking_sdk.models.schemas import Event, InstallData, SDKConfig
from tracking_sdk.platform.ports import DeviceInfo, DeviceInfoProvider
from tracking_sdk.storage import StorageManager

logger = structlog.get_logger()

EVENT_APP_OPEN = "app_open"
EVENT_APP_OPEN_SHORTLINK = "app_open_shortlink"
EVENT_SESSION_START = "session_start"
EVENT_SESSION_START_SHORTLINK = "session_start_shortlink"
EVENT_SHORT_LINK_CLICK = "short_link_click"
EVENT_APP_INSTALL = "app_install"


class EventTracker:
    def __init__(
        self,
        network: NetworkClient,
        storage: StorageManager,
        config: SDKConfig,
        device: DeviceInfoProvider,
        session_id: str,
    ):
        self.network = network
        self.storage = storage
        self.config = config
        self.device = device
        self.session_id = session_id

    def user_agent(self, info: DeviceInfo | None = None) -> str:
        info = info or self.device.device_info()
        return f"InhouseTrackingSDK/{self.config.sdk_version} {info.os_name}/{info.os_version}"

    def device_descriptors(self, info: DeviceInfo | None = None) -> dict[str, str]:
        info = info or self.device.device_info()
        return {
            "device": info.name,
            "device_model": info.model,
            "device_vendor": info.vendor,
            "os": info.os_name,
            "os_version": info.os_version,
            "cpu_architecture": info.cpu_architecture,
            "platform": info.os_name,
            "app_version": info.app_version,
            "build_number": info.build_number,
            "bundle_identifier": info.bundle_identifier,
        }

    def create_event(
        self,
        event_type: str,
        short_link: str | None = None,
        deep_link: str | None = None,
        extra: dict[str, str] | None = None,
    ) -> Event:
        info = self.device.device_info()
        merged = self.device_descriptors(info)
        if extra:
            merged.update({str(k): str(v) for k, v in extra.items()})

        return Event(
            event_type=event_type,
            project_id=self.config.project_id,
            project_token=self.config.project_token,
            short_link=short_link,
            deep_link=deep_link,
            device_id=self.storage.get_device_id(),
            session_id=self.session_id,
            extra=merged,
            user_agent=self.user_agent(info),
        )

    async def send(self, event: Event) -> str:
        result = await self.network.send_event(event)
        if not result.delivered:
            self.storage.store_failed_event(event)
        return result.text

    # --- Tracking ---

    async def track_event(
        self,
        event_type: str,
        short_link: str | None = None,
        deep_link: str | None = None,
        extra: dict[str, str] | None = None,
    ) -> str:
        event = self.create_event(event_type, short_link=short_link, deep_link=deep_link, extra=extra)
        logger.debug("event_created", event_type=event_type, short_link=short_link, deep_link=deep_link)
        return await self.send(event)

    async def track_short_link_click(self, short_link: str, deep_link: str | None = None) -> str:
        return await self.track_event(EVENT_SHORT_LINK_CLICK, short_link=short_link, deep_link=deep_link)

    async def track_app_install(self, short_link: str) -> str:
        """Fetch the shortlink's install data, cache it, then send app_install."""
        install_data = await self.network.get_install_data(short_link)
        self.storage.store_install_data(InstallData(short_link=short_link, key_value_pairs=install_data))

        response = await self.track_event(EVENT_APP_INSTALL, short_link=short_link, extra=install_data)
        if self.config.enable_debug_logging:
            logger.debug("app_install_tracked", short_link=short_link, install_data=install_data)
        return response

    async def track_custom_event(
        self,
        event_type: str,
        short_link: str | None = None,
        additional_data: dict[str, str] | None = None,
    ) -> str:
        return await self.track_event(event_type, short_link=short_link, extra=additional_data)
