"""
TrackingSession: the SDK's public surface.

Lifecycle:
  UNINITIALIZED → initialize() → INITIALIZING (config + components) → READY

On READY the app-launch sequence runs in the background:
  a. First install: resolve the install referrer, and if it carries a
     shortlink track the install and notify the host under
     "app_install_from_shortlink". The first-install flag is marked
     complete whatever the outcome.
  b. Launch URL: if it is a shortlink, a cold launch tracks a shortlink click
     and a shortlink session start ("shortlink_click",
     "session_start_from_shortlink"); a resume only tracks an app open
     ("shortlink_click").

Every tracking method returns immediately with a future for the server's
response text. Host callbacks (the global channel and per-call completions)
are handed to the platform's CallbackExecutor so UI-touching code lands on
the host's main context. Storage writes happen wherever the network
completes.
"""

import asyncio
import uuid
from enum import Enum
from typing import Awaitable, Callable

import httpx
import structlog

from tracking_sdk.api.client import NetworkClient, error_payload
from tracking_sdk.config import get_settings
from tracking_sdk.core.attribution import InstallReferrerManager
from tracking_sdk.core.deep_link import DeepLinkHandler
from tracking_sdk.core.events import (
    EVENT_APP_OPEN,
    EVENT_APP_OPEN_SHORTLINK,
    EVENT_SESSION_START,
    EVENT_SESSION_START_SHORTLINK,
    EventTracker,
)
from tracking_sdk.core.short_link import ShortLinkDetector
from tracking_sdk.models.schemas import Event, InstallData, SDKConfig
from tracking_sdk.platform.providers import PlatformProviders, select_platform
from tracking_sdk.storage import StorageManager

logger = structlog.get_logger()

TAG_APP_INSTALL = "app_install_from_shortlink"
TAG_SHORTLINK_CLICK = "shortlink_click"
TAG_SESSION_START = "session_start_from_shortlink"

SDKCallback = Callable[[str, str], None]
Completion = Callable[[str], None]


class SDKState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class TrackingSession:
    def __init__(
        self,
        providers: PlatformProviders | None = None,
        storage: StorageManager | None = None,
        http_client: httpx.AsyncClient | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.session_id = str(uuid.uuid4())
        self.state = SDKState.UNINITIALIZED
        self.providers = providers or select_platform()

        self.config: SDKConfig | None = None
        self.storage = storage
        self.network: NetworkClient | None = None
        self.event_tracker: EventTracker | None = None
        self.short_link_detector: ShortLinkDetector | None = None
        self.referrer_manager: InstallReferrerManager | None = None
        self.deep_link_handler: DeepLinkHandler | None = None

        self._http_client = http_client
        self._loop = loop
        self._callback: SDKCallback | None = None
        self._tasks: set[asyncio.Task] = set()

    # =====================================================================
    #  Initialization
    # =====================================================================

    def initialize(
        self,
        project_id: str,
        project_token: str,
        short_link_domain: str,
        server_url: str | None = None,
        enable_debug_logging: bool | None = None,
        callback: SDKCallback | None = None,
        launch_url: str | None = None,
        **options,
    ):
        """Configure the SDK and start the app-launch sequence.

        Calling this again replaces all state. Returns the future of the
        launch sequence; nothing waits on it. Without an event loop to run
        on, the launch is not scheduled, None is returned and the session
        stays INITIALIZING.
        """
        settings = get_settings()
        self.state = SDKState.INITIALIZING
        self.config = SDKConfig(
            project_id=project_id,
            project_token=project_token,
            short_link_domain=short_link_domain,
            server_url=server_url or settings.server_url,
            fingerprint_url=options.pop("fingerprint_url", settings.fingerprint_url),
            enable_debug_logging=settings.debug if enable_debug_logging is None else enable_debug_logging,
            session_timeout_minutes=options.pop("session_timeout_minutes", settings.session_timeout_minutes),
            max_retry_attempts=options.pop("max_retry_attempts", settings.max_retry_attempts),
            request_timeout_seconds=options.pop("request_timeout_seconds", settings.request_timeout_seconds),
            sdk_version=options.pop("sdk_version", settings.sdk_version),
        )
        if options:
            logger.warning("unknown_initialize_options", options=sorted(options))
        self._callback = callback

        if self.config.enable_debug_logging:
            from tracking_sdk.main import configure_logging
            configure_logging(debug=True)

        self._initialize_components()
        launch = self._spawn(self._handle_app_launch(launch_url))
        if launch is None:
            logger.error("sdk_launch_not_scheduled", project_id=self.config.project_id)
            return None
        self.state = SDKState.READY

        logger.info("sdk_initialized",
                    project_id=self.config.project_id,
                    domain=self.config.short_link_domain,
                    server_url=self.config.server_url,
                    tier=self.providers.tier.value,
                    session_id=self.session_id)
        return launch

    def _initialize_components(self) -> None:
        config = self.config
        if self.storage is None:
            self.storage = StorageManager()
        if self.network is None:
            self.network = NetworkClient(config, http_client=self._http_client)
        else:
            # One HTTP client for the session lifetime
            self.network.config = config
        self.event_tracker = EventTracker(
            self.network, self.storage, config, self.providers.device, self.session_id,
        )
        self.short_link_detector = ShortLinkDetector(config.short_link_domain)
        self.referrer_manager = InstallReferrerManager(self.storage, self.network, self.providers)
        self.deep_link_handler = DeepLinkHandler(self, self.short_link_detector)
        logger.debug("components_initialized")

    @property
    def is_ready(self) -> bool:
        return self.state is SDKState.READY

    # =====================================================================
    #  Task plumbing
    # =====================================================================

    def _spawn(self, coro: Awaitable):
        """Schedule `coro` without blocking; returns its future, or None without a loop."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and (self._loop is None or self._loop is running):
            task = running.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return task

        if self._loop is not None:
            return asyncio.run_coroutine_threadsafe(self._tracked(coro), self._loop)

        coro.close()
        logger.error("no_event_loop", hint="pass loop= or call from a running event loop")
        return None

    async def _tracked(self, coro: Awaitable):
        task = asyncio.current_task()
        self._tasks.add(task)
        try:
            return await coro
        finally:
            self._tasks.discard(task)

    async def drain(self) -> None:
        """Wait until every in-flight tracking task has finished."""
        current = asyncio.current_task()
        while True:
            pending = [t for t in self._tasks if t is not current and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self.network is not None:
            await self.network.aclose()

    def _notify(self, tag: str, response: str) -> None:
        logger.debug("sdk_callback", tag=tag)
        if self._callback is not None:
            self.providers.executor.dispatch(self._callback, tag, response)

    async def _track(
        self,
        name: str,
        action: Callable[[EventTracker], Awaitable[str]],
        callback: Completion | None,
    ) -> str:
        if self.event_tracker is None:
            logger.error("sdk_not_initialized", call=name)
            response = error_payload("SDK not initialized")
        else:
            response = await action(self.event_tracker)
        logger.debug("track_completed", call=name, response=response[:500])
        if callback is not None:
            self.providers.executor.dispatch(callback, response)
        return response

    # =====================================================================
    #  Tracking API
    # =====================================================================

    def track_app_open(self, short_link: str | None = None, callback: Completion | None = None):
        logger.debug("track_app_open", short_link=short_link)
        return self._spawn(self._track(
            "track_app_open",
            lambda t: t.track_event(EVENT_APP_OPEN, short_link=short_link),
            callback,
        ))

    def track_app_open_from_short_link(self, short_link: str, callback: Completion | None = None):
        logger.debug("track_app_open_from_short_link", short_link=short_link)
        return self._spawn(self._track(
            "track_app_open_from_short_link",
            lambda t: t.track_event(EVENT_APP_OPEN_SHORTLINK, short_link=short_link),
            callback,
        ))

    def track_session_start(self, short_link: str | None = None, callback: Completion | None = None):
        logger.debug("track_session_start", short_link=short_link)
        return self._spawn(self._track(
            "track_session_start",
            lambda t: t.track_event(EVENT_SESSION_START, short_link=short_link),
            callback,
        ))

    def track_session_start_from_short_link(self, short_link: str, callback: Completion | None = None):
        logger.debug("track_session_start_from_short_link", short_link=short_link)
        return self._spawn(self._track(
            "track_session_start_from_short_link",
            lambda t: t.track_event(EVENT_SESSION_START_SHORTLINK, short_link=short_link),
            callback,
        ))

    def track_short_link_click(
        self, short_link: str, deep_link: str | None = None, callback: Completion | None = None,
    ):
        logger.debug("track_short_link_click", short_link=short_link, deep_link=deep_link)
        return self._spawn(self._track(
            "track_short_link_click",
            lambda t: t.track_short_link_click(short_link, deep_link),
            callback,
        ))

    def track_app_install_from_short_link(self, short_link: str, callback: Completion | None = None):
        logger.debug("track_app_install_from_short_link", short_link=short_link)
        return self._spawn(self._track(
            "track_app_install_from_short_link",
            lambda t: t.track_app_install(short_link),
            callback,
        ))

    def track_custom_event(
        self,
        event_type: str,
        short_link: str | None = None,
        additional_data: dict[str, str] | None = None,
        callback: Completion | None = None,
    ):
        logger.debug("track_custom_event", event_type=event_type, short_link=short_link)
        return self._spawn(self._track(
            "track_custom_event",
            lambda t: t.track_custom_event(event_type, short_link, additional_data),
            callback,
        ))

    # =====================================================================
    #  Host lifecycle
    # =====================================================================

    def on_app_resume(self, url: str | None = None):
        """Foreground re-entry; `url` is the link the app was resumed with."""
        logger.debug("on_app_resume", url=url)
        return self._spawn(self._check_for_short_link_open(url, is_app_resume=True))

    def on_new_url(self, url: str | None):
        """A URL opened or continued while the app was already running."""
        logger.debug("on_new_url", url=url)
        return self._spawn(self._check_for_short_link_open(url, is_app_resume=True))

    def handle_deep_link(self, url: str) -> bool:
        if self.deep_link_handler is None:
            logger.error("sdk_not_initialized", call="handle_deep_link")
            return False
        return self.deep_link_handler.handle_deep_link(url)

    async def _handle_app_launch(self, launch_url: str | None) -> None:
        first_install = self.storage.is_first_install()
        steps = [self._check_for_short_link_open(launch_url, is_app_resume=False)]
        if first_install:
            logger.info("first_install_detected")
            steps.append(self._handle_first_install())
        else:
            logger.debug("first_install_skipped")
        await asyncio.gather(*steps)

    async def _handle_first_install(self) -> None:
        try:
            referrer = await self.referrer_manager.get_install_referrer()
        except Exception as e:
            logger.error("install_referrer_failed", error=str(e))
            referrer = None

        short_link = None
        if referrer:
            short_link = self.short_link_detector.extract_short_link_from_referrer(referrer)
            if not short_link:
                logger.debug("install_referrer_has_no_short_link", referrer=referrer)
        else:
            logger.debug("install_referrer_unavailable")

        # Mark before sending so a slow send cannot trigger a second attribution
        self.storage.set_first_install_complete()

        if short_link:
            logger.info("install_from_short_link", short_link=short_link)
            response = await self._track(
                "track_app_install_from_short_link",
                lambda t: t.track_app_install(short_link),
                None,
            )
            self._notify(TAG_APP_INSTALL, response)

    async def _check_for_short_link_open(self, url: str | None, is_app_resume: bool) -> None:
        if not url or not self.short_link_detector or not self.short_link_detector.is_short_link(url):
            logger.debug("no_short_link_in_url", url=url)
            return

        logger.info("opened_from_short_link", short_link=url, resume=is_app_resume)

        if is_app_resume:
            # Re-engagement only, not a fresh acquisition
            response = await self._track(
                "track_app_open_from_short_link",
                lambda t: t.track_event(EVENT_APP_OPEN_SHORTLINK, short_link=url),
                None,
            )
            self._notify(TAG_SHORTLINK_CLICK, response)
            return

        async def click():
            response = await self._track(
                "track_short_link_click", lambda t: t.track_short_link_click(url, url), None,
            )
            self._notify(TAG_SHORTLINK_CLICK, response)

        async def session_start():
            response = await self._track(
                "track_session_start_from_short_link",
                lambda t: t.track_event(EVENT_SESSION_START_SHORTLINK, short_link=url),
                None,
            )
            self._notify(TAG_SESSION_START, response)

        await asyncio.gather(click(), session_start())

    # =====================================================================
    #  Utilities
    # =====================================================================

    def get_session_id(self) -> str:
        return self.session_id

    def get_device_id(self) -> str:
        return self.storage.get_device_id() if self.storage else ""

    def get_install_referrer(self) -> str | None:
        return self.storage.get_install_referrer() if self.storage else None

    def fetch_install_referrer(self, callback: Callable[[str | None], None] | None = None):
        """Run the attribution chain; the referrer (or None) arrives via the future."""

        async def fetch() -> str | None:
            if self.referrer_manager is None:
                logger.error("sdk_not_initialized", call="fetch_install_referrer")
                referrer = None
            else:
                referrer = await self.referrer_manager.get_install_referrer()
            if callback is not None:
                self.providers.executor.dispatch(callback, referrer)
            return referrer

        return self._spawn(fetch())

    def process_app_store_attribution(self, attribution_data: dict) -> str | None:
        if self.referrer_manager is None:
            logger.error("sdk_not_initialized", call="process_app_store_attribution")
            return None
        return self.referrer_manager.process_app_store_attribution(attribution_data)

    def get_install_data(self) -> InstallData | None:
        return self.storage.get_install_data() if self.storage else None

    def failed_events(self) -> list[Event]:
        return self.storage.get_failed_events() if self.storage else []

    def clear_failed_events(self) -> None:
        if self.storage:
            self.storage.clear_failed_events()

    # --- Testing helpers ---

    def reset_first_install(self) -> None:
        logger.debug("reset_first_install")
        if self.storage:
            self.storage.reset_first_install()

    def debug_first_install_state(self) -> dict:
        return self.storage.debug_first_install_state() if self.storage else {}
