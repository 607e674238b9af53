"""
Inhouse tracking SDK composition root.

The host builds one TrackingSession at launch (create_session, or the
process-wide get_session) and passes it to every call site.
"""

import asyncio
import logging
from functools import lru_cache

import httpx
import structlog

from tracking_sdk.config import get_settings
from tracking_sdk.platform.providers import PlatformProviders
from tracking_sdk.session import TrackingSession
from tracking_sdk.storage import StorageManager


def configure_logging(debug: bool | None = None) -> None:
    """Console output with debug events when debugging, JSON lines otherwise."""
    if debug is None:
        debug = get_settings().debug
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if debug else logging.INFO),
        cache_logger_on_first_use=False,
    )


def create_session(
    providers: PlatformProviders | None = None,
    storage: StorageManager | None = None,
    http_client: httpx.AsyncClient | None = None,
    debug: bool | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> TrackingSession:
    """Build a session. Hosts without a running event loop pass the `loop` that SDK work runs on."""
    configure_logging(debug)
    return TrackingSession(providers=providers, storage=storage, http_client=http_client, loop=loop)


@lru_cache
def get_session(loop: asyncio.AbstractEventLoop | None = None) -> TrackingSession:
    """The process-wide session, built on first access."""
    return create_session(loop=loop)
