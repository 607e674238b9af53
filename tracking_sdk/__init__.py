"""Inhouse tracking SDK: shortlink attribution and event tracking for apps."""

from tracking_sdk.main import configure_logging, create_session
from tracking_sdk.models.schemas import Event, InstallData, SDKConfig
from tracking_sdk.session import TrackingSession

__all__ = [
    "Event",
    "InstallData",
    "SDKConfig",
    "TrackingSession",
    "configure_logging",
    "create_session",
]
