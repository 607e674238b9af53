"""Tests for device fingerprint signal collection."""

from tracking_sdk.core.fingerprint import build_fingerprint
from tracking_sdk.platform.ports import DeviceInfo

IPHONE_SAFARI = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1"
)


def test_core_signals(device_info):
    signals = build_fingerprint(device_info, device_id="dev-1")

    assert signals["device_id"] == "dev-1"
    assert signals["device_model"] == "iPhone15,2"
    assert signals["os"] == "iOS"
    assert signals["os_version"] == "17.4"
    assert signals["screen_width"] == 393
    assert signals["screen_height"] == 852
    assert signals["timezone"] == "America/New_York"
    assert signals["has_cellular"] is True
    assert isinstance(signals["collected_at"], int)


def test_absent_signals_left_out():
    signals = build_fingerprint(DeviceInfo())

    assert "device_id" not in signals
    assert "screen_width" not in signals
    assert "battery_level" not in signals
    assert "user_agent" not in signals
    assert signals["device_model"] == "unknown"


def test_no_carrier_identity(device_info):
    signals = build_fingerprint(device_info)
    assert not any("carrier" in key for key in signals)


def test_web_user_agent_parsed():
    signals = build_fingerprint(DeviceInfo(web_user_agent=IPHONE_SAFARI))

    assert signals["user_agent"] == IPHONE_SAFARI
    assert signals["ua_device_class"] == "mobile"
    assert signals["ua_os_family"] == "iOS"
    assert signals["ua_os_version"].startswith("17")
    assert signals["ua_device_family"] == "iPhone"
