"""
Device fingerprint snapshot for last-resort install attribution.

Collects what the device can tell us without special permissions:
  - Hardware: model, screen width/height/scale, CPU architecture
  - Software: OS name + version, app bundle id, version, build
  - Locale: locale, language, timezone
  - State: battery level/state, orientation, low-power mode, uptime
  - Accessibility: VoiceOver, bold text
  - Network: a coarse "has cellular" flag only, never carrier identity
  - Web UA (when the host hands one over): parsed the same way the click
    server parses it at click time, so both sides compare like with like

The snapshot is sent to the fingerprint-matching endpoint, which answers
with the referrer of the click it matched, if any.
"""

from user_agents import parse as parse_ua

from tracking_sdk.models.schemas import now_ms
from tracking_sdk.platform.ports import DeviceInfo


def _parse_web_user_agent(ua_string: str | None) -> dict:
    if not ua_string:
        return {}

    parsed = parse_ua(ua_string)

    if parsed.is_mobile:
        device = "mobile"
    elif parsed.is_tablet:
        device = "tablet"
    elif parsed.is_pc:
        device = "desktop"
    else:
        device = "other"

    return {
        "user_agent": ua_string,
        "ua_device_class": device,
        "ua_os_family": parsed.os.family,
        "ua_os_version": ".".join(str(v) for v in parsed.os.version if v is not None) or None,
        "ua_device_family": parsed.device.family,
    }


def build_fingerprint(info: DeviceInfo, device_id: str | None = None) -> dict:
    """JSON-ready signal snapshot; absent signals are left out."""
    signals = {
        "device_id": device_id,
        "device_model": info.model,
        "device_vendor": info.vendor,
        "os": info.os_name,
        "os_version": info.os_version,
        "cpu_architecture": info.cpu_architecture,
        "bundle_identifier": info.bundle_identifier,
        "app_version": info.app_version,
        "build_number": info.build_number,
        "screen_width": info.screen_width,
        "screen_height": info.screen_height,
        "screen_scale": info.screen_scale,
        "locale": info.locale,
        "language": info.language,
        "timezone": info.timezone,
        "battery_level": info.battery_level,
        "battery_state": info.battery_state,
        "orientation": info.orientation,
        "is_low_power_mode": info.is_low_power_mode,
        "is_voice_over_running": info.is_voice_over_running,
        "is_bold_text_enabled": info.is_bold_text_enabled,
        "uptime_seconds": info.uptime_seconds,
        "has_cellular": info.has_cellular,
        "collected_at": now_ms(),
    }
    signals.update(_parse_web_user_agent(info.web_user_agent))
    return {k: v for k, v in signals.items() if v is not None}
