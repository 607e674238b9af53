"""
HTTP client for the collection backend.

Endpoints:
  POST {server}/api/clicks/register_event?project_id=&project_token=[&shortlink=]
  GET  {server}/install-data?shortlink=&project_id=&project_token=
  POST {fingerprint endpoint}   (device-signal JSON → {"referrer": ...})

Only network-level failures (DNS, connect, timeout, reset) and payload
encode/decode failures are turned into a local error payload. Any completed
HTTP exchange hands back the server's body text as-is, whatever the status.
Nothing in this module raises to its caller.
"""

import json
from dataclasses import dataclass

import httpx
import structlog

from tracking_sdk.models.schemas import Event, SDKConfig

logger = structlog.get_logger()

REGISTER_EVENT_PATH = "/api/clicks/register_event"
INSTALL_DATA_PATH = "/install-data"


def error_payload(message: str) -> str:
    """Locally synthesized response body for exchanges that never completed."""
    return json.dumps({"status": "error", "message": message})


@dataclass(frozen=True)
class DeliveryResult:
    text: str
    status_code: int | None = None  # None = no HTTP exchange happened

    @property
    def delivered(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


class NetworkClient:
    def __init__(self, config: SDKConfig, http_client: httpx.AsyncClient | None = None):
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def user_agent(self) -> str:
        return f"InhouseTrackingSDK/{self.config.sdk_version}"

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.request_timeout_seconds),
                headers={"User-Agent": self.user_agent},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # --- Event registration ---

    def event_params(self, event: Event) -> dict:
        params = {
            "project_id": self.config.project_id,
            "project_token": self.config.project_token,
        }
        if event.short_link:
            params["shortlink"] = event.short_link
        return params

    async def send_event(self, event: Event) -> DeliveryResult:
        """POST one event; the body text of any completed exchange comes back."""
        try:
            body = json.dumps(event.to_wire())
        except (TypeError, ValueError) as e:
            logger.error("event_encode_failed", event_type=event.event_type, error=str(e))
            return DeliveryResult(error_payload("Failed to encode event"))

        url = f"{self.config.server_url}{REGISTER_EVENT_PATH}"
        logger.debug("event_sending", url=url, event_type=event.event_type,
                     short_link=event.short_link, extra=event.extra)

        try:
            response = await self._http().post(
                url,
                params=self.event_params(event),
                content=body,
                headers={"Content-Type": "application/json", "User-Agent": self.user_agent},
                timeout=self.config.request_timeout_seconds,
            )
        except httpx.RequestError as e:
            logger.error("event_send_network_error", event_type=event.event_type, error=str(e))
            return DeliveryResult(error_payload(str(e) or type(e).__name__))

        result = DeliveryResult(response.text, response.status_code)
        if result.delivered:
            logger.info("event_sent", event_type=event.event_type, status=response.status_code)
        else:
            logger.warning("event_rejected", event_type=event.event_type,
                           status=response.status_code, body=response.text[:500])
        return result

    # --- Install data ---

    async def get_install_data(self, short_link: str) -> dict[str, str]:
        """Attribution key/values for a shortlink; empty on any failure."""
        url = f"{self.config.server_url}{INSTALL_DATA_PATH}"
        params = {
            "shortlink": short_link,
            "project_id": self.config.project_id,
            "project_token": self.config.project_token,
        }

        try:
            response = await self._http().get(
                url,
                params=params,
                headers={"User-Agent": self.user_agent},
                timeout=self.config.request_timeout_seconds,
            )
        except httpx.RequestError as e:
            logger.error("install_data_network_error", short_link=short_link, error=str(e))
            return {}

        if not response.is_success:
            logger.error("install_data_failed", short_link=short_link, status=response.status_code)
            return {}

        try:
            data = response.json()
        except ValueError as e:
            logger.error("install_data_parse_failed", short_link=short_link, error=str(e))
            return {}

        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            logger.error("install_data_not_string_map", short_link=short_link)
            return {}

        logger.debug("install_data_received", short_link=short_link, keys=list(data))
        return data

    # --- Fingerprint matching ---

    async def check_fingerprint(self, signals: dict) -> str | None:
        """Submit device signals; the matched referrer, if the server found one."""
        url = self.config.fingerprint_endpoint
        try:
            body = json.dumps(signals)
        except (TypeError, ValueError) as e:
            logger.error("fingerprint_encode_failed", error=str(e))
            return None

        try:
            response = await self._http().post(
                url,
                content=body,
                headers={"Content-Type": "application/json", "User-Agent": self.user_agent},
                timeout=self.config.request_timeout_seconds,
            )
        except httpx.RequestError as e:
            logger.error("fingerprint_network_error", error=str(e))
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.error("fingerprint_parse_failed", status=response.status_code, error=str(e))
            return None

        referrer = data.get("referrer") if isinstance(data, dict) else None
        if not isinstance(referrer, str) or not referrer:
            logger.info("fingerprint_no_match", status=response.status_code)
            return None

        logger.info("fingerprint_matched", referrer=referrer)
        return referrer
