"""
Deep link handling: turn an opened URL into a shortlink click.

The handler keeps a plain reference to the session that created it and
never outlives it.
"""

from typing import TYPE_CHECKING

import structlog

from tracking_sdk.core.short_link import ShortLinkDetector

if TYPE_CHECKING:
    from tracking_sdk.session import TrackingSession

logger = structlog.get_logger()


class DeepLinkHandler:
    def __init__(self, session: "TrackingSession", detector: ShortLinkDetector):
        self.session = session
        self.detector = detector

    def handle_deep_link(self, url: str) -> bool:
        """Track a shortlink click for `url` if it carries a shortlink."""
        if self.detector.is_short_link(url):
            logger.debug("deep_link_is_short_link", url=url)
            self.session.track_short_link_click(url, deep_link=url, callback=self._log_response)
            return True

        short_link = self.extract_short_link_from_url(url)
        if short_link:
            logger.debug("deep_link_carries_short_link", url=url, short_link=short_link)
            self.session.track_short_link_click(short_link, deep_link=url, callback=self._log_response)
            return True

        logger.debug("deep_link_without_short_link", url=url)
        return False

    def extract_short_link_from_url(self, url: str) -> str | None:
        """Shortlink from the query (`shortlink`, `utm_source`) or the fragment."""
        return self.detector.extract_short_link_from_referrer(url)

    def process_app_launch_url(self, url: str) -> bool:
        handled = self.handle_deep_link(url)
        logger.debug("app_launch_url_processed", url=url, handled=handled)
        return handled

    @staticmethod
    def _log_response(response: str) -> None:
        logger.debug("short_link_click_tracked", response=response[:500])
