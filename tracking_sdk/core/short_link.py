"""
Shortlink detection: recognise a shortlink and pull out its token.

A shortlink can reach the app in three encodings, depending on how the app
was opened:
  1. The URL itself is on the shortlink domain (cold launch, universal link)
  2. A `shortlink` query parameter (forwarded through a redirect chain)
  3. A `shortlink=` pair in the fragment (web-to-app handoff)

Install referrers add a fourth: a `utm_source` whose value contains the
shortlink domain. Referrers may also arrive as a bare `k=v&k2=v2` string
rather than a URL; those are read as a query string.

Unparsable input is never an error here, it is simply "not a shortlink".
"""

from urllib.parse import ParseResult, parse_qsl, unquote, urlparse

import structlog

logger = structlog.get_logger()

SHORTLINK_PARAM = "shortlink"
UTM_SOURCE_PARAM = "utm_source"


def _parse(url: str) -> ParseResult | None:
    if not url or not url.strip():
        return None
    try:
        parsed = urlparse(url.strip())
        # Touch hostname so bracketed-host errors surface here
        parsed.hostname
    except ValueError:
        return None
    return parsed


def _query_param(parsed: ParseResult, name: str) -> str | None:
    """First non-empty query value whose name matches case-insensitively."""
    query = parsed.query
    if not query and not parsed.netloc and "=" in parsed.path:
        # Bare "k=v&k2=v2" referrer string
        query = parsed.path
    for key, value in parse_qsl(query, keep_blank_values=True):
        if key.lower() == name and value:
            return value
    return None


def _fragment_param(parsed: ParseResult, name: str) -> str | None:
    if not parsed.fragment:
        return None
    for component in parsed.fragment.split("&"):
        parts = component.split("=")
        if len(parts) == 2 and parts[0].lower() == name and parts[1]:
            return unquote(parts[1])
    return None


class ShortLinkDetector:
    def __init__(self, short_link_domain: str):
        self.short_link_domain = short_link_domain.strip()

    def _host_matches(self, parsed: ParseResult) -> bool:
        host = (parsed.hostname or "").lower()
        return bool(host) and self.short_link_domain.lower() in host

    def is_short_link(self, url: str) -> bool:
        """True iff the URL's host contains the shortlink domain."""
        parsed = _parse(url)
        if parsed is None:
            logger.debug("invalid_url", url=url)
            return False
        result = self._host_matches(parsed)
        logger.debug("is_short_link", host=parsed.hostname, domain=self.short_link_domain, result=result)
        return result

    def extract_short_link(self, url: str) -> str | None:
        """The shortlink carried by a URL: itself, its query, or its fragment."""
        parsed = _parse(url)
        if parsed is None:
            logger.debug("invalid_url", url=url)
            return None

        if self._host_matches(parsed):
            logger.debug("short_link_extracted", source="host", short_link=url)
            return url

        short_link = _query_param(parsed, SHORTLINK_PARAM)
        if short_link:
            logger.debug("short_link_extracted", source="query", short_link=short_link)
            return short_link

        short_link = _fragment_param(parsed, SHORTLINK_PARAM)
        if short_link:
            logger.debug("short_link_extracted", source="fragment", short_link=short_link)
            return short_link

        logger.debug("short_link_not_found", url=url)
        return None

    def extract_short_link_from_utm_source(self, url: str) -> str | None:
        """A utm_source value that points at the shortlink domain."""
        parsed = _parse(url)
        if parsed is None:
            return None
        utm_source = _query_param(parsed, UTM_SOURCE_PARAM)
        if utm_source and self.short_link_domain in utm_source:
            logger.debug("short_link_extracted", source="utm_source", short_link=utm_source)
            return utm_source
        return None

    def extract_short_link_from_referrer(self, referrer: str) -> str | None:
        """Like extract_short_link, plus the utm_source encoding."""
        parsed = _parse(referrer)
        if parsed is None:
            logger.debug("invalid_referrer", referrer=referrer)
            return None

        if self._host_matches(parsed):
            return referrer

        short_link = _query_param(parsed, SHORTLINK_PARAM)
        if short_link:
            logger.debug("short_link_extracted", source="referrer_query", short_link=short_link)
            return short_link

        short_link = self.extract_short_link_from_utm_source(referrer)
        if short_link:
            return short_link

        short_link = _fragment_param(parsed, SHORTLINK_PARAM)
        if short_link:
            logger.debug("short_link_extracted", source="referrer_fragment", short_link=short_link)
            return short_link

        logger.debug("short_link_not_found_in_referrer", referrer=referrer)
        return None
