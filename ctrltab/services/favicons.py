"""Favicon lookup for links.

Private hosts (``localhost``, loopback, RFC 1918) are scraped directly for a
``<link rel="icon">`` tag and never sent to the public service. Public hosts
get a deferred URL on the public favicon service that the browser fetches
itself, so no request leaves the server for them. A scrape follows redirects
only while they stay on a private host.

The HTML scan is a pair of regular expressions, not a parser. Known misses:
unquoted attribute values, ``rel`` lists such as ``"apple-touch-icon icon"``
and tags split across a comment. Those pages end up with no favicon, which
the UI already handles.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import time
from urllib.parse import quote, urljoin, urlsplit

import httpx

log = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "CtrlTab/1.0",
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
}

DEFAULT_SERVICE_URL = "https://www.google.com/s2/favicons?domain={host}&sz=32"

PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
)

MAX_REDIRECTS = 5

_REL_ICON = r"""\srel\s*=\s*["'](?:shortcut\s+)?icon["']"""
_HREF = r"""\shref\s*=\s*["']([^"']+)["']"""

ICON_LINK_PATTERNS = (
    re.compile(rf"<link\b[^>]*{_REL_ICON}[^>]*{_HREF}[^>]*>", re.IGNORECASE),
    re.compile(rf"<link\b[^>]*{_HREF}[^>]*{_REL_ICON}[^>]*>", re.IGNORECASE),
)


def is_private_host(hostname: str | None) -> bool:
    if not hostname:
        return False
    hostname = hostname.strip("[]").lower()
    if hostname == "localhost":
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return any(address in network for network in PRIVATE_NETWORKS)


def is_private_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme.lower() in {"http", "https"} and is_private_host(parts.hostname)


def find_icon_href(html: str) -> str | None:
    for pattern in ICON_LINK_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1).strip()
    return None


class FaviconResolver:
    def __init__(
        self,
        timeout: float = 2.0,
        max_bytes: int = 512 * 1024,
        service_url: str = DEFAULT_SERVICE_URL,
        transport: httpx.BaseTransport | None = None,
    ):
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.service_url = service_url
        self.transport = transport

    def resolve(self, site_url: str | None, explicit: str | None = None) -> str | None:
        """Return a favicon reference for ``site_url`` or ``None``.

        A non-empty ``explicit`` value is returned untouched. Never raises.
        """
        if isinstance(explicit, str) and explicit.strip():
            return explicit

        try:
            parts = urlsplit((site_url or "").strip())
            hostname = parts.hostname
        except ValueError:
            log.debug("favicon: unparseable url %r", site_url)
            return None
        if parts.scheme.lower() not in {"http", "https"} or not hostname:
            log.debug("favicon: unsupported url %r", site_url)
            return None

        if is_private_host(hostname):
            return self.scrape(parts.geturl())
        return self.service_url.format(host=quote(hostname, safe=""))

    def scrape(self, page_url: str) -> str | None:
        try:
            fetched = self._fetch_html(page_url)
        except Exception as exc:
            log.debug("favicon: fetch of %s failed: %s", page_url, exc)
            return None
        if fetched is None:
            return None
        html, final_url = fetched
        href = find_icon_href(html)
        if not href:
            log.debug("favicon: no icon link on %s", final_url)
            return None
        return urljoin(final_url, href)

    def _fetch_html(self, page_url: str) -> tuple[str, str] | None:
        """Fetch ``page_url`` within ``self.timeout`` seconds overall.

        Redirects are followed by hand so every hop gets only the time left
        and can be checked against the private ranges. Returns the decoded
        page and the url it was read from.
        """
        deadline = time.monotonic() + self.timeout
        url = page_url
        with httpx.Client(
            follow_redirects=False,
            headers=DEFAULT_HEADERS,
            transport=self.transport,
        ) as client:
            for _ in range(MAX_REDIRECTS + 1):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    log.debug("favicon: %s ran out of time", page_url)
                    return None
                with client.stream(
                    "GET", url, timeout=httpx.Timeout(remaining)
                ) as response:
                    if response.is_redirect:
                        url = urljoin(str(response.url), response.headers["location"])
                        if not is_private_url(url):
                            log.debug(
                                "favicon: %s redirects off the local network to %s",
                                page_url,
                                url,
                            )
                            return None
                        continue
                    if not response.is_success:
                        log.debug(
                            "favicon: %s answered %s", url, response.status_code
                        )
                        return None
                    return self._read_body(response, deadline), str(response.url)
        log.debug(
            "favicon: %s redirected more than %d times", page_url, MAX_REDIRECTS
        )
        return None

    def _read_body(self, response: httpx.Response, deadline: float) -> str:
        chunks = []
        total = 0
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            total += len(chunk)
            if total >= self.max_bytes or time.monotonic() > deadline:
                break
        encoding = response.encoding or "utf-8"
        return b"".join(chunks).decode(encoding, errors="ignore")
