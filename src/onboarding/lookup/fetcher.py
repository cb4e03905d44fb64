"""
Website metadata fetching.

MetadataFetcher is the contract the organization step relies on:
`fetch(url)` returns a MetadataResponse with title/description, or raises
for transport problems (classified by the debounced lookup).

HttpMetadataFetcher is the real implementation: it downloads the page with
httpx and reads OpenGraph data via extruct, falling back to the <title> tag
and <meta name="description">.
"""

import html as html_lib
import logging
import re
from abc import ABC, abstractmethod
from urllib.parse import urlparse

import extruct
import httpx

from .models import MetadataResponse

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_META_RE = re.compile(r"<meta\b([^>]*)>", re.IGNORECASE)
_ATTR_RE = re.compile(r"""([\w:-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")


def validate_url(url: str) -> str | None:
    """
    Validate URL format.

    Returns error message if invalid, None if valid.
    """
    if not url or not url.strip():
        return "URL is required"

    url = url.strip()

    if not re.match(r"^https?://", url, re.IGNORECASE):
        return "URL must start with http:// or https://"

    try:
        parsed = urlparse(url)
    except ValueError:
        return "Invalid URL format"

    if not parsed.netloc or not parsed.hostname:
        return "Invalid URL format"
    if any(ch.isspace() for ch in url):
        return "Invalid URL format"

    return None


def company_name_from_title(title: str | None) -> str:
    """Site titles usually read 'Company | Tagline'; keep the first part."""
    if not title:
        return ""
    return title.split("|")[0].strip()


class MetadataFetcher(ABC):
    """External collaborator that looks up metadata for a website URL."""

    @abstractmethod
    async def fetch(self, url: str) -> MetadataResponse:
        """Return title/description for url. May raise on transport errors."""
        ...


class HttpMetadataFetcher(MetadataFetcher):
    """Fetch a page over HTTP and read its title and description."""

    def __init__(
        self,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, url: str) -> MetadataResponse:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.timeout,
            headers=DEFAULT_HEADERS,
            transport=self._transport,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            page = response.text
            final_url = str(response.url)

        title, description = _read_opengraph(page, final_url)
        if not title or not description:
            fallback_title, fallback_description = _read_html_head(page)
            title = title or fallback_title
            description = description or fallback_description

        logger.debug(f"Metadata for {final_url}: title={title!r}")
        return MetadataResponse(title=title, description=description)


def _read_opengraph(page: str, base_url: str) -> tuple[str | None, str | None]:
    """Read og:title / og:description with extruct."""
    try:
        data = extruct.extract(page, base_url=base_url, syntaxes=["opengraph"], uniform=False)
    except Exception as e:
        logger.debug(f"OpenGraph extraction failed for {base_url}: {e}")
        return None, None

    title = None
    description = None
    for block in data.get("opengraph", []):
        for key, value in block.get("properties", []):
            if key == "og:title" and not title:
                title = _clean(value)
            elif key == "og:description" and not description:
                description = _clean(value)
    return title, description


def _read_html_head(page: str) -> tuple[str | None, str | None]:
    """Plain <title> and <meta name="description"> fallback."""
    title = None
    match = _TITLE_RE.search(page)
    if match:
        title = _clean(match.group(1))

    description = None
    for meta in _META_RE.finditer(page):
        attrs = {
            name.lower(): double if double else single
            for name, double, single in _ATTR_RE.findall(meta.group(1))
        }
        if attrs.get("name", "").lower() == "description" and attrs.get("content"):
            description = _clean(attrs["content"])
            break

    return title, description


def _clean(value: str | None) -> str | None:
    if not value:
        return None
    text = " ".join(html_lib.unescape(value).split())
    return text or None
