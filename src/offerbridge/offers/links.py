"""Commerce link extraction and canonical resolution.

Short links are expanded with a HEAD request; the final URL is then matched
against the known product URL shapes to get (shop_id, item_id).
"""

import re
from typing import Iterable
from urllib.parse import parse_qs, urlparse

import requests

from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context

from .models import ItemRef

logger = get_logger(__name__)

URL_PATTERN = re.compile(r"\bhttps?://\S+", re.IGNORECASE)

SHORT_LINK_HOST = re.compile(r"^(?:[\w-]+\.)*(?:shope\.ee|shp\.ee|s\.shopee\.[a-z.]+)$", re.IGNORECASE)

# Checked in order; the first match wins
PRODUCT_PATH_PATTERN = re.compile(r"/product/(\d+)/(\d+)")
ITEM_SLUG_PATTERN = re.compile(r"i\.(\d+)\.(\d+)")

REDIRECT_TIMEOUT = 5
MAX_REDIRECTS = 10


def extract_urls(text: str) -> list[str]:
    """All http(s) URLs in `text`, in order of appearance."""
    return URL_PATTERN.findall(text or "")


def find_commerce_urls(text: str, keywords: Iterable[str]) -> list[str]:
    """URLs containing any of the brand keywords, in order of appearance."""
    lowered = [k.lower() for k in keywords]
    return [url for url in extract_urls(text) if any(k in url.lower() for k in lowered)]


def is_short_link(url: str) -> bool:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        # Malformed netloc, e.g. an unbalanced "["
        return False
    return bool(SHORT_LINK_HOST.match(host))


def _do_head(url: str) -> str:
    """Follow redirects with HEAD and return the final URL. Raises on error."""
    with requests.Session() as session:
        session.max_redirects = MAX_REDIRECTS
        response = session.head(url, allow_redirects=True, timeout=REDIRECT_TIMEOUT)
        return response.url


def expand_short_link(url: str) -> str:
    """Final URL after redirects, or `url` itself on any network failure."""
    try:
        return _do_head(url) or url
    except requests.RequestException as e:
        logger.warning(
            "short link expansion failed, using original url",
            extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
        )
        return url


def match_item(url: str) -> ItemRef:
    """Extract (item_id, shop_id) from a canonical product URL."""
    match = PRODUCT_PATH_PATTERN.search(url)
    if match:
        return ItemRef(item_id=match.group(2), shop_id=match.group(1))

    try:
        query = parse_qs(urlparse(url).query)
    except ValueError:
        query = {}
    item_ids, shop_ids = query.get("itemId"), query.get("shopId")
    if item_ids and shop_ids:
        return ItemRef(item_id=item_ids[0], shop_id=shop_ids[0])

    match = ITEM_SLUG_PATTERN.search(url)
    if match:
        return ItemRef(item_id=match.group(2), shop_id=match.group(1))

    return ItemRef()


def resolve(raw_url: str) -> ItemRef:
    """Resolve a raw commerce link to its offer identity. Never raises."""
    url = expand_short_link(raw_url) if is_short_link(raw_url) else raw_url
    return match_item(url)
