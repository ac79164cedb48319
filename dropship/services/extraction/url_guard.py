"""Supplier URL validation and normalization.

SSRF guard: every supplier URL passes through is_valid_supplier_url before a
request is issued. Hosts must be on the allow-list; loopback, private,
link-local and literal IP hosts are always rejected.
"""
import ipaddress
import re
from typing import Optional
from urllib.parse import parse_qs, urlsplit

ALLOWED_HOSTS = frozenset({
    "aliexpress.com",
    "www.aliexpress.com",
    "m.aliexpress.com",
    "aliexpress.us",
    "www.aliexpress.us",
})

BLOCKED_HOST_PREFIXES = (
    "localhost",
    "127.",
    "10.",
    "192.168.",
    "0.0.0.0",
    "::1",
    "fc00:",
    "fd00:",
    "fe80:",
    "169.254.",
)

_PRIVATE_172 = re.compile(r"^172\.(1[6-9]|2\d|3[01])\.")

_PATH_PATTERNS = (
    re.compile(r"/item/(\d+)\.html"),
    re.compile(r"/item/(\d+)"),
)
_PRODUCT_PATH_PATTERNS = (
    re.compile(r"/product/(\d+)\.html"),
    re.compile(r"/product/(\d+)"),
)

CANONICAL_URL_TEMPLATE = "https://www.aliexpress.com/item/{product_id}.html"


def is_blocked_host(host: str) -> bool:
    """Loopback, private, link-local and literal IP hosts are never fetched."""
    host = host.strip("[]").lower()
    if host.startswith(BLOCKED_HOST_PREFIXES) or _PRIVATE_172.match(host):
        return True
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    # Any literal IP is rejected, public or not
    return True


def extract_product_id(url: str) -> Optional[str]:
    """Extract the numeric supplier product id from a listing URL.

    Shapes are tried in order: /item/{id}.html, /item/{id},
    ?productId={id}, /product/{id}.html, /product/{id}.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return None

    for pattern in _PATH_PATTERNS:
        match = pattern.search(parts.path)
        if match:
            return match.group(1)

    product_ids = parse_qs(parts.query).get("productId")
    if product_ids and product_ids[0].isdigit():
        return product_ids[0]

    for pattern in _PRODUCT_PATH_PATTERNS:
        match = pattern.search(parts.path)
        if match:
            return match.group(1)
    return None


def is_valid_supplier_url(url: str) -> bool:
    """Check that a URL is a supplier product page that is safe to fetch."""
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError:
        return False

    if parts.scheme not in ("http", "https") or not host:
        return False
    if is_blocked_host(host):
        return False
    if host.lower() not in ALLOWED_HOSTS:
        return False
    return extract_product_id(url) is not None


def normalize(url: str) -> Optional[str]:
    """Return the canonical /item/{id}.html URL, or None when invalid."""
    if not is_valid_supplier_url(url):
        return None
    product_id = extract_product_id(url)
    if product_id is None:
        return None
    return CANONICAL_URL_TEMPLATE.format(product_id=product_id)


def is_allowed_host(url: str) -> bool:
    """Check a redirect target: http(s) on an allow-listed, non-blocked host."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not host:
        return False
    return not is_blocked_host(host) and host.lower() in ALLOWED_HOSTS
