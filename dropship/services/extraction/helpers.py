"""Text and timing helpers shared by the scraper and image downloader."""
import asyncio
import random
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

_CURRENCY_NOISE = re.compile(r"(US\s*\$|[$€£¥₽]|\b(?:USD|EUR|GBP|CNY|RUB|US)\b)", re.IGNORECASE)
_NUMBER = re.compile(r"\d+(?:\.\d+)?")

_TITLE_SUFFIXES = re.compile(
    r"\s*[-|]\s*(?:AliExpress(?:\.com)?|Aliexpress)(?:\s*\d*)?\s*$",
    re.IGNORECASE,
)


def parse_price(text: Optional[str]) -> Optional[Decimal]:
    """Parse a display price such as 'US $1,234.56' into a Decimal.

    Ranges ('US $3.10 - 5.20') resolve to their lower bound. Returns None when
    no number is present.
    """
    if not text:
        return None
    cleaned = _CURRENCY_NOISE.sub("", str(text)).replace(",", "").strip()
    match = _NUMBER.search(cleaned)
    if not match:
        return None
    try:
        return Decimal(match.group(0)).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def clean_product_title(title: str) -> str:
    """Strip marketplace suffixes and collapse whitespace."""
    title = _TITLE_SUFFIXES.sub("", title or "")
    return " ".join(title.split()).strip()


async def random_delay(min_ms: int, max_ms: int) -> None:
    """Sleep a uniformly random number of milliseconds in [min_ms, max_ms]."""
    await asyncio.sleep(random.uniform(min_ms, max_ms) / 1000)


def slugify(text: str, max_length: int = 80) -> str:
    """Lowercase ASCII slug for catalog URLs."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "product"
