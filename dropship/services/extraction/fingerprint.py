"""Randomized client identity for scrape sessions."""
import random
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
)

VIEWPORTS: Tuple[Tuple[int, int], ...] = (
    (1920, 1080),
    (1366, 768),
    (1536, 864),
    (1440, 900),
    (1280, 720),
)

LOCALES = ("en-US", "en-GB", "en-CA", "en-AU")

TIMEZONES = (
    "America/New_York",
    "America/Los_Angeles",
    "America/Chicago",
    "Europe/London",
    "Asia/Singapore",
)


@dataclass(frozen=True)
class Fingerprint:
    """Client identity presented for one scrape session."""
    user_agent: str
    viewport: Tuple[int, int]
    locale: str
    timezone: str

    def headers(self) -> Dict[str, str]:
        """HTTP headers a browser with this identity would send."""
        language = self.locale.split("-")[0]
        return {
            "User-Agent": self.user_agent,
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/avif,image/webp,*/*;q=0.8"
            ),
            "Accept-Language": f"{self.locale},{language};q=0.9",
            "Cache-Control": "no-cache",
            "Upgrade-Insecure-Requests": "1",
        }


class FingerprintGenerator:
    """Draws a fresh fingerprint uniformly from curated pools."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def generate(self) -> Fingerprint:
        return Fingerprint(
            user_agent=self._rng.choice(USER_AGENTS),
            viewport=self._rng.choice(VIEWPORTS),
            locale=self._rng.choice(LOCALES),
            timezone=self._rng.choice(TIMEZONES),
        )
