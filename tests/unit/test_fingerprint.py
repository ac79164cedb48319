"""Unit tests for randomized client fingerprints."""
import random

from dropship.services.extraction.fingerprint import (
    LOCALES,
    TIMEZONES,
    USER_AGENTS,
    VIEWPORTS,
    FingerprintGenerator,
)


class TestFingerprintGenerator:
    def test_draws_from_pools(self):
        generator = FingerprintGenerator()
        for _ in range(50):
            fp = generator.generate()
            assert fp.user_agent in USER_AGENTS
            assert fp.viewport in VIEWPORTS
            assert fp.locale in LOCALES
            assert fp.timezone in TIMEZONES

    def test_seeded_generator_is_deterministic(self):
        first = FingerprintGenerator(random.Random(42)).generate()
        second = FingerprintGenerator(random.Random(42)).generate()
        assert first == second

    def test_pool_sizes(self):
        assert len(USER_AGENTS) == 5
        assert len(VIEWPORTS) == 5
        assert len(LOCALES) == 4
        assert len(TIMEZONES) == 5


class TestFingerprintHeaders:
    def test_headers_reflect_identity(self):
        fp = FingerprintGenerator(random.Random(1)).generate()
        headers = fp.headers()
        assert headers["User-Agent"] == fp.user_agent
        assert headers["Accept-Language"].startswith(fp.locale)
        assert "text/html" in headers["Accept"]
