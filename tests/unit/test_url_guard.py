"""Unit tests for supplier URL validation and normalization."""
import pytest

from dropship.services.extraction.url_guard import (
    extract_product_id,
    is_allowed_host,
    is_valid_supplier_url,
    normalize,
)


class TestExtractProductId:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://www.aliexpress.com/item/1005001234567890.html", "1005001234567890"),
            ("https://www.aliexpress.com/item/1005001234567890", "1005001234567890"),
            ("https://m.aliexpress.com/p/detail.html?productId=4000123", "4000123"),
            ("https://aliexpress.us/product/555.html", "555"),
            ("https://aliexpress.us/product/555", "555"),
        ],
    )
    def test_supported_shapes(self, url, expected):
        assert extract_product_id(url) == expected

    def test_item_path_wins_over_query(self):
        url = "https://www.aliexpress.com/item/111.html?productId=222"
        assert extract_product_id(url) == "111"

    def test_no_id(self):
        assert extract_product_id("https://www.aliexpress.com/category/baby.html") is None
        assert extract_product_id("https://www.aliexpress.com/p/x?productId=abc") is None


class TestIsValidSupplierUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.aliexpress.com/item/1005001234567890.html",
            "http://aliexpress.com/item/1.html",
            "https://m.aliexpress.com/item/1.html",
            "https://www.aliexpress.us/item/1.html",
        ],
    )
    def test_accepts_allow_listed_hosts(self, url):
        assert is_valid_supplier_url(url)

    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost/item/1.html",
            "http://127.0.0.1/item/1.html",
            "http://10.0.0.5/item/1.html",
            "http://172.16.4.1/item/1.html",
            "http://172.31.255.1/item/1.html",
            "http://192.168.1.1/item/1.html",
            "http://0.0.0.0/item/1.html",
            "http://[::1]/item/1.html",
            "http://[fe80::1]/item/1.html",
            "http://169.254.169.254/item/1.html",
            "http://8.8.8.8/item/1.html",
        ],
    )
    def test_rejects_internal_and_literal_ip_hosts(self, url):
        assert not is_valid_supplier_url(url)

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "not a url",
            "ftp://www.aliexpress.com/item/1.html",
            "javascript:alert(1)",
            "https://evil.com/item/1.html",
            "https://aliexpress.com.evil.com/item/1.html",
            "https://www.aliexpress.com/store/123",
        ],
    )
    def test_rejects_other_urls(self, url):
        assert not is_valid_supplier_url(url)

    def test_non_string(self):
        assert not is_valid_supplier_url(None)


class TestNormalize:
    def test_canonical_form(self):
        url = "https://m.aliexpress.com/p/detail.html?productId=4000123&spm=abc"
        assert normalize(url) == "https://www.aliexpress.com/item/4000123.html"

    def test_idempotent(self):
        once = normalize("https://aliexpress.us/product/555")
        assert normalize(once) == once

    def test_invalid_is_none(self):
        assert normalize("http://127.0.0.1/item/1.html") is None


class TestIsAllowedHost:
    def test_redirect_targets(self):
        assert is_allowed_host("https://www.aliexpress.com/item/1.html")
        assert is_allowed_host("https://www.aliexpress.com/")
        assert not is_allowed_host("https://login.evil.com/")
        assert not is_allowed_host("http://127.0.0.1/")
