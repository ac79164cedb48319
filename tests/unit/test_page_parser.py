"""Unit tests for listing page parsing."""
from decimal import Decimal

import pytest

from dropship.errors import ParseError
from dropship.services.extraction.page_parser import extract_embedded_json, parse_product_page

URL = "https://www.aliexpress.com/item/1005001234567890.html"
PRODUCT_ID = "1005001234567890"

FULL_PAGE = """
<html>
<head>
  <title>Organic Cotton Romper - AliExpress</title>
  <meta property="og:title" content="Romper from og">
  <meta property="og:image" content="https://ae01.alicdn.com/kf/OG.jpg">
  <meta property="og:description" content="Soft organic cotton romper for newborns">
  <script type="application/ld+json">
  {"@context": "https://schema.org", "@type": "Product", "name": "Romper from ld",
   "image": ["https://ae01.alicdn.com/kf/LD1.jpg"],
   "aggregateRating": {"ratingValue": "4.8", "reviewCount": "321"},
   "offers": {"price": "12.34", "priceCurrency": "EUR"}}
  </script>
</head>
<body>
  <h1 data-pl="product-title">Organic Cotton Romper | AliExpress</h1>
  <div class="product-price-current">US $12.34</div>
  <div class="product-price-original">US $20.00</div>
  <span>1,234 sold</span>
  <div class="images-view-item"><img src="//ae01.alicdn.com/kf/S1.jpg"></div>
  <div class="images-view-item"><img src="//ae01.alicdn.com/kf/placeholder.png"></div>
  <a href="//www.aliexpress.com/store/9911">Baby Store</a>
  <div class="dynamic-shipping">Free Shipping, delivery in 12-20 days</div>
  <ul class="product-specs">
    <li><span class="spec-name">Material:</span><span class="spec-value">Cotton</span></li>
  </ul>
  <script>
  window.runParams = {"data": {
    "imageModule": {"imagePathList": ["https://ae01.alicdn.com/kf/S1.jpg", "https://ae01.alicdn.com/kf/S2.jpg"]},
    "quantityModule": {"totalAvailQuantity": 150},
    "skuModule": {
      "skuPropertyList": [
        {"skuPropertyId": 14, "skuPropertyName": "Color", "skuPropertyValues": [
          {"propertyValueId": 200006151, "propertyValueDisplayName": "Red"},
          {"propertyValueId": 200006152, "propertyValueDisplayName": "Blue"}]},
        {"skuPropertyId": 5, "skuPropertyName": "Size", "skuPropertyValues": [
          {"propertyValueId": 100014064, "propertyValueDisplayName": "3M"}]}
      ],
      "skuPriceList": [
        {"skuId": 12000001, "skuAttr": "14:200006151;5:100014064",
         "skuVal": {"availQuantity": 10, "skuAmount": {"value": 12.34}}},
        {"skuId": 12000002, "skuAttr": "14:200006152#Navy;5:100014064",
         "skuVal": {"availQuantity": 0, "skuAmount": {"value": 11.5}}}
      ]
    }
  }};
  </script>
</body>
</html>
"""


class TestParseFullPage:
    @pytest.fixture
    def product(self):
        return parse_product_page(FULL_PAGE, URL, PRODUCT_ID)

    def test_identity_and_title(self, product):
        assert product.product_id == PRODUCT_ID
        assert product.url == URL
        assert product.title == "Organic Cotton Romper"

    def test_prices(self, product):
        assert product.price == Decimal("12.34")
        assert product.original_price == Decimal("20.00")
        assert product.currency == "EUR"

    def test_variants(self, product):
        assert [v.sku_id for v in product.variants] == ["12000001", "12000002"]
        red, navy = product.variants
        assert red.attributes == {"Color": "Red", "Size": "3M"}
        assert red.stock == 10
        assert red.price == Decimal("12.34")
        # Inline label wins over the property table
        assert navy.attributes["Color"] == "Navy"
        assert navy.stock == 0
        assert navy.price == Decimal("11.50")

    def test_images_are_deduplicated_and_filtered(self, product):
        assert product.images[0] == "https://ae01.alicdn.com/kf/S1.jpg"
        assert len(product.images) == len(set(product.images))
        assert "https://ae01.alicdn.com/kf/S2.jpg" in product.images
        assert "https://ae01.alicdn.com/kf/LD1.jpg" in product.images
        assert "https://ae01.alicdn.com/kf/OG.jpg" in product.images
        assert not any("placeholder" in url for url in product.images)

    def test_stock_and_social_proof(self, product):
        assert product.stock == 150
        assert product.rating == pytest.approx(4.8)
        assert product.review_count == 321
        assert product.orders_count == 1234

    def test_supplier(self, product):
        assert product.supplier.name == "Baby Store"
        assert product.supplier.store_id == "9911"
        assert product.supplier.store_url == "https://www.aliexpress.com/store/9911"

    def test_shipping_and_specs(self, product):
        assert product.shipping[0].cost == Decimal("0")
        assert product.shipping[0].estimated_days == 12
        assert product.specifications == {"Material": "Cotton"}
        assert product.description == "Soft organic cotton romper for newborns"


class TestParseFallbacks:
    def test_missing_title_raises(self):
        with pytest.raises(ParseError):
            parse_product_page("<html><body><p>nothing</p></body></html>", URL, PRODUCT_ID)

    def test_missing_price_without_variants_raises(self):
        with pytest.raises(ParseError):
            parse_product_page("<html><body><h1>Baby Blanket</h1></body></html>", URL, PRODUCT_ID)

    def test_price_falls_back_to_cheapest_variant(self):
        html = """
        <html><body><h1>Baby Blanket</h1>
        <script>var data = {"skuMap": {"a1": {"price": "7.50", "stock": 3}, "b2": {"price": "5.25", "stock": 4}}};</script>
        </body></html>
        """
        product = parse_product_page(html, URL, PRODUCT_ID)
        assert product.price == Decimal("5.25")
        assert {v.sku_id for v in product.variants} == {"a1", "b2"}

    def test_dom_sku_fallback_marks_unavailable_items(self):
        html = """
        <html><body><h1>Teether Ring</h1>
        <div class="product-price-current">US $3.00</div>
        <div data-sku-id="s1" title="Green" class="sku-item"></div>
        <div data-sku-id="s2" title="Pink" class="sku-item disabled"></div>
        <div data-sku-id="s3" title="Blue" class="sku-item soldout"></div>
        </body></html>
        """
        product = parse_product_page(html, URL, PRODUCT_ID)
        stocks = {v.sku_id: v.stock for v in product.variants}
        assert stocks == {"s1": None, "s2": 0, "s3": 0}
        assert product.variants[0].attributes == {"Option": "Green"}
        assert all(v.price == Decimal("3.00") for v in product.variants)

    def test_defaults_and_text_stock(self):
        html = """
        <html><head><meta property="og:title" content="Swaddle Wrap | AliExpress"></head>
        <body><span class="product-price-current">$4.99</span>
        <p>37 pieces available</p></body></html>
        """
        product = parse_product_page(html, URL, PRODUCT_ID)
        assert product.title == "Swaddle Wrap"
        assert product.currency == "USD"
        assert product.stock == 37
        assert product.variants == []
        assert product.shipping[0].method == "Standard Shipping"
        assert product.shipping[0].estimated_days == 30
        assert product.supplier.name == "Unknown Store"

    def test_price_from_json_ld(self):
        html = """
        <html><head><title>Crib Mobile</title>
        <script type="application/ld+json">
        {"@graph": [{"@type": "Product", "offers": [{"price": 19.9, "priceCurrency": "usd"}]}]}
        </script></head><body></body></html>
        """
        product = parse_product_page(html, URL, PRODUCT_ID)
        assert product.price == Decimal("19.90")
        assert product.currency == "USD"

    def test_non_numeric_rating_is_ignored(self):
        html = """
        <html><head><title>Crib Mobile</title>
        <script type="application/ld+json">
        {"@type": "Product", "aggregateRating": {"ratingValue": "N/A", "reviewCount": "none"},
         "offers": {"price": "19.90", "priceCurrency": "USD"}}
        </script></head><body></body></html>
        """
        product = parse_product_page(html, URL, PRODUCT_ID)
        assert product.rating is None
        assert product.review_count is None
        assert product.price == Decimal("19.90")


class TestExtractEmbeddedJson:
    def test_decodes_value_after_key(self):
        text = 'var x = {"skuMap": {"a": 1}, "other": [1, 2]};'
        assert extract_embedded_json(text, "skuMap") == {"a": 1}
        assert extract_embedded_json(text, "other") == [1, 2]

    def test_missing_or_invalid(self):
        assert extract_embedded_json("nothing here", "skuMap") is None
        assert extract_embedded_json("skuMap: {broken", "skuMap") is None
