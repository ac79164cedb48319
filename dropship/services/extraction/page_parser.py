"""HTML listing page to SupplierProduct conversion.

Data is read from, in order of trust: embedded JSON state (runParams-style
skuPriceList/skuMap, imagePathList), JSON-LD, Open Graph meta, then visible
DOM. Only a missing title makes a page unrecognizable.
"""
import json
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import structlog
from bs4 import BeautifulSoup, Tag

from dropship.errors import ParseError
from dropship.models import ShippingOption, SupplierInfo, SupplierProduct, SupplierVariant
from dropship.services.extraction.helpers import clean_product_title, parse_price

logger = structlog.get_logger(__name__)

TITLE_SELECTORS = (
    "h1[data-pl='product-title']",
    ".product-title-text",
    "h1.product-title",
    "[class*='title--wrap'] h1",
    "h1",
)
PRICE_SELECTORS = (
    ".product-price-current",
    "[class*='price--current']",
    ".uniform-banner-box-price",
    "[itemprop='price']",
)
ORIGINAL_PRICE_SELECTORS = (
    ".product-price-original",
    "[class*='price--original']",
    ".product-price-del",
)
GALLERY_IMAGE_SELECTORS = (
    ".images-view-item img",
    "[class*='slider--img'] img",
    ".magnifier-image",
    "[class*='image-view'] img",
)
SKU_ITEM_SELECTORS = ("[data-sku-id]", ".sku-property-item", "[class*='sku-item--image']")

EXCLUDED_IMAGE_MARKERS = ("placeholder", "avatar", "icon", "sprite", "loading", "logo")

_SCRIPT_IMAGE_URL = re.compile(
    r"(?:https?:)?//ae\d*\.alicdn\.com/kf/[^\"'\s\\]+?\.(?:jpe?g|png|webp)",
    re.IGNORECASE,
)
_STOCK_TEXT = re.compile(r"(\d[\d,]*)\s+pieces?\s+(?:available|left)", re.IGNORECASE)
_SOLD_TEXT = re.compile(r"(\d[\d,]*)\+?\s+(?:sold|orders)", re.IGNORECASE)
_DELIVERY_DAYS = re.compile(r"(\d+)\s*(?:-\s*\d+\s*)?days?", re.IGNORECASE)
_STORE_ID = re.compile(r"store/(\d+)")

DEFAULT_SHIPPING = ShippingOption(method="Standard Shipping", cost=Decimal("0"), estimated_days=30)

_decoder = json.JSONDecoder()


# =============================================================================
# Embedded data helpers
# =============================================================================


def _script_texts(soup: BeautifulSoup) -> List[str]:
    return [script.string or script.get_text() or "" for script in soup.find_all("script")]


def extract_embedded_json(text: str, key: str) -> Any:
    """Find ``"key": <json>`` (or ``key: <json>``) in script text and decode it.

    Returns None if the key is absent or the value is not valid JSON.
    """
    for match in re.finditer(rf"[\"']?{re.escape(key)}[\"']?\s*[:=]\s*", text):
        start = match.end()
        try:
            value, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            continue
        return value
    return None


def _find_embedded(scripts: Iterable[str], *keys: str) -> Any:
    for text in scripts:
        for key in keys:
            if key not in text:
                continue
            value = extract_embedded_json(text, key)
            if value is not None:
                return value
    return None


def _json_ld_product(soup: BeautifulSoup) -> Dict[str, Any]:
    """Return the first JSON-LD object of @type Product, or {}."""
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except json.JSONDecodeError:
            continue
        candidates = data if isinstance(data, list) else [data]
        for candidate in list(candidates):
            if isinstance(candidate, dict) and "@graph" in candidate:
                candidates.extend(candidate["@graph"])
        for candidate in candidates:
            if isinstance(candidate, dict) and candidate.get("@type") == "Product":
                return candidate
    return {}


def _meta(soup: BeautifulSoup, *names: str) -> Optional[str]:
    for name in names:
        tag = soup.find("meta", attrs={"property": name}) or soup.find("meta", attrs={"name": name})
        if isinstance(tag, Tag) and tag.get("content"):
            return str(tag["content"]).strip()
    return None


def _select_text(soup: BeautifulSoup, selectors: Iterable[str]) -> Optional[str]:
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element.get("content") if element.name == "meta" else element.get_text(" ", strip=True)
        if text:
            return str(text)
    return None


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return max(int(str(value).replace(",", "").split(".")[0]), 0)
    except ValueError:
        return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(str(value).replace(",", "."))
    except ValueError:
        return None


def _to_price(value: Any) -> Optional[Decimal]:
    if isinstance(value, dict):
        value = value.get("value", value.get("amount"))
    if isinstance(value, (int, float)):
        return Decimal(str(value)).quantize(Decimal("0.01"))
    return parse_price(value if isinstance(value, str) else None)


# =============================================================================
# Field extractors
# =============================================================================


def _extract_title(soup: BeautifulSoup) -> Optional[str]:
    title = _select_text(soup, TITLE_SELECTORS) or _meta(soup, "og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string
    if not title:
        return None
    return clean_product_title(title) or None


def _offers(json_ld: Dict[str, Any]) -> Dict[str, Any]:
    offers = json_ld.get("offers") or {}
    if isinstance(offers, list):
        offers = offers[0] if offers else {}
    return offers if isinstance(offers, dict) else {}


def _extract_price(soup: BeautifulSoup, json_ld: Dict[str, Any], scripts: List[str]) -> Optional[Decimal]:
    price = parse_price(_select_text(soup, PRICE_SELECTORS))
    if price is not None:
        return price
    offers = _offers(json_ld)
    price = _to_price(offers.get("price", offers.get("lowPrice")))
    if price is not None:
        return price
    price = parse_price(_meta(soup, "product:price:amount", "og:price:amount"))
    if price is not None:
        return price
    return _to_price(_find_embedded(scripts, "formatedActivityPrice", "formatedPrice"))


def _extract_currency(soup: BeautifulSoup, json_ld: Dict[str, Any]) -> str:
    currency = _offers(json_ld).get("priceCurrency") or _meta(
        soup, "product:price:currency", "og:price:currency"
    )
    if isinstance(currency, str) and len(currency.strip()) == 3:
        return currency.strip().upper()
    return "USD"


def _is_excluded_image(url: str) -> bool:
    lowered = url.lower()
    return any(marker in lowered for marker in EXCLUDED_IMAGE_MARKERS)


def _absolute(url: str) -> str:
    return f"https:{url}" if url.startswith("//") else url


def _extract_images(soup: BeautifulSoup, json_ld: Dict[str, Any], scripts: List[str]) -> List[str]:
    found: List[str] = []

    embedded = _find_embedded(scripts, "imagePathList")
    if isinstance(embedded, list):
        found.extend(str(url) for url in embedded if isinstance(url, str))

    for selector in GALLERY_IMAGE_SELECTORS:
        for img in soup.select(selector):
            src = img.get("src") or img.get("data-src")
            if src:
                found.append(str(src))

    ld_images = json_ld.get("image")
    if isinstance(ld_images, str):
        found.append(ld_images)
    elif isinstance(ld_images, list):
        found.extend(str(url) for url in ld_images if isinstance(url, str))

    og_image = _meta(soup, "og:image")
    if og_image:
        found.append(og_image)

    for text in scripts:
        found.extend(_SCRIPT_IMAGE_URL.findall(text))

    images: List[str] = []
    seen = set()
    for url in found:
        url = _absolute(url.strip())
        if not url.startswith("http") or _is_excluded_image(url) or url in seen:
            continue
        seen.add(url)
        images.append(url)
    return images


def _property_names(scripts: List[str]) -> Dict[str, Dict[str, Any]]:
    """Map skuPropertyId -> {"name": ..., "values": {valueId: display}}."""
    props = _find_embedded(scripts, "skuPropertyList", "productSKUPropertyList")
    names: Dict[str, Dict[str, Any]] = {}
    if not isinstance(props, list):
        return names
    for prop in props:
        if not isinstance(prop, dict):
            continue
        values = {
            str(value.get("propertyValueId", value.get("propertyValueIdLong"))): (
                value.get("propertyValueDisplayName") or value.get("propertyValueName") or ""
            )
            for value in prop.get("skuPropertyValues", [])
            if isinstance(value, dict)
        }
        names[str(prop.get("skuPropertyId"))] = {
            "name": prop.get("skuPropertyName") or f"Option {prop.get('skuPropertyId')}",
            "values": values,
        }
    return names


def _parse_sku_attr(sku_attr: str, names: Dict[str, Dict[str, Any]]) -> Dict[str, str]:
    """Decode '14:200006151#Red;5:100014064' into {'Color': 'Red', 'Size': ...}."""
    attributes: Dict[str, str] = {}
    for part in filter(None, sku_attr.split(";")):
        ids, _, label = part.partition("#")
        prop_id, _, value_id = ids.partition(":")
        prop = names.get(prop_id, {})
        name = prop.get("name") or f"Option {prop_id}"
        attributes[name] = label or prop.get("values", {}).get(value_id) or value_id
    return attributes


def _variant_from_mapping(
    item: Dict[str, Any],
    default_price: Decimal,
    names: Dict[str, Dict[str, Any]],
    fallback_id: str,
) -> Optional[SupplierVariant]:
    sku_val = item.get("skuVal") if isinstance(item.get("skuVal"), dict) else item
    sku_id = item.get("skuId") or item.get("skuIdStr") or item.get("sku_id") or item.get("id") or fallback_id
    price = (
        _to_price(sku_val.get("skuActivityAmount"))
        or _to_price(sku_val.get("skuAmount"))
        or _to_price(sku_val.get("actSkuCalPrice"))
        or _to_price(sku_val.get("skuCalPrice"))
        or _to_price(sku_val.get("price"))
        or default_price
    )
    stock = _to_int(sku_val.get("availQuantity", sku_val.get("stock", sku_val.get("inventory"))))

    attributes = item.get("attributes")
    if not isinstance(attributes, dict):
        attributes = _parse_sku_attr(str(item.get("skuAttr") or item.get("skuPropIds") or ""), names)

    try:
        return SupplierVariant(
            sku_id=str(sku_id),
            attributes={str(k): str(v) for k, v in attributes.items()},
            price=price,
            stock=stock,
            image=item.get("image"),
        )
    except ValueError as e:
        logger.debug("variant_skipped", sku_id=sku_id, error=str(e))
        return None


def _extract_variants(soup: BeautifulSoup, scripts: List[str], default_price: Decimal) -> List[SupplierVariant]:
    names = _property_names(scripts)
    raw = _find_embedded(scripts, "skuPriceList", "skuMap", "variants")

    items: List[Dict[str, Any]] = []
    if isinstance(raw, list):
        items = [item for item in raw if isinstance(item, dict)]
    elif isinstance(raw, dict):
        for key, item in raw.items():
            if isinstance(item, dict):
                items.append({"skuId": key, **item})

    variants = [
        variant
        for index, item in enumerate(items)
        if (variant := _variant_from_mapping(item, default_price, names, str(index))) is not None
    ]
    if variants:
        return variants

    # DOM fallback: sku buttons; disabled or sold out means stock 0
    for selector in SKU_ITEM_SELECTORS:
        elements = soup.select(selector)
        if not elements:
            continue
        for index, element in enumerate(elements):
            classes = " ".join(element.get("class", [])).lower()
            unavailable = "disabled" in classes or "soldout" in classes or "sold-out" in classes
            label = element.get("title") or element.get("data-title") or element.get_text(" ", strip=True)
            sku_id = element.get("data-sku-id") or str(index)
            variants.append(SupplierVariant(
                sku_id=str(sku_id),
                attributes={"Option": str(label)} if label else {},
                price=default_price,
                stock=0 if unavailable else None,
            ))
        break
    return variants


def _extract_specifications(soup: BeautifulSoup, scripts: List[str]) -> Dict[str, str]:
    specs: Dict[str, str] = {}
    props = _find_embedded(scripts, "productPropComponent", "props")
    if isinstance(props, dict):
        props = props.get("props")
    if isinstance(props, list):
        for prop in props:
            if isinstance(prop, dict) and prop.get("attrName"):
                specs[str(prop["attrName"])] = str(prop.get("attrValue", ""))
    if specs:
        return specs

    for row in soup.select("[class*='specification--prop'], .product-prop, .product-specs li"):
        title = row.select_one("[class*='specification--title'], .propery-title, .spec-name")
        value = row.select_one("[class*='specification--desc'], .propery-des, .spec-value")
        if title and value:
            specs[title.get_text(strip=True).rstrip(":")] = value.get_text(" ", strip=True)
    return specs


def _extract_shipping(soup: BeautifulSoup) -> List[ShippingOption]:
    options: List[ShippingOption] = []
    for element in soup.select("[class*='dynamic-shipping'], .product-shipping-info"):
        text = element.get_text(" ", strip=True)
        if not text:
            continue
        days_match = _DELIVERY_DAYS.search(text)
        cost = Decimal("0") if "free" in text.lower() else (parse_price(text) or Decimal("0"))
        options.append(ShippingOption(
            method=text[:100],
            cost=cost,
            estimated_days=int(days_match.group(1)) if days_match else 30,
        ))
    return options or [DEFAULT_SHIPPING]


def _extract_supplier(soup: BeautifulSoup, scripts: List[str]) -> SupplierInfo:
    link = soup.select_one("a[href*='/store/']")
    name = None
    store_url = None
    store_id = None
    if link is not None:
        name = link.get_text(" ", strip=True) or None
        store_url = _absolute(str(link.get("href")))
        match = _STORE_ID.search(store_url)
        store_id = match.group(1) if match else None
    if store_id is None:
        embedded_id = _find_embedded(scripts, "storeNum", "sellerId")
        store_id = str(embedded_id) if embedded_id is not None else None
    name = name or _find_embedded(scripts, "storeName")

    rating = None
    rating_text = _select_text(soup, ("[class*='store-rating']", ".positive-fdbk"))
    if rating_text:
        match = re.search(r"\d+(?:\.\d+)?", rating_text)
        rating = float(match.group(0)) if match else None
    return SupplierInfo(
        name=str(name) if name else "Unknown Store",
        store_id=store_id,
        store_url=store_url,
        rating=rating,
    )


def _extract_stock(soup: BeautifulSoup, scripts: List[str]) -> Optional[int]:
    embedded = _to_int(_find_embedded(scripts, "totalAvailQuantity"))
    if embedded is not None:
        return embedded
    match = _STOCK_TEXT.search(soup.get_text(" ", strip=True))
    return _to_int(match.group(1)) if match else None


# =============================================================================
# Entry point
# =============================================================================


def parse_product_page(html: str, url: str, product_id: str) -> SupplierProduct:
    """Parse a listing page.

    Args:
        html: Page markup
        url: Canonical listing URL
        product_id: Supplier product id extracted from the URL

    Returns:
        Parsed SupplierProduct snapshot

    Raises:
        ParseError: If no title (or no price at all) can be found
    """
    soup = BeautifulSoup(html, "html.parser")
    scripts = _script_texts(soup)
    json_ld = _json_ld_product(soup)

    title = _extract_title(soup) or clean_product_title(str(json_ld.get("name") or ""))
    if not title:
        raise ParseError("Product title not found", details={"product_id": product_id})

    price = _extract_price(soup, json_ld, scripts)
    variants = _extract_variants(soup, scripts, price or Decimal("0"))
    if price is None:
        if not variants:
            raise ParseError("Product price not found", details={"product_id": product_id})
        price = min(variant.price for variant in variants)

    aggregate = json_ld.get("aggregateRating") if isinstance(json_ld.get("aggregateRating"), dict) else {}
    sold_match = _SOLD_TEXT.search(soup.get_text(" ", strip=True))

    product = SupplierProduct(
        product_id=product_id,
        url=url,
        title=title,
        description=_meta(soup, "og:description", "description") or str(json_ld.get("description") or ""),
        price=price,
        original_price=parse_price(_select_text(soup, ORIGINAL_PRICE_SELECTORS)),
        currency=_extract_currency(soup, json_ld),
        stock=_extract_stock(soup, scripts),
        images=_extract_images(soup, json_ld, scripts),
        variants=variants,
        specifications=_extract_specifications(soup, scripts),
        shipping=_extract_shipping(soup),
        supplier=_extract_supplier(soup, scripts),
        rating=_to_float(aggregate.get("ratingValue")),
        review_count=_to_int(aggregate.get("reviewCount")),
        orders_count=_to_int(sold_match.group(1)) if sold_match else None,
    )
    logger.debug(
        "product_page_parsed",
        product_id=product_id,
        variants=len(product.variants),
        images=len(product.images),
    )
    return product
