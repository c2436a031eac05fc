# pricing.py
from labtracker.config import ADDITIONAL_SAMPLE_PRICE, ADDITIONAL_HEADER_PRICE, PREMIUM_COMPOUNDS
from decimal import Decimal, InvalidOperation
import re

_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def _field(item, name):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _product_name(item):
    if isinstance(item, dict):
        return item.get("product_name") or ""
    product = getattr(item, "product", None)
    return product.name if product is not None and product.name else ""


def parse_price(value):
    """Parse user input the lenient way: leading number wins, junk is 0"""
    if value is None:
        return Decimal("0")
    match = _NUMBER_PREFIX.match(str(value))
    if not match:
        return Decimal("0")
    try:
        return Decimal(match.group(0).strip())
    except InvalidOperation:
        return Decimal("0")


def is_premium_compound(item):
    name = _product_name(item).lower()
    return any(compound.lower() in name for compound in PREMIUM_COMPOUNDS)


def additional_samples_price(item):
    """Extra samples at $60 each"""
    count = _field(item, "additional_samples")
    if not count:
        return Decimal("0")
    # Premium compounds are priced the same for now
    if is_premium_compound(item):
        return Decimal(count) * Decimal(ADDITIONAL_SAMPLE_PRICE)
    return Decimal(count) * Decimal(ADDITIONAL_SAMPLE_PRICE)


def additional_headers_price(item):
    """Extra report headers at $30 each"""
    count = _field(item, "additional_report_headers")
    if not count:
        return Decimal("0")
    return Decimal(count) * Decimal(ADDITIONAL_HEADER_PRICE)


def effective_price(item_id, overrides, default):
    """User-entered override for `item_id` if there is one, else `default`"""
    value = overrides.get(item_id) if overrides else None
    if value is not None and value != "":
        return parse_price(value)
    return default


def effective_sample_price(item, overrides):
    return effective_price(_field(item, "id"), overrides, additional_samples_price(item))


def effective_header_price(item, overrides):
    return effective_price(_field(item, "id"), overrides, additional_headers_price(item))


def quote_item_total(item, sample_overrides=None, header_overrides=None):
    base = _field(item, "price")
    base = Decimal(str(base)) if base is not None else Decimal("0")
    return (
        base
        + effective_sample_price(item, sample_overrides or {})
        + effective_header_price(item, header_overrides or {})
    )


def quote_total(items, sample_overrides=None, header_overrides=None):
    return sum(
        (quote_item_total(item, sample_overrides, header_overrides) for item in items),
        Decimal("0"),
    )


def price_breakdown(items):
    """Per-item charges plus quote total, using each item's stored overrides"""
    sample_overrides = {}
    header_overrides = {}
    for item in items:
        item_id = _field(item, "id")
        sample_overrides[item_id] = _field(item, "sample_price_override")
        header_overrides[item_id] = _field(item, "header_price_override")

    lines = []
    for item in items:
        sample = effective_sample_price(item, sample_overrides)
        header = effective_header_price(item, header_overrides)
        line_total = quote_item_total(item, sample_overrides, header_overrides)
        lines.append({
            "item_id": _field(item, "id"),
            "product_name": _product_name(item) or None,
            "base_price": float(Decimal(str(_field(item, "price") or 0))),
            "additional_samples_charge": float(sample),
            "additional_headers_charge": float(header),
            "total": float(line_total),
        })

    total = quote_total(items, sample_overrides, header_overrides)
    return {"items": lines, "total": float(total), "currency": "USD"}
