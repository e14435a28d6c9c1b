"""
Product and banner admin forms.

Raw multipart strings are coerced into typed values here, then checked with
the rule sets below through ``FormState``.
"""
import math
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from forms import FormState, Rule, Rules, SubmitCallback
from schemas import INTERNAL_LINK_PATTERN

_TRUTHY = {"1", "true", "on", "yes"}


# ----------------------------- Rule builders ------------------------------

def required(message: str) -> Rule:
    def check(value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, str):
            return bool(value.strip())
        return True

    return Rule(check, message)


def is_number(message: str) -> Rule:
    return Rule(lambda v: isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v), message)


def greater_than(limit: float, message: str) -> Rule:
    # Non-numbers are left to is_number
    return Rule(lambda v: not isinstance(v, (int, float)) or v > limit, message)


def matches(pattern: str, message: str) -> Rule:
    compiled = re.compile(pattern)
    return Rule(lambda v: isinstance(v, str) and compiled.match(v) is not None, message)


def not_empty(message: str) -> Rule:
    return Rule(lambda v: bool(v), message)


def optional_date(message: str) -> Rule:
    return Rule(lambda v: v is None or isinstance(v, datetime), message)


def has_image(message: str) -> Rule:
    """An upload carrying a filename, or an already stored URL."""

    def check(value: Any) -> bool:
        if isinstance(value, str):
            return bool(value.strip())
        return bool(getattr(value, "filename", None))

    return Rule(check, message)


PRODUCT_RULES: Rules = {
    "name": [required("Name is required")],
    "description": [required("Description is required")],
    "price": [
        is_number("Price must be a number"),
        greater_than(0, "Price must be greater than 0"),
    ],
    "image": [has_image("Image is required")],
    "tags": [not_empty("At least one tag is required")],
    "seasonal_end_date": [
        optional_date("Seasonal end date must be a valid date (YYYY-MM-DD)")
    ],
}

BANNER_RULES: Rules = {
    "title": [required("Title is required")],
    "description": [required("Description is required")],
    "image": [has_image("Image is required")],
    "link": [
        required("Link is required"),
        matches(INTERNAL_LINK_PATTERN, "Link must be a valid internal path (e.g., /products/rice)"),
    ],
}

EMPTY_PRODUCT: Dict[str, Any] = {
    "name": "",
    "description": "",
    "price": 0,
    "image": "",
    "tags": [],
    "is_hot_product": False,
    "is_seasonal": False,
    "seasonal_end_date": None,
}

EMPTY_BANNER: Dict[str, Any] = {
    "title": "",
    "description": "",
    "image": "",
    "link": "",
}


# ------------------------------- Coercion ---------------------------------

def parse_price(raw: Any) -> Any:
    """Finite float when parseable; otherwise the raw input so the number rule fails."""
    if isinstance(raw, bool):
        return raw
    try:
        value = float(raw) if isinstance(raw, (int, float)) else float(str(raw).strip())
    except (TypeError, ValueError, OverflowError):
        return raw
    return value if math.isfinite(value) else raw


def parse_tags(raw: Any) -> List[str]:
    parts: Iterable[str] = raw.split(",") if isinstance(raw, str) else (raw or [])
    tags: List[str] = []
    for part in parts:
        tag = str(part).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in _TRUTHY


def parse_date(raw: Any) -> Any:
    if raw is None or isinstance(raw, datetime):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, "%Y-%m-%d")
    except ValueError:
        return text


_PRODUCT_PARSERS = {
    "price": parse_price,
    "tags": parse_tags,
    "is_hot_product": parse_bool,
    "is_seasonal": parse_bool,
    "seasonal_end_date": parse_date,
}


def coerce_product_fields(submitted: Dict[str, Any]) -> Dict[str, Any]:
    """Drop fields that were not submitted and type the ones that were."""
    values = {}
    for field, raw in submitted.items():
        if raw is None:
            continue
        parser = _PRODUCT_PARSERS.get(field)
        values[field] = parser(raw) if parser else raw
    return values


def coerce_banner_fields(submitted: Dict[str, Any]) -> Dict[str, Any]:
    return {
        field: raw.strip() if isinstance(raw, str) else raw
        for field, raw in submitted.items()
        if raw is not None
    }


# ---------------------------- Record <-> form -----------------------------

def product_initial_values(record: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if record is None:
        return EMPTY_PRODUCT
    return {
        "name": record.get("name", ""),
        "description": record.get("description", ""),
        "price": record.get("price", 0),
        "image": record.get("image_url", ""),
        "tags": list(record.get("tags") or []),
        "is_hot_product": bool(record.get("is_hot_product", False)),
        "is_seasonal": bool(record.get("is_seasonal", False)),
        "seasonal_end_date": record.get("seasonal_end_date"),
    }


def banner_initial_values(record: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if record is None:
        return EMPTY_BANNER
    return {
        "title": record.get("title", ""),
        "description": record.get("description", ""),
        "image": record.get("image_url", ""),
        "link": record.get("link", ""),
    }


async def submit_form(
    initial_values: Dict[str, Any],
    rules: Rules,
    submitted: Dict[str, Any],
    on_submit: SubmitCallback,
) -> FormState:
    """Apply submitted values on top of ``initial_values`` and submit."""
    form = FormState(initial_values, rules, on_submit=on_submit)
    for field, value in submitted.items():
        form.set_value(field, value)
    await form.submit()
    return form
