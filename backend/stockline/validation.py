from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    """400-level input problem."""


def require_int(data: dict, key: str, *, minimum: int | None = None) -> int:
    value = optional_int(data, key, minimum=minimum)
    if value is None:
        raise ValidationError(f"{key} required")
    return value


def optional_int(data: dict, key: str, *, minimum: int | None = None) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    # bool is an int subclass; reject it along with floats like 2.5
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{key} must be an integer")
        value = int(stripped)
    if not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return value


def optional_float(data: dict, key: str, *, minimum: float | None = None) -> float | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return value


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def parse_line_item(data: Any) -> dict:
    """Normalize one checkout line. Lines without a product or variant (services) are allowed."""
    if not isinstance(data, dict):
        raise ValidationError("each item must be an object")

    item = {
        "product_id": optional_int(data, "product_id"),
        "variant_id": optional_int(data, "variant_id"),
        "quantity": require_int(data, "quantity", minimum=1),
        "ml_amount": optional_float(data, "ml_amount", minimum=0),
        "is_scent_mixture": parse_bool(data.get("is_scent_mixture")),
        "is_perfume_refill": parse_bool(data.get("is_perfume_refill")),
        "name": data.get("name"),
    }

    if item["is_perfume_refill"] and not item["ml_amount"]:
        raise ValidationError("ml_amount required for perfume refills")
    return item


def parse_line_items(raw: Any) -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")
    return [parse_line_item(item) for item in raw]
