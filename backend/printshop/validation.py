# Overview: Input validation for order payloads and shared 4xx error types.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Largest order total accepted: R$ 9.999.999,99
MAX_PRICE_CENTS = 999_999_999
MAX_ORDER_QUANTITY = 10_000
MIN_PHONE_DIGITS = 10

SHIRT_SIZES = ("P", "M", "G", "GG", "XG")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., editing a protected row)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which fields a client may send for a model.

    writable_fields is the security boundary: anything else in the payload
    (status, production_stage, company_id, ...) is rejected outright.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _to_int(key: str, value: Any) -> int:
    # 2 and "2" are integers; 2.0, "2.0" and "2e0" are not
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdecimal():
            return int(text)
        raise ValidationError(f"{key} must be a plain integer")
    raise ValidationError(f"{key} must be an integer")


def _clean(column, value: Any) -> Any:
    if isinstance(column.type, Integer):
        return _to_int(column.key, value)

    if isinstance(column.type, (String, Text)):
        text = str(value).strip()
        if not text and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        limit = getattr(column.type, "length", None)
        if limit and len(text) > limit:
            raise ValidationError(f"{column.key} exceeds max length {limit}")
        return text

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against the policy and the model's column metadata.

    partial=False enforces required_on_create (create);
    partial=True validates only the keys present (PATCH).

    Returns the cleaned patch: stripped strings, coerced integers.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    not_allowed = sorted(k for k in payload if k not in policy.writable_fields)
    if not_allowed:
        raise ValidationError(f"Field not allowed: {', '.join(not_allowed)}")

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue
        patch[key] = _clean(column, raw)

    return patch


def enforce_rules_order(patch: dict) -> None:
    """
    Order rules beyond column metadata. Normalizes shirt_size in place.
    """
    if patch.get("shirt_size") is not None:
        size = patch["shirt_size"].upper()
        if size not in SHIRT_SIZES:
            raise ValidationError(f"shirt_size must be one of: {', '.join(SHIRT_SIZES)}")
        patch["shirt_size"] = size

    if "quantity" in patch:
        qty = patch["quantity"]
        if qty is None or qty <= 0:
            raise ValidationError("quantity must be > 0")
        if qty > MAX_ORDER_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_ORDER_QUANTITY}")

    if patch.get("total_price_cents") is not None:
        if not 0 <= patch["total_price_cents"] <= MAX_PRICE_CENTS:
            raise ValidationError(f"total_price_cents must be between 0 and {MAX_PRICE_CENTS}")

    if patch.get("customer_email") is not None and "@" not in patch["customer_email"]:
        raise ValidationError("customer_email must be an e-mail address")

    if patch.get("customer_phone") is not None:
        digits = "".join(ch for ch in patch["customer_phone"] if ch.isdigit())
        if len(digits) < MIN_PHONE_DIGITS:
            raise ValidationError(f"customer_phone must have at least {MIN_PHONE_DIGITS} digits")


def json_object(data: Any) -> dict:
    """Request body as a dict: absent means {}, any other JSON value is rejected."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data
