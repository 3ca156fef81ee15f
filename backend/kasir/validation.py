from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from kasir.errors import ValidationError
from kasir.time_utils import parse_iso_date


# Largest quantity or amount accepted over HTTP; keeps products of
# qty * multiplier * price well inside a signed 64-bit column
MAX_INPUT_INT = 10 ** 12

FIELD_INT = "int"
FIELD_STR = "str"
FIELD_DATE = "date"
FIELD_LIST = "list"
FIELD_DICT = "dict"


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer:
    - fields: what clients are allowed to send, with the expected kind
    - required: fields that must be present
    - max_lengths: optional caps for string fields
    """
    fields: dict[str, str]
    required: set[str] = field(default_factory=set)
    max_lengths: dict[str, int] = field(default_factory=dict)


def coerce_int(value: Any, key: str) -> int:
    """Strict integer parsing: rejects floats, bools, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{key} must be an integer")

    if abs(result) > MAX_INPUT_INT:
        raise ValidationError(f"{key} is out of range")
    return result


def _coerce_value(kind: str, key: str, value: Any):
    if value is None:
        return None

    if kind == FIELD_INT:
        return coerce_int(value, key)

    if kind == FIELD_DATE:
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                parsed = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 date")
            return parsed
        raise ValidationError(f"{key} must be a date")

    if kind == FIELD_LIST:
        if not isinstance(value, list):
            raise ValidationError(f"{key} must be a list")
        return value

    if kind == FIELD_DICT:
        if not isinstance(value, dict):
            raise ValidationError(f"{key} must be an object")
        return value

    # Strings
    return str(value).strip()


def validate_payload(*, payload: Any, policy: PayloadPolicy) -> dict:
    """
    Validates + normalizes incoming JSON against a policy.

    Unknown fields are rejected, required fields enforced, values coerced
    to their declared kind. Returns a cleaned dict with only allowed keys.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(f for f in policy.required if payload.get(f) is None)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    for k in payload.keys():
        if k not in policy.fields:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        val = _coerce_value(policy.fields[k], k, raw)

        if policy.fields[k] == FIELD_STR and val == "" and k in policy.required:
            raise ValidationError(f"{k} cannot be blank")

        limit = policy.max_lengths.get(k)
        if limit and isinstance(val, str) and len(val) > limit:
            raise ValidationError(f"{k} exceeds max length {limit}")

        patch[k] = val

    return patch


def parse_int_arg(args, key: str, default: int | None = None) -> int | None:
    """Optional integer query-string argument."""
    raw = args.get(key)
    if raw is None or raw == "":
        return default
    return coerce_int(raw, key)
