from __future__ import annotations

import math
from typing import Any

from ledgerpos.errors import ConflictOrValidation
from ledgerpos.time_utils import parse_iso_datetime


# Largest single amount accepted from a client: 9,999,999.99
MAX_AMOUNT_CENTS = 999_999_999


def require_fields(payload: dict, *names: str) -> None:
    missing = [n for n in names if payload.get(n) in (None, "")]
    if missing:
        raise ConflictOrValidation("missing required fields", details={"missing": missing})


def int_field(payload: dict, name: str, *, default: int | None = None, required: bool = False) -> int | None:
    """
    Strict integer coercion (cents, limits).

    Rejects bools, floats, decimals and scientific notation.
    """
    value = payload.get(name)
    if value is None or value == "":
        if required:
            raise ConflictOrValidation(f"{name} is required")
        return default

    if isinstance(value, bool):
        raise ConflictOrValidation(f"{name} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ConflictOrValidation(f"{name} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ConflictOrValidation(f"{name} must be an integer") from None
    else:
        raise ConflictOrValidation(f"{name} must be an integer, not {type(value).__name__}")

    if abs(result) > MAX_AMOUNT_CENTS:
        raise ConflictOrValidation(f"{name} exceeds maximum of {MAX_AMOUNT_CENTS}")
    return result


def float_field(payload: dict, name: str, *, default: float | None = None, required: bool = False) -> float | None:
    value: Any = payload.get(name)
    if value is None or value == "":
        if required:
            raise ConflictOrValidation(f"{name} is required")
        return default
    if isinstance(value, bool):
        raise ConflictOrValidation(f"{name} must be a number")
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConflictOrValidation(f"{name} must be a number") from None
    if not math.isfinite(result):
        raise ConflictOrValidation(f"{name} must be a finite number")
    return result


def str_field(payload: dict, name: str, *, default: str | None = None, required: bool = False) -> str | None:
    value = payload.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ConflictOrValidation(f"{name} is required")
        return default
    if not isinstance(value, str):
        raise ConflictOrValidation(f"{name} must be a string")
    return value.strip()


def datetime_arg(value: str | None, name: str):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ConflictOrValidation(f"{name} must be an ISO-8601 datetime") from None
