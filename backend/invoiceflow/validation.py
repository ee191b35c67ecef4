from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


# Upper bound for any single money or quantity input: 9,999,999,999.99
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationError(ValueError):
    """Malformed numeric/string input at the boundary of the core."""


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """
    Coerce an incoming number to Decimal.

    Accepts Decimal, int, float and numeric strings. Floats go through str()
    so 0.1 becomes Decimal("0.1"), not its binary expansion.
    Rejects bools, NaN/Infinity and anything unparsable.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT:,}")
    return result


def to_optional_decimal(value: Any, field: str = "value") -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_decimal(value, field)


def require_non_negative(value: Any, field: str = "value") -> Decimal:
    result = to_decimal(value, field)
    if result < 0:
        raise ValidationError(f"{field} must be >= 0")
    return result


def require_positive(value: Any, field: str = "value") -> Decimal:
    result = to_decimal(value, field)
    if result <= 0:
        raise ValidationError(f"{field} must be > 0")
    return result


def require_text(value: Any, field: str, max_length: int | None = None) -> str:
    """Strip and require a non-blank string, optionally length-bounded."""
    if value is None:
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} cannot be blank")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def optional_text(value: Any, field: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
