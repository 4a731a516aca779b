from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation

from eurozbot.domain.errors import ValidationError

TOKEN_DECIMALS = 6


def parse_decimal(value: object) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        normalized = value.strip().replace(",", ".")
        return Decimal(normalized)
    raise TypeError(f"Cannot parse decimal from {type(value)!r}")


def truncate(value: Decimal, places: int) -> Decimal:
    """Drop fractional digits beyond ``places`` without rounding up."""
    if places < 0:
        raise ValueError("places must be >= 0")
    quantum = Decimal("1").scaleb(-places)
    return value.quantize(quantum, rounding=ROUND_DOWN)


def to_base_units(amount: Decimal, decimals: int = TOKEN_DECIMALS) -> int:
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"amount must be > 0, got {amount}")
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"amount {amount} has more than {decimals} fractional digits")
    return int(scaled)


def from_base_units(raw: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    return Decimal(int(raw)).scaleb(-decimals)


def parse_user_amount(text: str | None, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Parse a manually entered amount; rejects empty, non-positive and over-precise input."""
    if text is None or not str(text).strip():
        raise ValidationError("Please enter a valid amount")
    try:
        amount = parse_decimal(str(text))
    except InvalidOperation as exc:
        raise ValidationError("Please enter a valid amount") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Please enter a valid amount")
    if truncate(amount, decimals) != amount:
        raise ValidationError(f"Amount supports at most {decimals} decimal places")
    return amount


def format_amount(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return str(amount.quantize(Decimal("1")))
    return format(amount.normalize(), "f")
