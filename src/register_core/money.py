from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MINOR_UNIT_EXPONENT = 2
_SCALE = Decimal(10) ** MINOR_UNIT_EXPONENT


def to_minor_units(value: Decimal | str | int) -> int:
    """Convert a major-unit amount (``"120.50"``) into integer minor units (``12050``).

    Floats are refused: a float has already lost the exact cents.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"money amounts must be Decimal, str or int, got {type(value).__name__}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"invalid money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"invalid money amount: {value!r}")
    return int((amount * _SCALE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / _SCALE).quantize(Decimal(1) / _SCALE)


def divide_minor_units(total: int, count: int) -> int:
    if count <= 0:
        return 0
    return int((Decimal(total) / Decimal(count)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_money(amount: int, currency: str = "") -> str:
    text = f"{from_minor_units(amount):,}"
    return f"{currency} {text}".strip()
