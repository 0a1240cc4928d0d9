from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from utils.errors import ValidationError

CENT = Decimal("0.01")
# Numeric(12, 2) holds at most ten digits before the point
MAX_AMOUNT = Decimal("9999999999.99")


def parse_amount(value: Any, field: str = "amount", *, allow_zero: bool = False, entity: Optional[str] = None) -> Decimal:
    """Parse a money amount from user input.

    Accepts numbers and numeric strings (commas are tolerated). The value is
    rounded to cents before it is checked, so sub-cent inputs count as zero.
    Rejects booleans, NaN/infinity, negatives, amounts too wide for the
    ledger columns, and zero unless ``allow_zero``.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", entity=entity)
    text = str(value).strip().replace(",", "")
    if not text:
        raise ValidationError(f"{field} is required", entity=entity)
    try:
        amount = Decimal(text)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}", entity=entity) from None
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", entity=entity)
    try:
        amount = amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(f"{field} is too large", entity=entity) from None
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} may not exceed {MAX_AMOUNT:,}", entity=entity)
    if amount < 0 or (amount == 0 and not allow_zero):
        qualifier = "zero or more" if allow_zero else "greater than zero"
        raise ValidationError(f"{field} must be {qualifier}", entity=entity)
    return amount


def require_text(value: Any, field: str, *, entity: Optional[str] = None, entity_id: Any = None) -> str:
    text = (str(value) if value is not None else "").strip()
    if not text:
        raise ValidationError(f"{field} is required", entity=entity, entity_id=entity_id)
    return text
