"""Number parsing and rounding utilities for money and quantities."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_money(value) -> Decimal:
    """Round to 2 decimals, half-up (the way receipts and GST returns round)."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value, default=None) -> Decimal:
    """
    Convert a JSON number/string to Decimal without going through float.

    Returns default for None/empty values.

    Raises:
        ValueError: if the value is not numeric.
    """
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise ValueError(f'Invalid number: {value}')
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'Invalid number: {value}')
    if not result.is_finite():
        raise ValueError(f'Invalid number: {value}')
    return result


def parse_money(value, default=ZERO) -> Decimal:
    """
    Parse a non-negative price into a 2-decimal Decimal.

    Raises:
        ValueError: if the value is not numeric or is negative.
    """
    amount = to_decimal(value, default)
    if amount is None:
        raise ValueError('Price is required')
    if amount < 0:
        raise ValueError('Price cannot be negative')
    return to_money(amount)


def parse_quantity(value, default=None) -> int:
    """
    Parse an item quantity into an int.

    Zero and negative values are returned as-is so callers can drop the line;
    fractional values are rejected.

    Raises:
        ValueError: if the value is not a whole number.
    """
    qty = to_decimal(value, None)
    if qty is None:
        if default is None:
            raise ValueError('Quantity is required')
        return default
    if qty != qty.to_integral_value():
        raise ValueError(f'Quantity must be a whole number, got {value}')
    return int(qty)


def parse_id(value) -> int:
    """Parse a record id; only positive whole numbers are accepted."""
    number = to_decimal(value, None)
    if number is None or number != number.to_integral_value() or number <= 0:
        raise ValueError(f'Invalid id {value!r}')
    return int(number)


def json_safe(value):
    """Decimals to floats, recursively (dicts, lists, tuples)."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value
