"""
Monetary amounts.

Invariants enforced:
    No floats for money.  ``to_money()`` is the one sanctioned conversion
    from caller input to a monetary Decimal.
"""

from decimal import Decimal, InvalidOperation


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Convert caller input to a Decimal amount.

    Floats are rejected: ``Decimal(0.1)`` silently carries binary error,
    so callers must pass a Decimal, an int, or a numeric string.

    Raises:
        TypeError: If ``value`` is a float or bool.
        ValueError: If ``value`` is a non-numeric string.
    """
    if isinstance(value, (bool, float)):
        raise TypeError(f"Monetary amounts must not be {type(value).__name__}: {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid monetary amount: {value!r}") from exc
