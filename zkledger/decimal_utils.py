from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Any


# ============================================================================
# PRECISION CONSTANTS
# ============================================================================

# USD/fiat precision (cents)
USD_PRECISION = Decimal('0.01')

ZERO = Decimal(0)


# ============================================================================
# CURRENCY ROUNDING (ROUND_HALF_UP)
# ============================================================================

def set_currency_rounding_context() -> None:
    """
    Set global Decimal context for currency calculations.
    Uses ROUND_HALF_UP (0.5 always rounds up).
    Call this once at application startup.
    """
    ctx = getcontext()
    ctx.rounding = ROUND_HALF_UP
    ctx.prec = 28  # Support up to 28 significant digits


# Initialize rounding on module load
set_currency_rounding_context()


# ============================================================================
# DECIMAL COERCION HELPER
# ============================================================================

def to_decimal(value: Any, default: Decimal = Decimal(0)) -> Decimal:
    """
    Safely coerce any value to a Decimal, preserving precision for money.

    Args:
        value: Any value to convert. Supports int, float, str, Decimal, None.
        default: Decimal fallback if conversion fails. Defaults to Decimal(0).

    Returns:
        Decimal: Precise numeric value, or default if conversion fails.

    Examples:
        >>> to_decimal('45.10')
        Decimal('45.10')
        >>> to_decimal(1.5) == Decimal('1.5')
        True
        >>> to_decimal('invalid') == Decimal(0)
        True

    Note:
        - Floats are coerced via str() to preserve precision
        - Existing Decimals are passed through unchanged
        - NaN and infinities are rejected and return default
    """
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, bool) or value is None:
            return default
        else:
            result = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def round_usd(value: Any) -> Decimal:
    """Round to cents with ROUND_HALF_UP."""
    return to_decimal(value).quantize(USD_PRECISION, rounding=ROUND_HALF_UP)


def format_usd(value: Any) -> str:
    """Render an amount as $1234.56 (no thousands separator)."""
    return f"${round_usd(value)}"
