"""Human-facing formatting of amounts and currencies."""

from decimal import ROUND_HALF_UP, Decimal

from .enums import CURRENCY_SYMBOLS

TWO_PLACES = Decimal("0.01")


def currency_symbol(code: str) -> str:
    """Symbol for a currency code; unknown codes display as the literal code."""
    return CURRENCY_SYMBOLS.get(code.upper(), code)


def format_amount(amount: Decimal, currency: str, *, use_code: bool = False) -> str:
    """Format as ``<symbol><grouped amount, 2 decimals>``, e.g. ``$2,500.00``.

    With ``use_code`` the ISO code replaces the symbol: ``INR 2,500.00``.
    """
    quantized = Decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if use_code:
        return f"{currency.upper()} {quantized:,.2f}"
    return f"{currency_symbol(currency)}{quantized:,.2f}"


def format_quantity(quantity: Decimal) -> str:
    """Quantities without trailing zeros: ``2``, ``1.5``."""
    return f"{Decimal(quantity).normalize():f}"
