CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "$",
    "AUD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "ILS": "₪",
    "INR": "₹",
}


def currency_symbol(currency: str | None) -> str:
    """Display symbol for an ISO code; unknown codes render as 'CHF '."""
    if not currency:
        return "$"
    return CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")


def format_currency(amount: float, symbol: str = "$") -> str:
    """Format a float as currency string, e.g. '$1,234.56' or '-$300.00'."""
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"
