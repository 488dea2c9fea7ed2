"""Text helpers for Telegram HTML messages."""

from html import escape


def short_address(address: str) -> str:
    """Truncate a long address for display, e.g. 'EPjF...Dt1v'."""
    if not address or len(address) < 10:
        return address
    return f"{address[:4]}...{address[-4:]}"


def format_number(value: float, decimals: int = 2) -> str:
    return f"{value:,.{decimals}f}"


def format_price(value: float) -> str:
    # Sub-cent tokens need more than two decimals to be readable
    if 0 < abs(value) < 0.01:
        return f"${value:.8f}".rstrip("0")
    return f"${format_number(value)}"


def code(text: str) -> str:
    return f"<code>{escape(text)}</code>"
