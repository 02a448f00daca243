"""Currency formatting helpers"""


def format_money(amount: float) -> str:
    """Render an amount as dollars with thousands separators: 14775 -> $14,775.00"""
    return f"${amount:,.2f}"


def round_cents(amount: float) -> float:
    return round(amount, 2)
