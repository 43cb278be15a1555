"""
Helper utility functions
"""
from datetime import datetime, date, timezone
from typing import Optional
from uuid import uuid4

from dateutil.relativedelta import relativedelta


def utc_now() -> datetime:
    """Current UTC time as a naive datetime (the store keeps naive UTC timestamps)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_number(value: Optional[float]) -> str:
    """
    Format a number with thousands separators, at most three decimals
    Examples: 80 -> "80", 1234567.5 -> "1,234,567.5", None -> "N/A"
    """
    if value is None:
        return "N/A"

    if float(value).is_integer():
        return f"{int(value):,}"

    formatted = f"{value:,.3f}".rstrip('0').rstrip('.')
    return formatted


def parse_currency(amount_str: str) -> Optional[float]:
    """
    Parse currency string to float
    Examples: "$1,234.56", "($1,234.56)", "-$1,234.56"
    """
    if amount_str is None:
        return None

    amount_str = str(amount_str).strip()

    if amount_str in ['', '-', 'N/A', 'n/a']:
        return None

    amount_str = amount_str.replace('$', '').replace(',', '').strip()

    # Handle parentheses as negative
    if amount_str.startswith('(') and amount_str.endswith(')'):
        amount_str = '-' + amount_str[1:-1]

    try:
        return float(amount_str)
    except ValueError:
        return None


def truncate(text: str, limit: int) -> str:
    """Hard-truncate text to at most `limit` characters"""
    if text is None:
        return ""
    return text[:limit]


def current_period(today: Optional[date] = None) -> tuple[date, date]:
    """Reporting period for synced KPIs: first of the month through today"""
    today = today or utc_now().date()
    return today + relativedelta(day=1), today


def generate_id(prefix: str = "") -> str:
    """Generate a unique ID"""
    unique = str(uuid4())
    if prefix:
        return f"{prefix}_{unique}"
    return unique
