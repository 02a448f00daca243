"""Date manipulation utilities"""

from datetime import datetime

from dateutil.relativedelta import relativedelta


def add_months(from_date: datetime, months: int) -> datetime:
    """Add calendar months, clamping to the last day of shorter months"""
    return from_date + relativedelta(months=months)
