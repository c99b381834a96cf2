from datetime import date, datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo


def property_today(timezone_name: str = "UTC") -> date:
    """Calendar date at the property; ledger nights are local dates"""
    return datetime.now(ZoneInfo(timezone_name)).date()


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Parse a date from a channel payload or event. Returns None if unreadable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%Y%m%d"):
        try:
            return datetime.strptime(text.split("T")[0].split(" ")[0], fmt).date()
        except ValueError:
            continue
    return None
