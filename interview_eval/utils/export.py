"""Small formatting helpers shared by the batch and history exporters."""

from datetime import datetime
from typing import Any, Iterable, Optional, Union

Number = Union[int, float]

REPORT_RULE = "====================================="
ITEM_RULE = "-------------------------------------"


def quote_csv(value: Any) -> str:
    """Wrap a field in double quotes, doubling any embedded quote."""
    return '"' + str(value).replace('"', '""') + '"'


def format_number(value: Optional[Number]) -> str:
    """Render 85.0 as ``85`` and 7.5 as ``7.5``; None becomes an empty field."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


def csv_lines(header: Iterable[str], rows: Iterable[Iterable[str]]) -> str:
    lines = [",".join(header)]
    lines.extend(",".join(row) for row in rows)
    return "\n".join(lines) + "\n"
