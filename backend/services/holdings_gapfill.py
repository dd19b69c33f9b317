"""Expand sparse holdings into a dense daily series."""

from collections import defaultdict
from dataclasses import replace
from datetime import date, timedelta
from typing import Iterable, Optional

from services.forward_calculator import HoldingRow


def _fill(row: HoldingRow, start: date, stop: date) -> list[HoldingRow]:
    """Copies of ``row`` for every day in ``[start, stop)``."""
    filled = []
    current = start
    while current < stop:
        filled.append(replace(row, date=current))
        current += timedelta(days=1)
    return filled


def gapfill(rows: Iterable[HoldingRow], end_date: Optional[date] = None) -> list[HoldingRow]:
    """Forward-fill each security's last known qty and price across missing days.

    An open position is carried to the next sparse date of the same security,
    and the last one to ``end_date`` when given. A closed position (qty 0)
    is never carried past its closing date. Returns new rows sorted by date
    then security; the input is left unchanged.
    """
    by_security: dict[str, list[HoldingRow]] = defaultdict(list)
    for row in rows:
        by_security[row.security_id].append(row)

    dense: list[HoldingRow] = []
    for security_rows in by_security.values():
        security_rows = sorted(security_rows, key=lambda r: r.date)
        for current, following in zip(security_rows, security_rows[1:] + [None]):
            dense.append(replace(current))
            if current.qty == 0:
                continue
            if following is not None:
                dense.extend(_fill(current, current.date + timedelta(days=1), following.date))
            elif end_date is not None:
                dense.extend(_fill(current, current.date + timedelta(days=1), end_date + timedelta(days=1)))

    dense.sort(key=lambda r: (r.date, r.security_id))
    return dense
