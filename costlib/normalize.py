"""
Normalization of Cost Management query responses into monthly totals.

The same query can come back with different column names (PreTaxCost vs Cost,
UsageDate vs BillingMonth) and different date encodings (20240101 integers
for daily granularity, ISO strings for monthly). Columns are resolved once per
response from ordered candidate lists.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .constants import (
    COST_COLUMN_CANDIDATES,
    CURRENCY_COLUMN_CANDIDATES,
    MONTH_COLUMN_CANDIDATES,
)
from .errors import EmptyResponse, MalformedRow, MissingColumns, UnparseableCost, UnparseableDate
from .models import MonthTotal

logger = logging.getLogger(__name__)

_GENERIC_DATE_FORMATS = ('%Y-%m', '%m/%d/%Y', '%m/%d/%Y %H:%M:%S', '%Y/%m/%d')


def _extract_table(body: Any):
    """Return (column_names, rows) from any supported response shape."""
    if body is None:
        raise EmptyResponse()

    if isinstance(body, Mapping):
        table = body.get('properties', body)
        if not isinstance(table, Mapping):
            raise EmptyResponse()
        columns = table.get('columns')
        rows = table.get('rows')
    else:
        # SDK QueryResult
        columns = getattr(body, 'columns', None)
        rows = getattr(body, 'rows', None)

    if not columns:
        raise EmptyResponse()

    names = []
    for col in columns:
        if isinstance(col, Mapping):
            names.append(col.get('name'))
        else:
            names.append(getattr(col, 'name', None))

    return names, rows or []


def find_column(names: Sequence[Optional[str]], candidates: Sequence[str]) -> Optional[int]:
    """Index of the first candidate present in names, or None."""
    for candidate in candidates:
        if candidate in names:
            return names.index(candidate)
    return None


def parse_month(value: Any) -> datetime:
    """
    Parse a usage date value.

    6 digits are yyyyMM, 8 digits are yyyyMMdd, anything else goes through
    generic ISO / common format parsing.
    """
    if value is None:
        raise UnparseableDate(value)

    text = str(value).strip()
    if isinstance(value, float) and value.is_integer():
        text = str(int(value))

    try:
        if text.isdigit() and len(text) == 6:
            return datetime.strptime(text, '%Y%m')
        if text.isdigit() and len(text) == 8:
            return datetime.strptime(text, '%Y%m%d')
    except ValueError:
        raise UnparseableDate(value)

    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        pass

    for fmt in _GENERIC_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    raise UnparseableDate(value)


def parse_cost(value: Any) -> Decimal:
    """Exact decimal for a cost cell; empty cells count as zero."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decimal("0")
    try:
        cost = Decimal(str(value).strip())
    except InvalidOperation:
        raise UnparseableCost(value)
    if not cost.is_finite():
        raise UnparseableCost(value)
    return cost


def normalize(body: Any) -> Dict[str, MonthTotal]:
    """
    Map a query response into {YYYY-MM: MonthTotal}.

    Args:
        body: REST body ({"properties": {"columns", "rows"}}), a flattened
              {"columns", "rows"} dict, or an SDK QueryResult

    Returns:
        Totals for every month observed in the rows; months without rows
        are absent.

    Raises:
        EmptyResponse, MissingColumns, MalformedRow, UnparseableDate,
        UnparseableCost
    """
    names, rows = _extract_table(body)

    cost_idx = find_column(names, COST_COLUMN_CANDIDATES)
    month_idx = find_column(names, MONTH_COLUMN_CANDIDATES)
    currency_idx = find_column(names, CURRENCY_COLUMN_CANDIDATES)

    missing: List[str] = []
    if cost_idx is None:
        missing.append('/'.join(COST_COLUMN_CANDIDATES))
    if month_idx is None:
        missing.append('/'.join(MONTH_COLUMN_CANDIDATES))
    if missing:
        raise MissingColumns(missing, [n for n in names if n])

    width = max(i for i in (cost_idx, month_idx, currency_idx) if i is not None) + 1

    totals: Dict[str, MonthTotal] = {}
    for row_index, row in enumerate(rows):
        if len(row) < width:
            raise MalformedRow(row_index, len(row), width)

        when = parse_month(row[month_idx])
        key = f"{when.year:04d}-{when.month:02d}"

        currency = None
        if currency_idx is not None:
            raw = row[currency_idx]
            currency = str(raw).strip() if raw is not None else None

        totals.setdefault(key, MonthTotal()).add(parse_cost(row[cost_idx]), currency)

    logger.debug(f"Normalized {len(rows)} rows into {len(totals)} months")
    return totals
