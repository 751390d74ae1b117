# finance_tracker/aggregator.py
"""Monthly income/expense aggregation for the dashboard.

Everything here is a pure function of its arguments. Rows coming from the
database go through :func:`to_record` / :func:`normalize_records` first, so
the aggregation functions only ever see validated ``Decimal`` amounts.
"""

import calendar
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Set, Tuple

from .default_categories import UNCATEGORIZED
from .errors import DataIntegrityError
from .models import TRANSACTION_TYPES

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DEFAULT_WINDOW = 12
TIMEFRAMES = ("month", "quarter", "year")

# English month names regardless of the process locale
MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


@dataclass(frozen=True)
class Record:
    date: date
    amount: Decimal
    type: str
    category_name: Optional[str] = None


class _Sums:
    """Income/expense accumulation shared by month and period buckets."""

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense

    def add(self, record: Record):
        if record.type == "income":
            self.income += record.amount
        elif record.type == "expense":
            self.expense += record.amount
            name = record.category_name or UNCATEGORIZED
            self.categories[name] = self.categories.get(name, ZERO) + record.amount
        else:
            raise ValueError(f"unknown transaction type: {record.type!r}")

    def absorb(self, other: "_Sums"):
        self.income += other.income
        self.expense += other.expense
        for name, amount in other.categories.items():
            self.categories[name] = self.categories.get(name, ZERO) + amount


@dataclass
class MonthBucket(_Sums):
    label: str
    year: int
    month: int
    income: Decimal = ZERO
    expense: Decimal = ZERO
    categories: dict = field(default_factory=dict)


@dataclass
class PeriodBucket(_Sums):
    label: str
    months: list = field(default_factory=list)
    income: Decimal = ZERO
    expense: Decimal = ZERO
    categories: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Totals:
    income: Decimal = ZERO
    expense: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense


# ---------------- Boundary ----------------

def _field(row, name):
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def _parse_amount(raw) -> Decimal:
    if raw is None or isinstance(raw, bool):
        raise DataIntegrityError(f"invalid amount: {raw!r}")
    try:
        amount = raw if isinstance(raw, Decimal) else Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise DataIntegrityError(f"invalid amount: {raw!r}") from None
    if not amount.is_finite():
        raise DataIntegrityError(f"invalid amount: {raw!r}")
    if amount < 0:
        raise DataIntegrityError(f"negative amount: {raw!r}")
    return amount


def _parse_date(raw) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        try:
            return date.fromisoformat(raw.strip())
        except ValueError:
            pass
    raise DataIntegrityError(f"invalid date: {raw!r}")


def to_record(row) -> Record:
    """Convert a transaction row (ORM object or mapping) into a Record.

    Raises DataIntegrityError when the amount, date or type is unusable.
    """
    kind = _field(row, "type")
    if kind not in TRANSACTION_TYPES:
        raise DataIntegrityError(f"invalid type: {kind!r}")
    return Record(
        date=_parse_date(_field(row, "date")),
        amount=_parse_amount(_field(row, "amount")),
        type=kind,
        category_name=_field(row, "category_name") or None,
    )


def normalize_records(rows) -> Tuple[List[Record], list]:
    """Validate rows, returning (records, rejected).

    ``rejected`` holds (row, reason) pairs; rejected rows are left out of
    the records rather than counted as zero.
    """
    records, rejected = [], []
    for row in rows:
        try:
            records.append(to_record(row))
        except DataIntegrityError as exc:
            logger.warning("Excluding transaction %s from aggregation: %s", _field(row, "id"), exc)
            rejected.append((row, str(exc)))
    return records, rejected


# ---------------- Calendar helpers ----------------

def month_label(year: int, month: int) -> str:
    return MONTH_ABBR[month - 1]


def month_range(year: int, month: int) -> Tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def month_sequence(anchor: date, window: int = DEFAULT_WINDOW) -> List[Tuple[int, int]]:
    """(year, month) pairs for the trailing window ending at anchor, oldest first."""
    if window < 1:
        raise ValueError("window must be at least one month")
    base = anchor.year * 12 + anchor.month - 1
    months = []
    for i in range(window):
        year, month_index = divmod(base - (window - 1) + i, 12)
        months.append((year, month_index + 1))
    return months


def window_bounds(anchor: date, window: int = DEFAULT_WINDOW) -> Tuple[date, date]:
    months = month_sequence(anchor, window)
    return month_range(*months[0])[0], month_range(*months[-1])[1]


def selection_bounds(months: Iterable[Tuple[int, int]]) -> Optional[Tuple[date, date]]:
    months = sorted(months)
    if not months:
        return None
    return month_range(*months[0])[0], month_range(*months[-1])[1]


def parse_months(values: Iterable[str]) -> Set[Tuple[int, int]]:
    """Parse ``YYYY-MM`` strings into a set of (year, month) pairs."""
    selected = set()
    for value in values:
        try:
            parsed = datetime.strptime(value.strip(), "%Y-%m")
        except (AttributeError, ValueError):
            raise DataIntegrityError(f"invalid month: {value!r} (expected YYYY-MM)") from None
        selected.add((parsed.year, parsed.month))
    return selected


# ---------------- Aggregation ----------------

def monthly_series(records: Iterable[Record], anchor: date, window: int = DEFAULT_WINDOW) -> List[MonthBucket]:
    buckets = [
        MonthBucket(label=month_label(year, month), year=year, month=month)
        for year, month in month_sequence(anchor, window)
    ]
    by_month = {(b.year, b.month): b for b in buckets}
    for record in records:
        bucket = by_month.get((record.date.year, record.date.month))
        if bucket is not None:
            bucket.add(record)
    return buckets


def summarize(records: Iterable[Record], months: Optional[Iterable[Tuple[int, int]]] = None) -> Totals:
    # No month selection means every record counts
    selected = None if months is None else set(months)
    income = expense = ZERO
    for record in records:
        if selected is not None and (record.date.year, record.date.month) not in selected:
            continue
        if record.type == "income":
            income += record.amount
        elif record.type == "expense":
            expense += record.amount
    return Totals(income=income, expense=expense)


def _period_key(bucket: MonthBucket, timeframe: str):
    if timeframe == "quarter":
        quarter = (bucket.month - 1) // 3 + 1
        return (bucket.year, quarter), f"Q{quarter} {bucket.year}"
    return bucket.year, str(bucket.year)


def rollup(series: List[MonthBucket], timeframe: str = "month") -> list:
    """Group a monthly series into calendar quarters or years.

    Buckets are grouped by the calendar period they actually belong to, so a
    window that does not start on a quarter boundary yields partial first
    and last quarters.
    """
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"unknown timeframe: {timeframe!r}")
    if timeframe == "month":
        return list(series)

    periods = {}
    for bucket in series:
        key, label = _period_key(bucket, timeframe)
        period = periods.get(key)
        if period is None:
            period = periods[key] = PeriodBucket(label=label)
        period.months.append((bucket.year, bucket.month))
        period.absorb(bucket)
    return list(periods.values())


def trend_rows(series) -> List[dict]:
    return [
        {"label": b.label, "income": b.income, "expense": b.expense, "balance": b.balance}
        for b in series
    ]


def breakdown_rows(series) -> List[dict]:
    rows = []
    for bucket in series:
        row = {"label": bucket.label}
        row.update(bucket.categories)
        rows.append(row)
    return rows


def category_names(series) -> List[str]:
    """Every category name in the series, in first-seen order."""
    names = []
    for bucket in series:
        for name in bucket.categories:
            if name not in names:
                names.append(name)
    return names
