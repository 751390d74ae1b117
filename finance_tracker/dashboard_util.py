from datetime import date

from . import aggregator, crud
from .default_categories import color_for


def _num(value):
    return float(value)


def get_dashboard_data(db, viewer, today=None, timeframe="month", months=None):
    """Everything the dashboard page and /api/dashboard show.

    ``months`` is an optional set of (year, month) pairs restricting the
    summary cards; the trend and category charts always cover the trailing
    twelve months ending at ``today``.
    """
    today = today or date.today()

    # Summary cards
    start, end = aggregator.selection_bounds(months) if months else (None, None)
    summary_rows = crud.totals_by_type(db, viewer, start, end)
    summary_records, summary_rejected = aggregator.normalize_records(summary_rows)
    totals = aggregator.summarize(summary_records, months or None)

    # Trailing window
    window_start, window_end = aggregator.window_bounds(today)
    window_rows = crud.transactions_between(db, viewer, window_start, window_end)
    records, rejected = aggregator.normalize_records(window_rows)
    series = aggregator.monthly_series(records, today)
    periods = aggregator.rollup(series, timeframe)

    known_colors = crud.category_colors(db, viewer)
    names = aggregator.category_names(series)

    rejected_ids = {getattr(row, "id", None) for row, _ in summary_rejected + rejected}

    return {
        "totals": totals,
        "timeframe": timeframe,
        "selected_months": sorted(months or []),
        "window": {"start": window_start, "end": window_end},
        "series": series,
        "trend": aggregator.trend_rows(periods),
        "breakdown": aggregator.breakdown_rows(series),
        "categories": [
            {"name": name, "color": color_for(name, index, known_colors)}
            for index, name in enumerate(names)
        ],
        "rejected": len(rejected_ids),
    }


def chart_payload(data):
    """Float-valued chart datasets for the Chart.js canvases."""
    trend = data["trend"]
    breakdown = data["breakdown"]
    return {
        "trend": {
            "labels": [row["label"] for row in trend],
            "income": [_num(row["income"]) for row in trend],
            "expense": [_num(row["expense"]) for row in trend],
            "balance": [_num(row["balance"]) for row in trend],
        },
        "categories": {
            "labels": [row["label"] for row in breakdown],
            "datasets": [
                {
                    "label": category["name"],
                    "color": category["color"],
                    "data": [_num(row.get(category["name"], 0)) for row in breakdown],
                }
                for category in data["categories"]
            ],
        },
    }


def month_options(today=None, window=aggregator.DEFAULT_WINDOW):
    """(value, label) choices for the month selector, newest first."""
    today = today or date.today()
    options = []
    for year, month in reversed(aggregator.month_sequence(today, window)):
        options.append((f"{year:04d}-{month:02d}", f"{aggregator.MONTH_NAMES[month - 1]} {year}"))
    return options
