# finance_tracker/export.py

import csv
from datetime import date
from io import StringIO

from fastapi.responses import StreamingResponse

from .default_categories import UNCATEGORIZED

TRANSACTION_HEADERS = ["Date", "Description", "Amount", "Type", "Category"]
CATEGORY_HEADERS = ["Name", "Color", "User"]
EXPORT_KINDS = ("transactions", "categories")


def owner_label(profile):
    if profile is None:
        return "Unknown"
    return profile.full_name or profile.email or "Unknown"


def transaction_row(txn, with_user=True):
    row = [
        txn.date.isoformat(),
        txn.description,
        f"{txn.amount:.2f}",
        txn.type,
        txn.category.name if txn.category else UNCATEGORIZED,
    ]
    if with_user:
        row.append(owner_label(txn.owner))
    return row


def category_row(category):
    return [category.name, category.color, owner_label(category.owner)]


def to_csv(headers, rows) -> str:
    data = StringIO()
    writer = csv.writer(data, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return data.getvalue()


def transactions_csv(transactions, with_user=True) -> str:
    headers = TRANSACTION_HEADERS + ["User"] if with_user else TRANSACTION_HEADERS
    return to_csv(headers, (transaction_row(t, with_user) for t in transactions))


def categories_csv(categories) -> str:
    return to_csv(CATEGORY_HEADERS, (category_row(c) for c in categories))


def export_filename(kind, today=None):
    today = today or date.today()
    return f"{kind}_{today.isoformat()}.csv"


def csv_response(content: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([content]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
