# finance_tracker/templating.py

import os
from datetime import date

from fastapi.templating import Jinja2Templates

from .aggregator import MONTH_ABBR

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "templates")
STATIC_DIR = os.path.join(os.path.dirname(__file__), "static")

templates = Jinja2Templates(directory=TEMPLATE_DIR)


def money(value):
    return f"${float(value or 0):,.2f}"


def long_date(value):
    if isinstance(value, date):
        return f"{MONTH_ABBR[value.month - 1]} {value.day:02d}, {value.year}"
    return value or ""


templates.env.filters["money"] = money
templates.env.filters["long_date"] = long_date
