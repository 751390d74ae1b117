# finance_tracker/main.py

import logging
import math
from datetime import date
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Form, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import JSONResponse, RedirectResponse

from . import aggregator, auth, config, crud, export
from .auth import get_admin_user, get_current_user, hash_password
from .dashboard_util import chart_payload, get_dashboard_data, month_options
from .database import get_db, init_db
from .errors import AdminRequired, DataIntegrityError, LoginRequired, NotFound, PermissionDenied
from .models import Profile
from .schemas import (
    CategoryIn,
    ProfileIn,
    ProfileUpdate,
    TransactionFilters,
    TransactionIn,
    first_error,
)
from .templating import STATIC_DIR, templates

config.configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Family Finance Tracker")

# Create tables if not already created
init_db()

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

app.add_middleware(SessionMiddleware, secret_key=config.SECRET_KEY)

# Include auth routes (login/register/logout)
app.include_router(auth.router)

NAV_ROUTES = [
    {"label": "Dashboard", "href": "/dashboard"},
    {"label": "Transactions", "href": "/transactions"},
    {"label": "Categories", "href": "/categories"},
    {"label": "Export Data", "href": "/export"},
    {"label": "Users", "href": "/users", "admin_only": True},
]


def render(request: Request, name: str, user: Profile, context: dict = None, status_code: int = 200):
    context = dict(context or {})
    context["user"] = user
    context["nav"] = [r for r in NAV_ROUTES if not r.get("admin_only") or user.is_admin]
    return templates.TemplateResponse(request, name, context, status_code=status_code)


# ---------------- Error handlers ----------------

@app.exception_handler(LoginRequired)
def login_required_handler(request: Request, exc: LoginRequired):
    return RedirectResponse("/login", status_code=302)


@app.exception_handler(AdminRequired)
def admin_required_handler(request: Request, exc: AdminRequired):
    return RedirectResponse("/dashboard", status_code=302)


def _error_page(request: Request, status_code: int, message: str):
    if request.url.path.startswith("/api/"):
        return JSONResponse({"detail": message}, status_code=status_code)
    return templates.TemplateResponse(
        request, "error.html", {"status_code": status_code, "message": message}, status_code=status_code
    )


@app.exception_handler(NotFound)
def not_found_handler(request: Request, exc: NotFound):
    return _error_page(request, 404, str(exc) or "Not found")


@app.exception_handler(PermissionDenied)
def permission_denied_handler(request: Request, exc: PermissionDenied):
    return _error_page(request, 403, str(exc) or "Permission denied")


@app.exception_handler(DataIntegrityError)
def data_integrity_handler(request: Request, exc: DataIntegrityError):
    return _error_page(request, 400, str(exc))


@app.get("/")
def home():
    return RedirectResponse("/dashboard")


# ---------------- Dashboard ----------------

def _dashboard_params(timeframe: str, months: List[str]):
    if timeframe not in aggregator.TIMEFRAMES:
        timeframe = "month"
    selected = aggregator.parse_months(m for m in months if m)
    return timeframe, selected


@app.get("/dashboard")
def dashboard(
    request: Request,
    timeframe: str = "month",
    months: List[str] = Query([]),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    timeframe, selected = _dashboard_params(timeframe, months)
    today = date.today()
    data = get_dashboard_data(db, user, today=today, timeframe=timeframe, months=selected)
    return render(request, "dashboard.html", user, {
        "data": data,
        "charts": chart_payload(data),
        "month_options": month_options(today),
        "selected": {f"{y:04d}-{m:02d}" for y, m in selected},
        "title": "Family" if user.is_admin else "Personal",
    })


@app.get("/api/dashboard")
def dashboard_api(
    timeframe: str = "month",
    months: List[str] = Query([]),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    timeframe, selected = _dashboard_params(timeframe, months)
    data = get_dashboard_data(db, user, timeframe=timeframe, months=selected)
    totals = data["totals"]
    return JSONResponse(jsonable_encoder({
        "totals": {"income": totals.income, "expense": totals.expense, "balance": totals.balance},
        "timeframe": timeframe,
        "selected_months": [f"{y:04d}-{m:02d}" for y, m in data["selected_months"]],
        "trend": data["trend"],
        "breakdown": data["breakdown"],
        "categories": data["categories"],
        "rejected": data["rejected"],
    }))


# ---------------- Transactions ----------------

def _transaction_filters(description, type, category, date_from, date_to):
    try:
        return TransactionFilters(
            description=description or "",
            type=type or "all",
            category=category or "all",
            date_from=date_from,
            date_to=date_to,
        ), None
    except ValidationError as exc:
        return TransactionFilters(), first_error(exc)


@app.get("/transactions")
def list_transactions(
    request: Request,
    description: str = "",
    type: str = "all",
    category: str = "all",
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    page: int = 1,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    filters, error = _transaction_filters(description, type, category, date_from, date_to)
    rows, total = crud.list_transactions(db, user, filters, page=page)
    pages = max(1, math.ceil(total / config.PAGE_SIZE))
    query = {
        "description": filters.description,
        "type": filters.type,
        "category": filters.category,
        "date_from": filters.date_from or "",
        "date_to": filters.date_to or "",
    }
    return render(request, "transactions.html", user, {
        "transactions": rows,
        "total": total,
        "page": max(page, 1),
        "pages": pages,
        "filters": filters,
        "querystring": urlencode(query),
        "categories": crud.list_categories(db, user, own_only=False),
        "error": error,
    })


@app.get("/transactions/export")
def export_transaction_list(
    description: str = "",
    type: str = "all",
    category: str = "all",
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    filters, _ = _transaction_filters(description, type, category, date_from, date_to)
    rows = crud.transactions_for_export(db, user, filters)
    content = export.transactions_csv(rows, with_user=False)
    return export.csv_response(content, export.export_filename("transactions"))


def _transaction_form(request, user, db, owner_id, txn=None, form=None, error=None):
    status_code = 400 if error else 200
    return render(request, "transaction_form.html", user, {
        "txn": txn,
        "form": form or {},
        "categories": crud.categories_for_owner(db, owner_id),
        "today": date.today().isoformat(),
        "error": error,
    }, status_code=status_code)


def _transaction_input(description, amount, type, date_value, category_id):
    return TransactionIn(
        description=description,
        amount=amount,
        type=type,
        date=date_value,
        category_id=category_id,
    )


@app.get("/transactions/add")
def add_transaction_form(
    request: Request,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _transaction_form(request, user, db, user.id)


@app.post("/transactions/add")
def add_transaction(
    request: Request,
    description: str = Form(""),
    amount: str = Form(""),
    type: str = Form("expense"),
    date: str = Form(""),
    category_id: str = Form("none"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    form = {"description": description, "amount": amount, "type": type, "date": date, "category_id": category_id}
    try:
        data = _transaction_input(description, amount, type, date, category_id)
        crud.create_transaction(db, user, data)
    except ValidationError as exc:
        return _transaction_form(request, user, db, user.id, form=form, error=first_error(exc))
    except DataIntegrityError as exc:
        return _transaction_form(request, user, db, user.id, form=form, error=str(exc))
    return RedirectResponse("/transactions", status_code=302)


@app.get("/transactions/{txn_id}/edit")
def edit_transaction_form(
    txn_id: int,
    request: Request,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    txn = crud.get_transaction(db, user, txn_id)
    return _transaction_form(request, user, db, txn.user_id, txn=txn)


@app.post("/transactions/{txn_id}/edit")
def update_transaction(
    txn_id: int,
    request: Request,
    description: str = Form(""),
    amount: str = Form(""),
    type: str = Form("expense"),
    date: str = Form(""),
    category_id: str = Form("none"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    txn = crud.get_transaction(db, user, txn_id)
    form = {"description": description, "amount": amount, "type": type, "date": date, "category_id": category_id}
    try:
        data = _transaction_input(description, amount, type, date, category_id)
        crud.update_transaction(db, user, txn_id, data)
    except ValidationError as exc:
        return _transaction_form(request, user, db, txn.user_id, txn=txn, form=form, error=first_error(exc))
    except DataIntegrityError as exc:
        db.rollback()
        return _transaction_form(request, user, db, txn.user_id, txn=txn, form=form, error=str(exc))
    return RedirectResponse("/transactions", status_code=302)


@app.post("/transactions/{txn_id}/delete")
def delete_transaction(
    txn_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    crud.delete_transaction(db, user, txn_id)
    return RedirectResponse("/transactions", status_code=302)


# ---------------- Categories ----------------

def _categories_page(request, user, db, error=None):
    return render(request, "categories.html", user, {
        "categories": crud.list_categories(db, user),
        "error": error,
    }, status_code=400 if error else 200)


@app.get("/categories")
def view_categories(
    request: Request,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _categories_page(request, user, db)


@app.post("/categories/add")
def add_category(
    request: Request,
    name: str = Form(""),
    color: str = Form("#3b82f6"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        crud.create_category(db, user, CategoryIn(name=name, color=color))
    except ValidationError as exc:
        return _categories_page(request, user, db, error=first_error(exc))
    return RedirectResponse("/categories", status_code=302)


@app.post("/categories/{category_id}/edit")
def update_category(
    category_id: int,
    request: Request,
    name: str = Form(""),
    color: str = Form("#3b82f6"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        data = CategoryIn(name=name, color=color)
    except ValidationError as exc:
        return _categories_page(request, user, db, error=first_error(exc))
    crud.update_category(db, user, category_id, data)
    return RedirectResponse("/categories", status_code=302)


@app.post("/categories/{category_id}/delete")
def delete_category(
    category_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    crud.delete_category(db, user, category_id)
    return RedirectResponse("/categories", status_code=302)


# ---------------- Users (admin only) ----------------

def _users_page(request, user, db, error=None, status_code=200):
    return render(request, "users.html", user, {
        "users": crud.list_profiles(db, user),
        "error": error,
        "min_password_length": config.MIN_PASSWORD_LENGTH,
    }, status_code=status_code)


@app.get("/users")
def view_users(
    request: Request,
    user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    return _users_page(request, user, db)


@app.post("/users/add")
def add_user(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    full_name: str = Form(""),
    is_admin: bool = Form(False),
    user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    try:
        data = ProfileIn(email=email, password=password, full_name=full_name or None, is_admin=is_admin)
        crud.add_profile(db, user, data, hash_password(data.password))
    except ValidationError as exc:
        return _users_page(request, user, db, error=first_error(exc), status_code=400)
    except DataIntegrityError as exc:
        db.rollback()
        return _users_page(request, user, db, error=str(exc), status_code=400)
    return RedirectResponse("/users", status_code=302)


@app.post("/users/{profile_id}/edit")
def update_user(
    profile_id: int,
    full_name: str = Form(""),
    is_admin: bool = Form(False),
    user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    crud.update_profile(db, user, profile_id, ProfileUpdate(full_name=full_name or None, is_admin=is_admin))
    return RedirectResponse("/users", status_code=302)


@app.post("/users/{profile_id}/delete")
def delete_user(
    profile_id: int,
    request: Request,
    user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    try:
        crud.delete_profile(db, user, profile_id)
    except PermissionDenied as exc:
        return _users_page(request, user, db, error=str(exc), status_code=403)
    return RedirectResponse("/users", status_code=302)


# ---------------- Export ----------------

@app.get("/export")
def export_page(request: Request, user: Profile = Depends(get_current_user)):
    return render(request, "export.html", user, {"kinds": export.EXPORT_KINDS})


@app.get("/export/csv")
def export_csv(
    kind: str = "transactions",
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if kind not in export.EXPORT_KINDS:
        raise DataIntegrityError(f"Unknown export type: {kind}")

    if kind == "transactions":
        content = export.transactions_csv(crud.transactions_for_export(db, user))
    else:
        content = export.categories_csv(crud.list_categories(db, user, own_only=False))
    logger.info("User %s exported %s", user.id, kind)
    return export.csv_response(content, export.export_filename(kind))
