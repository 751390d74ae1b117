# finance_tracker/crud.py
#
# Every query takes the viewing profile. Admins see every row, everybody
# else only rows they own; rows outside the viewer's scope behave as if
# they did not exist.

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from . import config
from .default_categories import DEFAULT_CATEGORIES
from .errors import DataIntegrityError, NotFound, PermissionDenied
from .models import Category, Profile, Transaction
from .schemas import CategoryIn, ProfileIn, ProfileUpdate, TransactionFilters, TransactionIn

logger = logging.getLogger(__name__)


def _scoped(query, model, viewer: Profile):
    if viewer.is_admin:
        return query
    return query.filter(model.user_id == viewer.id)


def _visible(row, viewer: Profile, label: str, row_id):
    if row is None or not (viewer.is_admin or row.user_id == viewer.id):
        raise NotFound(f"{label} {row_id} not found")
    return row


def _require_admin(viewer: Profile):
    if not viewer.is_admin:
        raise PermissionDenied("Only admins can manage users")


# ---------------- Transactions ----------------

def _filtered_transactions(db: Session, viewer: Profile, filters: Optional[TransactionFilters]):
    query = _scoped(db.query(Transaction), Transaction, viewer)
    if filters is None:
        return query

    text = filters.description.strip()
    if text:
        query = query.filter(Transaction.description.ilike(f"%{text}%"))
    if filters.type in ("income", "expense"):
        query = query.filter(Transaction.type == filters.type)
    if filters.category_id is not None:
        query = query.filter(Transaction.category_id == filters.category_id)
    if filters.date_from:
        query = query.filter(Transaction.date >= filters.date_from)
    if filters.date_to:
        query = query.filter(Transaction.date <= filters.date_to)
    return query


def _with_relations(query):
    return query.options(joinedload(Transaction.category), joinedload(Transaction.owner))


def list_transactions(db: Session, viewer: Profile, filters: TransactionFilters = None,
                      page: int = 1, per_page: int = None):
    """One page of transactions, newest first, plus the total match count."""
    per_page = per_page or config.PAGE_SIZE
    page = max(page, 1)
    query = _filtered_transactions(db, viewer, filters)
    total = query.count()
    rows = (
        _with_relations(query)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return rows, total


def transactions_for_export(db: Session, viewer: Profile, filters: TransactionFilters = None):
    query = _with_relations(_filtered_transactions(db, viewer, filters))
    return query.order_by(Transaction.date.desc(), Transaction.id.desc()).all()


def transactions_between(db: Session, viewer: Profile, start: date = None, end: date = None):
    """Visible transactions with date in [start, end]; open ends are unbounded."""
    query = _scoped(db.query(Transaction), Transaction, viewer).options(joinedload(Transaction.category))
    if start:
        query = query.filter(Transaction.date >= start)
    if end:
        query = query.filter(Transaction.date <= end)
    return query.all()


def totals_by_type(db: Session, viewer: Profile, start: date = None, end: date = None):
    """Source rows for the summary cards: id, date, amount and type only.

    Amounts still go through the aggregator boundary so that unusable rows
    are excluded from the totals instead of being summed.
    """
    query = _scoped(
        db.query(Transaction.id, Transaction.date, Transaction.amount, Transaction.type),
        Transaction, viewer,
    )
    if start:
        query = query.filter(Transaction.date >= start)
    if end:
        query = query.filter(Transaction.date <= end)
    return query.all()


def get_transaction(db: Session, viewer: Profile, txn_id: int) -> Transaction:
    return _visible(db.get(Transaction, txn_id), viewer, "transaction", txn_id)


def _resolve_category(db: Session, category_id, owner_id):
    # A transaction can only point at one of its owner's categories
    if category_id is None:
        return None
    category = db.get(Category, category_id)
    if category is None or category.user_id != owner_id:
        raise DataIntegrityError("Unknown category.")
    return category.id


def create_transaction(db: Session, viewer: Profile, data: TransactionIn) -> Transaction:
    txn = Transaction(
        description=data.description,
        amount=data.amount,
        type=data.type,
        date=data.date,
        category_id=_resolve_category(db, data.category_id, viewer.id),
        user_id=viewer.id,
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    logger.info("User %s created transaction %s", viewer.id, txn.id)
    return txn


def update_transaction(db: Session, viewer: Profile, txn_id: int, data: TransactionIn) -> Transaction:
    txn = get_transaction(db, viewer, txn_id)
    txn.description = data.description
    txn.amount = data.amount
    txn.type = data.type
    txn.date = data.date
    txn.category_id = _resolve_category(db, data.category_id, txn.user_id)
    db.commit()
    db.refresh(txn)
    logger.info("User %s updated transaction %s", viewer.id, txn.id)
    return txn


def delete_transaction(db: Session, viewer: Profile, txn_id: int):
    txn = get_transaction(db, viewer, txn_id)
    db.delete(txn)
    db.commit()
    logger.info("User %s deleted transaction %s", viewer.id, txn_id)


# ---------------- Categories ----------------

def list_categories(db: Session, viewer: Profile, own_only: bool = True):
    query = db.query(Category)
    if own_only:
        query = query.filter(Category.user_id == viewer.id)
    else:
        query = _scoped(query, Category, viewer)
    return query.options(joinedload(Category.owner)).order_by(Category.name).all()


def categories_for_owner(db: Session, owner_id: int):
    return db.query(Category).filter(Category.user_id == owner_id).order_by(Category.name).all()


def category_colors(db: Session, viewer: Profile):
    """Map of category name to stored color across the viewer's scope."""
    colors = {}
    for category in list_categories(db, viewer, own_only=False):
        colors.setdefault(category.name, category.color)
    return colors


def get_category(db: Session, viewer: Profile, category_id: int) -> Category:
    return _visible(db.get(Category, category_id), viewer, "category", category_id)


def create_category(db: Session, viewer: Profile, data: CategoryIn) -> Category:
    category = Category(name=data.name, color=data.color, user_id=viewer.id)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info("User %s created category %s", viewer.id, category.id)
    return category


def update_category(db: Session, viewer: Profile, category_id: int, data: CategoryIn) -> Category:
    category = get_category(db, viewer, category_id)
    category.name = data.name
    category.color = data.color
    db.commit()
    db.refresh(category)
    logger.info("User %s updated category %s", viewer.id, category.id)
    return category


def delete_category(db: Session, viewer: Profile, category_id: int):
    category = get_category(db, viewer, category_id)
    # Transactions in this category become Uncategorized
    db.query(Transaction).filter(Transaction.category_id == category.id).update(
        {Transaction.category_id: None}, synchronize_session="fetch"
    )
    db.delete(category)
    db.commit()
    logger.info("User %s deleted category %s", viewer.id, category_id)


# ---------------- Profiles ----------------

def get_profile_by_email(db: Session, email: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.email == email.strip().lower()).first()


def create_profile(db: Session, data: ProfileIn, password_hash: str) -> Profile:
    if get_profile_by_email(db, data.email):
        raise DataIntegrityError("Email already registered.")

    profile = Profile(
        email=data.email,
        full_name=data.full_name,
        password_hash=password_hash,
        is_admin=data.is_admin,
    )
    db.add(profile)
    db.flush()

    # Add default categories for new user
    for cat in DEFAULT_CATEGORIES:
        db.add(Category(name=cat["name"], color=cat["color"], user_id=profile.id))
    db.commit()
    db.refresh(profile)
    logger.info("Created profile %s (admin=%s)", profile.id, profile.is_admin)
    return profile


def list_profiles(db: Session, viewer: Profile):
    _require_admin(viewer)
    return db.query(Profile).order_by(Profile.created_at.desc(), Profile.id.desc()).all()


def add_profile(db: Session, viewer: Profile, data: ProfileIn, password_hash: str) -> Profile:
    _require_admin(viewer)
    return create_profile(db, data, password_hash)


def get_profile(db: Session, viewer: Profile, profile_id: int) -> Profile:
    _require_admin(viewer)
    profile = db.get(Profile, profile_id)
    if profile is None:
        raise NotFound(f"user {profile_id} not found")
    return profile


def update_profile(db: Session, viewer: Profile, profile_id: int, data: ProfileUpdate) -> Profile:
    profile = get_profile(db, viewer, profile_id)
    profile.full_name = data.full_name or None
    profile.is_admin = data.is_admin
    db.commit()
    db.refresh(profile)
    logger.info("Admin %s updated profile %s", viewer.id, profile.id)
    return profile


def delete_profile(db: Session, viewer: Profile, profile_id: int):
    profile = get_profile(db, viewer, profile_id)
    if profile.id == viewer.id:
        raise PermissionDenied("You cannot delete your own account")
    db.delete(profile)
    db.commit()
    logger.info("Admin %s deleted profile %s", viewer.id, profile_id)
