from datetime import date
from decimal import Decimal

from sqlalchemy import text

from finance_tracker import crud
from finance_tracker.dashboard_util import chart_payload, get_dashboard_data, month_options
from finance_tracker.default_categories import CATEGORY_COLORS, color_for
from finance_tracker.models import Profile
from finance_tracker.schemas import CategoryIn, TransactionIn


def test_dashboard_data_uses_stored_category_colors(db, make_user):
    user = db.get(Profile, make_user("alice@example.com"))
    pets = crud.create_category(db, user, CategoryIn(name="Pets", color="#abcdef"))
    for description, amount, kind, category_id in [
        ("Vet", "30", "expense", pets.id),
        ("Snack", "5", "expense", None),
        ("Pay", "200", "income", None),
    ]:
        crud.create_transaction(
            db, user,
            TransactionIn(description=description, amount=amount, type=kind, date=date(2024, 5, 3), category_id=category_id),
        )

    data = get_dashboard_data(db, user, today=date(2024, 5, 20))

    assert data["totals"].balance == Decimal("165")
    assert data["series"][-1].categories == {"Pets": Decimal("30"), "Uncategorized": Decimal("5")}
    colors = {c["name"]: c["color"] for c in data["categories"]}
    assert colors == {"Pets": "#abcdef", "Uncategorized": CATEGORY_COLORS["Uncategorized"]}

    charts = chart_payload(data)
    assert charts["trend"]["labels"][-1] == "May"
    assert charts["trend"]["balance"][-1] == 165.0
    pets_dataset = next(d for d in charts["categories"]["datasets"] if d["label"] == "Pets")
    assert pets_dataset["data"][-1] == 30.0
    assert pets_dataset["data"][0] == 0.0


def test_color_fallbacks():
    assert color_for("Food", 0) == CATEGORY_COLORS["Food"]
    assert color_for("Food", 0, {"Food": "#000000"}) == "#000000"
    assert color_for("Gadgets", 2) == "hsl(60, 70%, 50%)"


def test_month_options_newest_first():
    options = month_options(date(2024, 1, 10))
    assert options[0] == ("2024-01", "January 2024")
    assert options[-1] == ("2023-02", "February 2023")
    assert len(options) == 12


def test_stored_row_with_negative_amount_is_excluded(db, make_user):
    user_id = make_user("alice@example.com")
    user = db.get(Profile, user_id)
    crud.create_transaction(
        db, user, TransactionIn(description="Groceries", amount="10", type="expense", date=date(2024, 1, 5))
    )
    db.execute(
        text(
            "INSERT INTO transactions (description, amount, type, date, user_id) "
            "VALUES ('Broken import', -5, 'expense', '2024-01-10', :user_id)"
        ),
        {"user_id": user_id},
    )
    db.commit()

    data = get_dashboard_data(db, user, today=date(2024, 1, 31))

    assert data["totals"].expense == Decimal("10")
    assert data["rejected"] == 1
    assert data["series"][-1].label == "Jan"
    assert data["series"][-1].expense == Decimal("10")

    selected = get_dashboard_data(db, user, today=date(2024, 1, 31), months={(2024, 1)})
    assert selected["totals"].expense == Decimal("10")
    assert selected["rejected"] == 1
