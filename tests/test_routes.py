from datetime import date

import pytest

from finance_tracker.database import SessionLocal
from finance_tracker.models import Category, Profile, Transaction


def this_month(day=1):
    return date.today().replace(day=day).isoformat()


def only_transaction():
    session = SessionLocal()
    try:
        return session.query(Transaction).one().id
    finally:
        session.close()


@pytest.fixture
def alice(client, make_user, login):
    make_user("alice@example.com", "Alice")
    login(client, "alice@example.com")
    return client


@pytest.mark.parametrize("path", ["/dashboard", "/transactions", "/categories", "/export", "/users", "/api/dashboard"])
def test_protected_pages_redirect_to_login(client, path):
    response = client.get(path, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/login"


def test_register_then_login(client):
    response = client.post(
        "/register",
        data={"full_name": "Carol", "email": "carol@example.com", "password": "hunter22"},
        follow_redirects=False,
    )
    assert response.status_code == 302
    assert response.headers["location"] == "/login"

    response = client.post("/login", data={"email": "carol@example.com", "password": "hunter22"}, follow_redirects=False)
    assert response.headers["location"] == "/dashboard"

    page = client.get("/dashboard")
    assert page.status_code == 200
    assert "Personal Finance Dashboard" in page.text


def test_register_rejects_bad_input(client, make_user):
    make_user("taken@example.com")

    response = client.post("/register", data={"email": "not-an-email", "password": "hunter22"})
    assert response.status_code == 400
    assert "Invalid email format" in response.text

    response = client.post("/register", data={"email": "taken@example.com", "password": "hunter22"})
    assert response.status_code == 400
    assert "Email already registered." in response.text

    response = client.post("/register", data={"email": "short@example.com", "password": "123"})
    assert response.status_code == 400


def test_login_with_wrong_password(client, make_user):
    make_user("alice@example.com")
    response = client.post("/login", data={"email": "alice@example.com", "password": "wrong"})
    assert response.status_code == 400
    assert "Invalid email or password." in response.text


def test_logout_clears_session(alice):
    alice.get("/logout", follow_redirects=False)
    response = alice.get("/dashboard", follow_redirects=False)
    assert response.headers["location"] == "/login"


def test_add_transaction_and_see_it_on_dashboard(alice):
    response = alice.post(
        "/transactions/add",
        data={"description": "Salary", "amount": "100", "type": "income", "date": this_month(), "category_id": "none"},
        follow_redirects=False,
    )
    assert response.status_code == 302
    alice.post(
        "/transactions/add",
        data={"description": "Groceries", "amount": "40", "type": "expense", "date": this_month(), "category_id": "none"},
    )

    listing = alice.get("/transactions")
    assert "Salary" in listing.text
    assert "Groceries" in listing.text

    data = alice.get("/api/dashboard").json()
    assert data["totals"] == {"income": 100, "expense": 40, "balance": 60}
    assert len(data["trend"]) == 12
    assert data["trend"][-1]["balance"] == 60
    assert data["breakdown"][-1]["Uncategorized"] == 40
    assert data["rejected"] == 0


def test_add_transaction_with_invalid_amount(alice):
    response = alice.post(
        "/transactions/add",
        data={"description": "Broken", "amount": "abc", "type": "expense", "date": this_month()},
    )
    assert response.status_code == 400
    assert "amount" in response.text

    response = alice.post(
        "/transactions/add",
        data={"description": "Negative", "amount": "-5", "type": "expense", "date": this_month()},
    )
    assert response.status_code == 400


def test_edit_and_delete_transaction(alice):
    alice.post(
        "/transactions/add",
        data={"description": "Taxi", "amount": "15", "type": "expense", "date": this_month()},
    )
    txn_id = only_transaction()

    form = alice.get(f"/transactions/{txn_id}/edit")
    assert form.status_code == 200
    assert 'value="Taxi"' in form.text

    response = alice.post(
        f"/transactions/{txn_id}/edit",
        data={"description": "Bus", "amount": "3.20", "type": "expense", "date": this_month(2)},
        follow_redirects=False,
    )
    assert response.status_code == 302
    assert "Bus" in alice.get("/transactions").text

    alice.post(f"/transactions/{txn_id}/delete")
    assert "No transactions found" in alice.get("/transactions").text


def test_cannot_touch_other_users_transactions(client, make_user, login):
    make_user("alice@example.com")
    make_user("bob@example.com")
    login(client, "bob@example.com")
    client.post(
        "/transactions/add",
        data={"description": "Bob's rent", "amount": "500", "type": "expense", "date": this_month()},
    )
    txn_id = only_transaction()
    client.get("/logout")

    login(client, "alice@example.com")
    assert "Bob&#39;s rent" not in client.get("/transactions").text
    assert client.get(f"/transactions/{txn_id}/edit").status_code == 404
    assert client.post(f"/transactions/{txn_id}/delete").status_code == 404


def test_admin_sees_family_data(client, make_user, login):
    make_user("bob@example.com", "Bob")
    make_user("admin@example.com", "Admin", is_admin=True)
    login(client, "bob@example.com")
    client.post(
        "/transactions/add",
        data={"description": "Bob's rent", "amount": "500", "type": "expense", "date": this_month()},
    )
    client.get("/logout")

    login(client, "admin@example.com")
    dashboard = client.get("/dashboard")
    assert "Family Finance Dashboard" in dashboard.text
    assert client.get("/api/dashboard").json()["totals"]["expense"] == 500
    listing = client.get("/transactions")
    assert "Bob&#39;s rent" in listing.text
    assert "<th>User</th>" in listing.text


def test_dashboard_month_selection_and_timeframes(alice):
    alice.post(
        "/transactions/add",
        data={"description": "Salary", "amount": "100", "type": "income", "date": this_month()},
    )
    current = date.today().strftime("%Y-%m")

    selected = alice.get(f"/api/dashboard?months={current}").json()
    assert selected["totals"]["income"] == 100
    assert selected["selected_months"] == [current]

    other = alice.get("/api/dashboard?months=1999-01").json()
    assert other["totals"]["income"] == 0

    quarters = alice.get("/api/dashboard?timeframe=quarter").json()
    assert quarters["timeframe"] == "quarter"
    assert 4 <= len(quarters["trend"]) <= 5
    assert sum(row["income"] for row in quarters["trend"]) == 100

    assert alice.get("/dashboard?timeframe=year").status_code == 200
    assert alice.get("/dashboard?months=garbage").status_code == 400


def test_category_crud(alice):
    response = alice.post("/categories/add", data={"name": "Pets", "color": "#aabbcc"}, follow_redirects=False)
    assert response.status_code == 302
    assert "Pets" in alice.get("/categories").text

    session = SessionLocal()
    try:
        category_id = session.query(Category).filter(Category.name == "Pets").one().id
    finally:
        session.close()

    alice.post(f"/categories/{category_id}/edit", data={"name": "Animals", "color": "#112233"})
    page = alice.get("/categories").text
    assert "Animals" in page
    assert "#112233" in page

    bad = alice.post("/categories/add", data={"name": "Bad", "color": "blue"})
    assert bad.status_code == 400

    alice.post(f"/categories/{category_id}/delete")
    assert "Animals" not in alice.get("/categories").text


def test_users_page_is_admin_only(alice):
    response = alice.get("/users", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/dashboard"
    assert "/users" not in alice.get("/dashboard").text


def test_admin_manages_users(client, make_user, login):
    admin_id = make_user("admin@example.com", "Admin", is_admin=True)
    login(client, "admin@example.com")

    response = client.post(
        "/users/add",
        data={"email": "dave@example.com", "password": "secret99", "full_name": "Dave", "is_admin": "on"},
        follow_redirects=False,
    )
    assert response.status_code == 302

    session = SessionLocal()
    try:
        dave = session.query(Profile).filter(Profile.email == "dave@example.com").one()
        dave_id, dave_is_admin = dave.id, dave.is_admin
    finally:
        session.close()
    assert dave_is_admin

    client.post(f"/users/{dave_id}/edit", data={"full_name": "David"})
    page = client.get("/users").text
    assert "David" in page

    denied = client.post(f"/users/{admin_id}/delete")
    assert denied.status_code == 403
    assert "You cannot delete your own account" in denied.text

    client.post(f"/users/{dave_id}/delete")
    assert "dave@example.com" not in client.get("/users").text


def test_export_csv(alice):
    alice.post(
        "/transactions/add",
        data={"description": 'Dinner, "fancy"', "amount": "42.5", "type": "expense", "date": this_month()},
    )

    response = alice.get("/export/csv?kind=transactions")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert f"transactions_{date.today().isoformat()}.csv" in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0] == "Date,Description,Amount,Type,Category,User"
    assert lines[1] == f'{this_month()},"Dinner, ""fancy""",42.50,expense,Uncategorized,Alice'

    categories = alice.get("/export/csv?kind=categories").text.splitlines()
    assert categories[0] == "Name,Color,User"
    assert len(categories) == 10

    page_export = alice.get("/transactions/export?type=expense").text.splitlines()
    assert page_export[0] == "Date,Description,Amount,Type,Category"

    assert alice.get("/export/csv?kind=users").status_code == 400


def test_api_dashboard_bad_month_returns_json(alice):
    response = alice.get("/api/dashboard?months=garbage")
    assert response.status_code == 400
    assert response.headers["content-type"].startswith("application/json")
    assert "invalid month" in response.json()["detail"]
