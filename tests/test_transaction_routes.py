import pytest

from pipeline.errors import ValidationFailure
from transactions.transaction_model import TransactionKind
from transactions.transaction_routes import draft_from

from conftest import make_user, seed

INCOME = TransactionKind.INCOME
EXPENSE = TransactionKind.EXPENSE


def salary(**overrides):
    body = {"description": "Salary June", "amount": 2500.00, "category": "salario", "date": "2024-06-10"}
    body.update(overrides)
    return body


def test_create_income(client, ledger):
    response = client.post("/api/incomes", json=salary(tags=["Work", "work"]))

    assert response.status_code == 201
    payload = response.json()
    assert payload["success"] is True
    assert payload["message"] == "Income created successfully"
    income = payload["data"]["income"]
    assert income["amount"] == 2500.0
    assert income["date"] == "2024-06-10T00:00:00.000Z"
    assert income["paymentMethod"] == "efectivo"
    assert income["tags"] == ["work"]
    assert income["isRecurring"] is False
    assert income["formattedAmount"] == "$2,500.00"
    assert income["formattedDate"] == "June 10, 2024"
    assert ledger.repo(INCOME).records[income["id"]]["user"] == "user-1"


def test_create_expense_defaults_is_essential(client):
    body = {"description": "Groceries", "amount": 80.25, "category": "alimentacion", "date": "2024-06-12"}
    response = client.post("/api/expenses", json=body)

    assert response.status_code == 201
    assert response.json()["data"]["expense"]["isEssential"] is False


def test_duplicate_create_is_rejected(client):
    assert client.post("/api/incomes", json=salary()).status_code == 201

    response = client.post("/api/incomes", json=salary())
    assert response.status_code == 409
    assert response.json()["error"]["message"] == "Duplicate transaction"


def test_amount_above_policy_ceiling(client, ledger):
    response = client.post("/api/incomes", json=salary(amount=1000001))

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Amount exceeds the allowed maximum"
    assert ledger.repo(INCOME).records == {}


def test_schema_errors_are_reported_together(client, ledger):
    response = client.post("/api/incomes", json={"description": "", "amount": 10.123, "category": "salario"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["message"] == "Invalid input data"
    fields = [e["field"] for e in error["validationErrors"]]
    assert fields == ["description", "amount", "date"]
    assert ledger.repo(INCOME).records == {}


def test_script_content_is_rejected_without_echo(client, ledger):
    response = client.post("/api/incomes", json=salary(description="<script>alert('x')</script>"))

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Potentially dangerous content detected"
    assert "alert" not in response.text
    assert ledger.repo(INCOME).records == {}


def test_income_ignores_essential_flag(client, ledger):
    response = client.post("/api/incomes", json=salary(isEssential="maybe"))

    assert response.status_code == 201
    income = response.json()["data"]["income"]
    assert "is_essential" not in ledger.repo(INCOME).records[income["id"]]


def test_update_income_ignores_essential_flag(client, ledger):
    record = seed(ledger, INCOME, "user-1")

    response = client.put(f"/api/incomes/{record['id']}", json={"isEssential": "maybe", "amount": 20})

    assert response.status_code == 200
    assert "is_essential" not in ledger.repo(INCOME).records[record["id"]]


def test_expense_essential_flag_must_be_boolean(client, ledger):
    body = {"description": "Rent", "amount": 900, "category": "vivienda", "date": "2024-06-12", "isEssential": "maybe"}
    response = client.post("/api/expenses", json=body)

    assert response.status_code == 400
    assert [e["field"] for e in response.json()["error"]["validationErrors"]] == ["isEssential"]
    assert ledger.repo(EXPENSE).records == {}


def test_injection_is_reported_before_schema_errors(client, ledger):
    response = client.post("/api/incomes", json={"description": "<script>x</script>", "amount": 10.123})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["message"] == "Potentially dangerous content detected"
    assert "validationErrors" not in error
    assert ledger.repo(INCOME).records == {}


def test_schema_errors_come_before_account_check(client, current_user, ledger):
    current_user.user = make_user(is_active=False)

    response = client.post("/api/incomes", json=salary(amount=10.123))

    assert response.status_code == 400
    assert response.json()["error"]["validationErrors"][0]["field"] == "amount"
    assert ledger.repo(INCOME).records == {}


def test_oversized_body_is_rejected(client):
    response = client.post("/api/incomes", json=salary(notes="x" * 3000))

    assert response.status_code == 413
    assert response.json()["error"]["message"] == "Payload too large"


def test_wrong_content_type_is_rejected(client):
    response = client.post("/api/incomes", content="description=Salary", headers={"Content-Type": "text/plain"})

    assert response.status_code == 415


def test_malformed_json(client):
    response = client.post("/api/incomes", content="{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"]["validationErrors"][0]["field"] == "body"


def test_list_paginates_and_filters(client, ledger):
    for day in range(1, 16):
        seed(ledger, INCOME, "user-1", date=f"2024-06-{day:02d}T10:00:00.000Z", amount=float(day))
    seed(ledger, INCOME, "someone-else", date="2024-06-05T10:00:00.000Z")
    seed(ledger, INCOME, "user-1", date="2024-06-05T11:00:00.000Z", is_active=False)

    response = client.get("/api/incomes", params={"page": 2, "limit": 10})

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["incomes"]) == 5
    assert data["pagination"] == {"currentPage": 2, "totalPages": 2, "totalItems": 15, "itemsPerPage": 10}
    # Newest first by default
    assert data["incomes"][0]["date"] == "2024-06-05T10:00:00.000Z"


def test_list_end_date_covers_the_whole_day(client, ledger):
    seed(ledger, INCOME, "user-1", date="2024-06-10T18:30:00.000Z")
    seed(ledger, INCOME, "user-1", date="2024-06-11T00:00:00.000Z")

    response = client.get("/api/incomes", params={"startDate": "2024-06-10", "endDate": "2024-06-10"})

    assert response.status_code == 200
    assert [i["date"] for i in response.json()["data"]["incomes"]] == ["2024-06-10T18:30:00.000Z"]


def test_list_rejects_reversed_range(client):
    response = client.get("/api/incomes", params={"startDate": "2024-06-10", "endDate": "2024-06-01"})

    assert response.status_code == 400
    assert response.json()["error"]["validationErrors"][0]["location"] == "query"


def test_list_filters_expenses_by_essential_flag(client, ledger):
    seed(ledger, EXPENSE, "user-1", is_essential=True, amount=1.0)
    seed(ledger, EXPENSE, "user-1", is_essential=False, amount=2.0)

    response = client.get("/api/expenses", params={"isEssential": "true"})

    expenses = response.json()["data"]["expenses"]
    assert [e["amount"] for e in expenses] == [1.0]


def test_inactive_user_cannot_list(client, current_user):
    current_user.user = make_user(is_active=False)

    response = client.get("/api/incomes")

    assert response.status_code == 403
    assert response.json()["error"]["message"] == "Account deactivated"


def test_get_own_record_and_hide_others(client, ledger):
    mine = seed(ledger, INCOME, "user-1")
    theirs = seed(ledger, INCOME, "someone-else")

    assert client.get(f"/api/incomes/{mine['id']}").status_code == 200
    response = client.get(f"/api/incomes/{theirs['id']}")
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Resource not found"
    assert client.get("/api/incomes/does-not-exist").status_code == 404


def test_update_income(client, ledger):
    record = seed(ledger, INCOME, "user-1", is_recurring=True, recurring_frequency="mensual")

    response = client.put(f"/api/incomes/{record['id']}", json={"amount": 3000, "isRecurring": False})

    assert response.status_code == 200
    income = response.json()["data"]["income"]
    assert income["amount"] == 3000.0
    assert income["isRecurring"] is False
    assert income["recurringFrequency"] is None


def test_update_another_users_record_is_not_found(client, ledger):
    theirs = seed(ledger, INCOME, "someone-else")

    response = client.put(f"/api/incomes/{theirs['id']}", json={"amount": 3000})

    assert response.status_code == 404
    assert ledger.repo(INCOME).records[theirs["id"]]["amount"] == 10.0


def test_update_into_duplicate_is_rejected(client, ledger):
    seed(ledger, INCOME, "user-1", amount=50.0, date="2024-06-01T00:00:00.000Z", category="salario")
    other = seed(ledger, INCOME, "user-1", amount=75.0, date="2024-06-01T00:00:00.000Z", category="salario")

    response = client.put(f"/api/incomes/{other['id']}", json={"amount": 50, "date": "2024-06-01", "category": "salario"})

    assert response.status_code == 409


def test_delete_is_soft_and_owner_only(client, ledger):
    mine = seed(ledger, INCOME, "user-1")
    theirs = seed(ledger, INCOME, "someone-else")

    assert client.delete(f"/api/incomes/{theirs['id']}").status_code == 404
    response = client.delete(f"/api/incomes/{mine['id']}")
    assert response.status_code == 200
    assert ledger.repo(INCOME).records[mine["id"]]["is_active"] is False
    assert client.get(f"/api/incomes/{mine['id']}").status_code == 404


def test_stats(client, ledger):
    seed(ledger, INCOME, "user-1", date="2024-06-10T00:00:00.000Z", amount=100.0)
    seed(ledger, INCOME, "user-1", date="2024-05-10T00:00:00.000Z", amount=50.0, category="ventas")

    response = client.get("/api/incomes/stats")

    assert response.status_code == 200
    stats = response.json()["data"]
    assert stats["total"] == 150.0
    assert stats["monthlyTotal"] == 100.0
    assert stats["lastMonthTotal"] == 50.0
    assert stats["growthPercentage"] == 100.0
    assert {c["category"] for c in stats["categoryStats"]} == {"salario", "ventas"}


def test_health_and_request_id(client):
    response = client.get("/health", headers={"X-Request-ID": "abc-123"})

    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "abc-123"


def test_draft_coercion_failure_is_a_validation_failure():
    with pytest.raises(ValidationFailure) as exc_info:
        draft_from({"amount": "abc", "isEssential": "maybe", "unknown": 1})

    assert [e.field for e in exc_info.value.errors] == ["amount", "isEssential"]
