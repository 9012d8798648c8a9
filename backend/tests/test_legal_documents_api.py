import uuid

import pytest

THRESHOLD = 600_00


@pytest.fixture
def hosted(factory):
    host = factory.host()
    return factory.collective(host=host)


@pytest.mark.asyncio
async def test_single_expense_requires_tax_form(client, factory, hosted):
    expense = factory.expense(hosted, factory.user(), THRESHOLD)

    resp = await client.get(f"/api/v1/expenses/{expense.id}/legal-documents")
    assert resp.status_code == 200
    data = resp.json()
    assert data["expense_id"] == str(expense.id)
    assert data["required_legal_documents"] == ["US_TAX_FORM"]
    assert data["is_legal_document_required_before_payment"] is True
    assert data["error"] is None


@pytest.mark.asyncio
async def test_single_expense_below_threshold(client, factory, hosted):
    expense = factory.expense(hosted, factory.user(), THRESHOLD - 1)

    resp = await client.get(f"/api/v1/expenses/{expense.id}/legal-documents")
    assert resp.status_code == 200
    assert resp.json()["required_legal_documents"] == []
    assert resp.json()["is_legal_document_required_before_payment"] is False


@pytest.mark.asyncio
async def test_unknown_expense_returns_404(client):
    resp = await client.get(f"/api/v1/expenses/{uuid.uuid4()}/legal-documents")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Expense not found"


@pytest.mark.asyncio
async def test_batch_keeps_order_and_isolates_missing_ids(client, factory, hosted):
    over = factory.expense(hosted, factory.user(), THRESHOLD)
    under = factory.expense(hosted, factory.user(), 100)
    missing = str(uuid.uuid4())

    resp = await client.post(
        "/api/v1/expenses/legal-documents",
        json={"expense_ids": [str(over.id), missing, str(under.id)]},
    )
    assert resp.status_code == 200
    items = resp.json()["items"]
    assert [item["expense_id"] for item in items] == [str(over.id), missing, str(under.id)]
    assert items[0]["required_legal_documents"] == ["US_TAX_FORM"]
    assert items[1]["error"] == "NOT_FOUND"
    assert items[1]["is_legal_document_required_before_payment"] is False
    assert items[2]["required_legal_documents"] == []
    assert items[2]["error"] is None


@pytest.mark.asyncio
async def test_batch_rejects_empty_list(client):
    resp = await client.post("/api/v1/expenses/legal-documents", json={"expense_ids": []})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
