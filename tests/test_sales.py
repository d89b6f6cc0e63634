from datetime import date

import pytest
from httpx import AsyncClient

from conftest import BrokenSession
from app.core.config import settings
from app.core.database import get_db
from app.main import app


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Sales API is running"}


@pytest.mark.asyncio
async def test_get_all_sales_empty(client: AsyncClient):
    """Empty list when there are no rows"""
    response = await client.get("/api/sales")
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_get_all_sales(client: AsyncClient, add_sales):
    await add_sales([(date(2024, 1, 2), 50), (date(2024, 1, 1), 120.5)])

    response = await client.get("/api/sales")
    assert response.status_code == 200
    data = response.json()
    assert [row["date"] for row in data] == ["2024-01-01", "2024-01-02"]
    assert data[0]["actualsales"] == 120.5
    assert all("id" in row for row in data)


# =========================
# /filter
# =========================
@pytest.fixture
def filter_rows():
    return [
        (date(2024, 3, 1), 0),
        (date(2024, 3, 1), 150),
        (date(2024, 3, 2), 300),
        (date(2024, 3, 3), 75),
        (date(2024, 3, 3), -20),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [
        {},
        {"date": "2024-03-01"},
        {"min_actualsales": "100"},
        {"max_actualsales": "100"},
        {"min_actualsales": "0"},
        {"date": "2024-03-03", "min_actualsales": "0"},
        {"min_actualsales": "70", "max_actualsales": "200"},
        {"date": "2024-03-01", "min_actualsales": "1", "max_actualsales": "200"},
    ],
)
async def test_filter_applies_every_supplied_predicate(
    client: AsyncClient, add_sales, filter_rows, params
):
    await add_sales(filter_rows)

    response = await client.get("/api/sales/filter", params=params)
    assert response.status_code == 200
    data = response.json()

    def matches(day, amount):
        if "date" in params and day.isoformat() != params["date"]:
            return False
        if "min_actualsales" in params and amount < float(params["min_actualsales"]):
            return False
        if "max_actualsales" in params and amount > float(params["max_actualsales"]):
            return False
        return True

    expected = sorted(
        (day.isoformat(), float(amount)) for day, amount in filter_rows if matches(day, amount)
    )
    assert sorted((row["date"], row["actualsales"]) for row in data) == expected


@pytest.mark.asyncio
async def test_filter_rejects_bad_number(client: AsyncClient):
    response = await client.get("/api/sales/filter", params={"min_actualsales": "lots"})
    assert response.status_code == 400
    assert "min_actualsales" in response.json()["error"]


@pytest.mark.asyncio
async def test_filter_rejects_bad_date(client: AsyncClient):
    response = await client.get("/api/sales/filter", params={"date": "yesterday"})
    assert response.status_code == 400
    assert "error" in response.json()


# =========================
# /chart
# =========================
@pytest.mark.asyncio
async def test_chart_sums_per_day_with_placeholder_prediction(
    client: AsyncClient, add_sales
):
    await add_sales(
        [
            (date(2024, 5, 2), 100),
            (date(2024, 5, 1), 40),
            (date(2024, 5, 1), 60),
            (date(2024, 5, 9), 999),
        ]
    )

    response = await client.get(
        "/api/sales/chart", params={"start_date": "2024-05-01", "end_date": "2024-05-02"}
    )
    assert response.status_code == 200
    data = response.json()

    assert [(p["date"], p["actualsales"]) for p in data] == [
        ("2024-05-01", 100.0),
        ("2024-05-02", 100.0),
    ]
    for point in data:
        assert 75 <= point["predictedsales"] <= 125


@pytest.mark.asyncio
async def test_chart_placeholder_can_be_disabled(
    client: AsyncClient, add_sales, monkeypatch
):
    monkeypatch.setattr(settings, "CHART_PLACEHOLDER_PREDICTIONS", False)
    await add_sales([(date(2024, 5, 1), 10)])

    response = await client.get("/api/sales/chart")
    assert response.status_code == 200
    assert response.json() == [
        {"date": "2024-05-01", "actualsales": 10.0, "predictedsales": None}
    ]


# =========================
# /monthly
# =========================
@pytest.fixture
def monthly_sales_rows():
    return [
        (date(2023, 11, 3), 10),
        (date(2023, 12, 1), 20),
        (date(2023, 12, 31), 30),
        (date(2024, 1, 15), 40.5),
        (date(2024, 2, 10), 50),
        (date(2024, 2, 11), 5),
    ]


@pytest.mark.asyncio
async def test_monthly_totals(client: AsyncClient, add_sales, monthly_sales_rows):
    await add_sales(monthly_sales_rows)

    response = await client.get("/api/sales/monthly")
    assert response.status_code == 200
    assert response.json() == [
        {"year": 2023, "month": 11, "month_name": "November", "total_sales": 10.0},
        {"year": 2023, "month": 12, "month_name": "December", "total_sales": 50.0},
        {"year": 2024, "month": 1, "month_name": "January", "total_sales": 40.5},
        {"year": 2024, "month": 2, "month_name": "February", "total_sales": 55.0},
    ]


@pytest.mark.asyncio
async def test_monthly_totals_preserve_range_sum(
    client: AsyncClient, add_sales, monthly_sales_rows
):
    await add_sales(monthly_sales_rows)
    start, end = date(2023, 12, 15), date(2024, 2, 10)

    response = await client.get(
        "/api/sales/monthly",
        params={"start_date": start.isoformat(), "end_date": end.isoformat()},
    )
    assert response.status_code == 200

    expected = sum(amount for day, amount in monthly_sales_rows if start <= day <= end)
    assert sum(m["total_sales"] for m in response.json()) == pytest.approx(expected)


@pytest.mark.asyncio
async def test_monthly_totals_by_year(client: AsyncClient, add_sales, monthly_sales_rows):
    await add_sales(monthly_sales_rows)

    response = await client.get("/api/sales/monthly", params={"year": 2024})
    assert response.status_code == 200
    assert [(m["year"], m["month"]) for m in response.json()] == [(2024, 1), (2024, 2)]


@pytest.mark.asyncio
async def test_monthly_rejects_bad_year(client: AsyncClient):
    response = await client.get("/api/sales/monthly", params={"year": "twenty"})
    assert response.status_code == 400


# =========================
# Database failures
# =========================
@pytest.fixture
def broken_db(client):
    async def override_get_db():
        yield BrokenSession()

    app.dependency_overrides[get_db] = override_get_db


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path", ["/api/sales", "/api/sales/filter", "/api/sales/chart", "/api/sales/monthly"]
)
async def test_database_failure_is_generic_500(client: AsyncClient, broken_db, path):
    response = await client.get(path)
    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
