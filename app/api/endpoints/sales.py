import logging
import math
import random
from datetime import date
from typing import Annotated, Callable, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import schemas
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import DataAccessError, InvalidParameterError
from app.core.forecast.orchestrator import (
    SalesForecaster,
    default_model_factory,
    training_slots,
)
from app.core.forecast.streaming import ForecastEventResponse
from app.core.sales import queries

router = APIRouter(prefix="/api/sales", tags=["Sales"])

db_dep = Annotated[AsyncSession, Depends(get_db)]


def get_model_factory() -> Callable:
    """Which model the forecast trains; overridden in tests."""
    return default_model_factory


@router.get("", response_model=List[schemas.SaleResponse])
async def get_all_sales(db: db_dep):
    """Return every sales row."""
    return await queries.list_sales(db)


@router.get("/filter", response_model=List[schemas.SaleResponse])
async def filter_sales(
    db: db_dep,
    sale_date: Annotated[Optional[date], Query(alias="date")] = None,
    min_actualsales: Optional[float] = None,
    max_actualsales: Optional[float] = None,
):
    """Return rows matching all of the supplied filters."""
    return await queries.filter_sales(
        db,
        sale_date=sale_date,
        min_actualsales=min_actualsales,
        max_actualsales=max_actualsales,
    )


@router.get("/chart", response_model=List[schemas.ChartPoint])
async def chart_data(
    db: db_dep,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
):
    """
    Daily totals for the interactive chart.

    `predictedsales` is a placeholder drawn at random from 75-125% of the
    actual value so the chart has a second line. It is not a forecast; use
    /predict for that.
    """
    rows = await queries.get_daily_totals(db, start_date=start_date, end_date=end_date)

    chart = []
    for row in rows:
        predicted = None
        if settings.CHART_PLACEHOLDER_PREDICTIONS:
            predicted = math.floor(row["actualsales"] * random.uniform(0.75, 1.25) + 0.5)
        chart.append({**row, "predictedsales": predicted})
    return chart


@router.get("/monthly", response_model=List[schemas.MonthlySales])
async def monthly_sales(
    db: db_dep,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    year: Optional[int] = None,
):
    """Total sales per month, oldest first."""
    return await queries.get_monthly_totals(
        db, start_date=start_date, end_date=end_date, year=year
    )


@router.get("/predict")
async def predict_sales(
    db: db_dep,
    model_factory: Annotated[Callable, Depends(get_model_factory)],
    months_ahead: int = 1,
    iterations: Optional[int] = None,
):
    """
    Train a GRU on monthly totals and stream the forecast as Server-Sent Events.

    Events, in order: `progress` (repeated), `validation`, then exactly one
    `complete` or `error`. Problems found before the stream opens come back
    as ordinary JSON errors.
    """
    if iterations is None:
        iterations = settings.FORECAST_DEFAULT_ITERATIONS

    if months_ahead < 1 or months_ahead > 12:
        raise InvalidParameterError("months_ahead must be between 1 and 12")
    if iterations < 1 or iterations > settings.FORECAST_MAX_ITERATIONS:
        raise InvalidParameterError(
            f"iterations must be between 1 and {settings.FORECAST_MAX_ITERATIONS}"
        )

    try:
        history = await queries.get_monthly_totals(db)
    except DataAccessError as error:
        raise DataAccessError(message=str(error.__cause__ or error)) from error

    forecaster = SalesForecaster(
        history,
        months_ahead=months_ahead,
        iterations=iterations,
        model_factory=model_factory,
        on_finished=training_slots.release,
    )

    training_slots.acquire()
    logging.info(
        f"Starting forecast: {months_ahead} month(s) ahead, {iterations} iterations"
    )
    return ForecastEventResponse(forecaster.stream(), on_close=forecaster.abandon)
