import calendar
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import extract, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import models
from app.core.exceptions import DataAccessError


# -----------------------------------------------------------------------------
# SALES QUERIES
# Purpose: read-only access to the sales table, raw and aggregated.
# Every filter value travels as a bound parameter; nothing is formatted into SQL.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)


async def _execute(db: AsyncSession, stmt, what: str):
    try:
        return await db.execute(stmt)
    except SQLAlchemyError as error:
        logger.error(f"Failed to load {what}: {error}")
        raise DataAccessError() from error


async def list_sales(db: AsyncSession) -> List[models.Sale]:
    """Return every sales row in date order."""
    stmt = select(models.Sale).order_by(models.Sale.date, models.Sale.id)
    result = await _execute(db, stmt, "sales")
    return list(result.scalars().all())


async def filter_sales(
    db: AsyncSession,
    sale_date: Optional[date] = None,
    min_actualsales: Optional[float] = None,
    max_actualsales: Optional[float] = None,
) -> List[models.Sale]:
    """
    Return rows matching every supplied filter.

    Omitted filters do not constrain the result. Zero is a real bound, so
    `min_actualsales=0` still filters out negative rows.
    """
    conditions = []
    if sale_date is not None:
        conditions.append(models.Sale.date == sale_date)
    if min_actualsales is not None:
        conditions.append(models.Sale.actualsales >= min_actualsales)
    if max_actualsales is not None:
        conditions.append(models.Sale.actualsales <= max_actualsales)

    stmt = (
        select(models.Sale)
        .where(*conditions)
        .order_by(models.Sale.date, models.Sale.id)
    )
    result = await _execute(db, stmt, "filtered sales")
    return list(result.scalars().all())


async def get_daily_totals(
    db: AsyncSession,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    Sum actual sales per day, oldest first.

    Args:
        db: Database session
        start_date: Inclusive lower bound (optional)
        end_date: Inclusive upper bound (optional)

    Example:
        [
            {"date": date(2024, 1, 1), "actualsales": 1520.0},
            {"date": date(2024, 1, 2), "actualsales": 980.5},
        ]
    """
    conditions = []
    if start_date is not None:
        conditions.append(models.Sale.date >= start_date)
    if end_date is not None:
        conditions.append(models.Sale.date <= end_date)

    stmt = (
        select(
            models.Sale.date,
            func.sum(models.Sale.actualsales).label("actualsales"),
        )
        .where(*conditions)
        .group_by(models.Sale.date)
        .order_by(models.Sale.date)
    )
    result = await _execute(db, stmt, "daily sales totals")

    return [
        {"date": row.date, "actualsales": float(row.actualsales or 0)}
        for row in result.all()
    ]


async def get_monthly_totals(
    db: AsyncSession,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    year: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Sum actual sales per calendar month, oldest first.

    One entry per (year, month) that has at least one row; months without
    sales are not filled in. This is also the history the forecast trains on.

    Example:
        [
            {"year": 2023, "month": 12, "month_name": "December", "total_sales": 41200.0},
            {"year": 2024, "month": 1, "month_name": "January", "total_sales": 38950.0},
        ]
    """
    year_col = extract("year", models.Sale.date).label("year")
    month_col = extract("month", models.Sale.date).label("month")

    conditions = []
    if start_date is not None:
        conditions.append(models.Sale.date >= start_date)
    if end_date is not None:
        conditions.append(models.Sale.date <= end_date)
    if year is not None:
        conditions.append(extract("year", models.Sale.date) == year)

    stmt = (
        select(
            year_col,
            month_col,
            func.sum(models.Sale.actualsales).label("total_sales"),
        )
        .where(*conditions)
        .group_by(year_col, month_col)
        .order_by(year_col, month_col)
    )
    result = await _execute(db, stmt, "monthly sales totals")

    monthly = []
    for row in result.all():
        month = int(row.month)
        monthly.append(
            {
                "year": int(row.year),
                "month": month,
                "month_name": calendar.month_name[month],
                "total_sales": float(row.total_sales or 0),
            }
        )
    return monthly
