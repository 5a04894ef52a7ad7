from __future__ import annotations
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from .db import CheckIn, Order, OrderItem, Product
from .orders import ORDER_CONFIRMED, day_bounds, recent_order_count
from ..helpers import today, localized

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# first match wins
CATEGORY_KEYWORDS = (
    ("TV", ("tivi", "tv")),
    ("Audio", ("loa", "speaker")),
    ("Appliances", ("máy", "machine")),
    ("Accessories", ("phụ kiện", "accessory")),
)
CATEGORY_COLORS = {
    "TV": "var(--color-chrome)",
    "Audio": "var(--color-safari)",
    "Appliances": "var(--color-firefox)",
    "Accessories": "var(--color-edge)",
    "Other": "var(--color-other)",
}


def _pct(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole > 0 else 0


async def dashboard_stats(db: AsyncSession) -> Dict[str, int]:
    start, end = day_bounds(today())
    confirmed = Order.status == ORDER_CONFIRMED

    total_orders, total_sales = (await db.execute(
        select(func.count(), func.coalesce(func.sum(Order.total), 0))
        .where(confirmed)
    )).one()
    daily_sales = (await db.execute(
        select(func.coalesce(func.sum(Order.total), 0))
        .where(confirmed)
        .where(Order.order_date >= start, Order.order_date < end)
    )).scalar_one()

    total_visits = (await db.execute(
        select(func.count()).select_from(CheckIn)
    )).scalar_one()
    daily_visits = (await db.execute(
        select(func.count()).select_from(CheckIn)
        .where(CheckIn.check_in_date == today())
    )).scalar_one()

    recent = await recent_order_count(db, days=7)
    return {
        "totalSales": int(total_sales),
        "dailySales": int(daily_sales),
        "totalVisits": int(total_visits),
        "dailyVisits": int(daily_visits),
        "totalOrders": int(total_orders),
        "conversionRate": _pct(int(total_orders), int(total_visits)),
        "operationalEffect": _pct(recent, int(total_orders)),
    }


def last_months(n: int, on: Optional[date] = None) -> List[tuple]:
    """(year, month) for the last n calendar months, oldest first."""
    on = on or today()
    y, m = on.year, on.month
    out = []
    for _ in range(n):
        out.append((y, m))
        m -= 1
        if m == 0:
            y, m = y - 1, 12
    return list(reversed(out))


async def sales_chart(db: AsyncSession, months: int = 6,
                      on: Optional[date] = None) -> List[Dict[str, Any]]:
    span = last_months(months, on)
    y0, m0 = span[0]
    rows = (await db.execute(
        select(Order.order_date, Order.total)
        .where(Order.status == ORDER_CONFIRMED)
        .where(Order.order_date >= datetime(y0, m0, 1))
    )).all()
    sums = {key: 0 for key in span}
    for order_date, total in rows:
        key = (order_date.year, order_date.month)
        if key in sums:
            sums[key] += int(total)
    return [
        {"month": MONTH_ABBR[m - 1], "year": y, "sales": sums[(y, m)]}
        for y, m in span
    ]


def categorize(name: str) -> str:
    lower = name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in lower for k in keywords):
            return category
    return "Other"


async def category_chart(db: AsyncSession) -> List[Dict[str, Any]]:
    rows = (await db.execute(
        select(Product.name, func.sum(OrderItem.quantity))
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.order_id == OrderItem.order_id)
        .where(Order.status == ORDER_CONFIRMED)
        .group_by(Product.id)
    )).all()
    counts: Dict[str, int] = {}
    for name, qty in rows:
        category = categorize(localized(name, "en"))
        counts[category] = counts.get(category, 0) + int(qty)

    if not counts:
        return [{"category": "other", "count": 0,
                 "fill": CATEGORY_COLORS["Other"]}]
    return [
        {"category": c.lower(), "count": n, "fill": CATEGORY_COLORS[c]}
        for c, n in counts.items()
    ]
