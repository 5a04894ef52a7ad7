# model/leaderboard.py
"""
Shop leaderboard.

Per-product sums are computed by the database (GROUP BY shop, event,
product); ranking by total quantity and the top-N slice happen here. Ties on
total quantity are broken by shop name so the order is stable between polls.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from .db import Order, OrderItem, Product
from .orders import ORDER_CONFIRMED
from ..helpers import localized

DEFAULT_LIMIT = 10
MAX_LIMIT = 100

DASHBOARD_LIMIT = 7
# rough average value of one ordered package, VND
ESTIMATED_UNIT_PRICE = 500_000


@dataclass
class ProductQty:
    id: str
    quantity: int
    name: str = ""


@dataclass
class LeaderboardEntry:
    shop_name: str
    event_id: str
    products: List[ProductQty] = field(default_factory=list)
    rank: int = 0

    @property
    def total_quantity(self) -> int:
        return sum(p.quantity for p in self.products)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "shopName": self.shop_name,
            "eventId": self.event_id,
            "totalQuantity": self.total_quantity,
            "products": [
                {"id": p.id, "name": p.name, "quantity": p.quantity}
                for p in self.products
            ],
        }


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    return max(1, min(int(limit), MAX_LIMIT))


def rank_entries(rows: Iterable[Tuple[str, str, str, int]],
                 limit: int = DEFAULT_LIMIT) -> List[LeaderboardEntry]:
    """rows: (shop_name, event_id, product_id, quantity), any order,
    possibly several rows per product."""
    grouped: Dict[Tuple[str, str], Dict[str, int]] = {}
    for shop_name, event_id, product_id, qty in rows:
        per_product = grouped.setdefault((shop_name, event_id), {})
        per_product[product_id] = per_product.get(product_id, 0) + int(qty)

    entries = []
    for (shop_name, event_id), per_product in grouped.items():
        products = sorted(
            (ProductQty(id=pid, quantity=q) for pid, q in per_product.items()),
            key=lambda p: (-p.quantity, p.id),
        )
        entries.append(LeaderboardEntry(shop_name, event_id, products))

    entries.sort(key=lambda e: (-e.total_quantity, e.shop_name, e.event_id))
    entries = entries[:limit]
    for i, e in enumerate(entries, start=1):
        e.rank = i
    return entries


async def leaderboard(db: AsyncSession,
                      event_id: Optional[str] = None,
                      limit: Optional[int] = DEFAULT_LIMIT,
                      products: Optional[Dict[str, Product]] = None,
                      locale: str = "en") -> List[LeaderboardEntry]:
    stmt = (
        select(
            Order.shop_name,
            Order.event_id,
            OrderItem.product_id,
            func.sum(OrderItem.quantity),
        )
        .join(OrderItem, OrderItem.order_id == Order.order_id)
        .where(Order.status == ORDER_CONFIRMED)
        .group_by(Order.shop_name, Order.event_id, OrderItem.product_id)
    )
    if event_id:
        stmt = stmt.where(Order.event_id == event_id)
    rows = (await db.execute(stmt)).all()
    entries = rank_entries(rows, clamp_limit(limit))

    if products is not None:
        for e in entries:
            for p in e.products:
                prod = products.get(p.id)
                p.name = localized(prod.name, locale) if prod else p.id
    return entries


def dashboard_rows(entries: List[LeaderboardEntry]) -> List[Dict[str, Any]]:
    return [
        {
            "rank": e.rank,
            "shopName": e.shop_name,
            "sales": e.total_quantity * ESTIMATED_UNIT_PRICE,
        }
        for e in entries
    ]


def podium(entries: List[LeaderboardEntry]):
    return entries[:3], entries[3:]
