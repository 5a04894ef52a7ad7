# model/maintenance.py
"""
Seeding and clearing the database, shared by `python -m shopfest.manage` and
the dashboard settings page.
"""

from __future__ import annotations
import logging
from datetime import timedelta
from typing import Dict

from sqlalchemy import delete, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from .db import (
    BUSINESS_TABLES, ADMIN_TABLES, Event, Product, Customer, CheckIn,
    Order, OrderItem,
)
from ..helpers import new_id, today, utcnow

logger = logging.getLogger(__name__)

SAMPLE_EVENT_ID = "SPRING2025_PROMO"

SAMPLE_PRODUCTS = (
    {
        "id": "PACK_3",
        "name": {"en": "Pack 3", "vi": "Gói 3"},
        "description": {"en": "Starter package with 3 units",
                        "vi": "Gói khởi đầu gồm 3 sản phẩm"},
    },
    {
        "id": "PACK_5",
        "name": {"en": "Pack 5", "vi": "Gói 5"},
        "description": {"en": "Value package with 5 units",
                        "vi": "Gói tiết kiệm gồm 5 sản phẩm"},
    },
)

# (shop, phone, [(product, qty), ...])
SAMPLE_SHOPS = (
    ("Cửa hàng Minh Anh", "0901234567", [("PACK_5", 12), ("PACK_3", 4)]),
    ("Điện máy Hoàng Phát", "0912345678", [("PACK_3", 9), ("PACK_5", 3)]),
    ("Shop Thanh Tâm", "0923456789", [("PACK_5", 6)]),
    ("Tạp hóa Bảo Ngọc", "0934567890", [("PACK_3", 5)]),
    ("Siêu thị mini An Phú", "0945678901", [("PACK_3", 2), ("PACK_5", 1)]),
)


async def table_counts(db: AsyncSession) -> Dict[str, int]:
    out = {}
    for model in BUSINESS_TABLES + ADMIN_TABLES:
        out[model.__tablename__] = (await db.execute(
            select(func.count()).select_from(model)
        )).scalar_one()
    return out


async def _clear(db: AsyncSession, models) -> Dict[str, int]:
    # children first, the tuples are ordered for foreign keys
    counts = {}
    for model in models:
        res = await db.execute(delete(model))
        counts[model.__tablename__] = res.rowcount or 0
    await db.commit()
    return counts


async def clear_business_data(db: AsyncSession) -> Dict[str, int]:
    counts = await _clear(db, BUSINESS_TABLES)
    logger.warning("business data cleared %s", counts)
    return counts


async def clear_all_data(db: AsyncSession) -> Dict[str, int]:
    counts = await clear_business_data(db)
    counts.update(await _clear(db, ADMIN_TABLES))
    logger.warning("admin data cleared")
    return counts


async def seed_catalog(db: AsyncSession) -> None:
    """Replace business data with the sample event and its two packages."""
    await clear_business_data(db)
    d = today()
    db.add(Event(
        id=SAMPLE_EVENT_ID,
        name={"en": "Spring 2025 Promotion",
              "vi": "Khuyến mãi Mùa Xuân 2025"},
        description={"en": "Spring promotional event for partner shops",
                     "vi": "Sự kiện khuyến mãi mùa xuân cho cửa hàng"},
        type="simple_packages",
        start_date=d - timedelta(days=7),
        end_date=d + timedelta(days=30),
        status=True,
        ai_hint="spring sale",
    ))
    for p in SAMPLE_PRODUCTS:
        db.add(Product(id=p["id"], name=p["name"],
                       description=p["description"]))
    await db.commit()
    logger.info("seeded event %s and %d products",
                SAMPLE_EVENT_ID, len(SAMPLE_PRODUCTS))


async def seed_sample_activity(db: AsyncSession) -> int:
    """Customers, check-ins and orders so the leaderboard has content."""
    now = utcnow()
    customers = [
        Customer(id=new_id("CUST"), phone=phone, shop_name=shop,
                 joined=today())
        for shop, phone, _ in SAMPLE_SHOPS
    ]
    db.add_all(customers)
    # rows referencing customers go in a second flush
    await db.flush()

    n = 0
    for c, (shop, phone, lines) in zip(customers, SAMPLE_SHOPS):
        db.add(CheckIn(id=new_id("CHK"), customer_id=c.id, shop_name=shop,
                       phone=phone, event_id=SAMPLE_EVENT_ID,
                       check_in_date=today(), check_in_time=now))
        db.add(Order(
            order_id=new_id("ORD"),
            customer_id=c.id,
            shop_name=shop,
            event_id=SAMPLE_EVENT_ID,
            total=sum(q for _, q in lines),
            order_date=now,
            items=[OrderItem(product_id=pid, quantity=q) for pid, q in lines],
        ))
        n += 1
    await db.commit()
    logger.info("seeded %d sample shops", n)
    return n

