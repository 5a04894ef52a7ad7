# model/orders.py
"""
Check-ins and orders.

A shop checks in to an active event (at most once per event per day) and then
places orders against it. An order holds one line per product; its total is
the sum of line quantities and is always computed here, never taken from the
caller.
"""

from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import CheckIn, Customer, Event, Order, OrderItem, Product
from .catalog import get_event, is_active, accepts_orders
from .customers import get_customer
from ..errors import (
    ValidationError, NotFoundError, BusinessRuleError, ConflictError
)
from ..helpers import new_id, today, utcnow, fmt_date, fmt_datetime, localized

logger = logging.getLogger(__name__)

ORDER_CONFIRMED = "confirmed"
ORDER_CANCELLED = "cancelled"
ORDER_STATUSES = (ORDER_CONFIRMED, ORDER_CANCELLED)

UNKNOWN_PRODUCT = "Unknown Product"


# ----------------------------
# Check-ins
# ----------------------------
def check_in_to_dict(ci: CheckIn) -> Dict[str, Any]:
    return {
        "id": ci.id,
        "customerId": ci.customer_id,
        "shopName": ci.shop_name,
        "phone": ci.phone,
        "eventId": ci.event_id,
        "checkInDate": ci.check_in_date.isoformat(),
        "checkInTime": fmt_datetime(ci.check_in_time),
    }


async def find_check_in(db: AsyncSession, customer_id: str, event_id: str,
                        day=None) -> Optional[CheckIn]:
    day = day or today()
    return (await db.execute(
        select(CheckIn)
        .where(CheckIn.customer_id == customer_id)
        .where(CheckIn.event_id == event_id)
        .where(CheckIn.check_in_date == day)
    )).scalars().first()


async def create_check_in(db: AsyncSession, customer_id: str,
                          event_id: str) -> CheckIn:
    customer = await get_customer(db, customer_id)
    event = await get_event(db, event_id)
    if not is_active(event):
        raise BusinessRuleError(f"Event '{event_id}' is not active")

    day = today()
    if await find_check_in(db, customer_id, event_id, day) is not None:
        raise ConflictError(
            "Customer has already checked in for this event today"
        )

    ci = CheckIn(
        id=new_id("CHK"),
        customer_id=customer.id,
        shop_name=customer.shop_name,
        phone=customer.phone,
        event_id=event.id,
        check_in_date=day,
        check_in_time=utcnow(),
    )
    db.add(ci)
    try:
        await db.commit()
    except IntegrityError:
        # lost the race against a concurrent check-in of the same shop
        await db.rollback()
        raise ConflictError(
            "Customer has already checked in for this event today"
        )
    logger.info("check-in customer=%s event=%s", customer.id, event.id)
    return ci


async def list_check_ins(db: AsyncSession,
                         event_id: Optional[str] = None) -> List[CheckIn]:
    stmt = select(CheckIn).order_by(CheckIn.check_in_time.desc())
    if event_id:
        stmt = stmt.where(CheckIn.event_id == event_id)
    return list((await db.execute(stmt)).scalars().all())


async def delete_check_in(db: AsyncSession, check_in_id: str) -> None:
    ci = await db.get(CheckIn, check_in_id)
    if ci is None:
        raise NotFoundError("CheckIn", check_in_id)
    await db.delete(ci)
    await db.commit()


async def check_in_stats(db: AsyncSession,
                         event_id: Optional[str] = None) -> Dict[str, int]:
    base = select(CheckIn)
    if event_id:
        base = base.where(CheckIn.event_id == event_id)
    sub = base.subquery()
    total, unique = (await db.execute(
        select(func.count(), func.count(func.distinct(sub.c.customer_id)))
        .select_from(sub)
    )).one()
    todays = (await db.execute(
        select(func.count()).select_from(sub)
        .where(sub.c.check_in_date == today())
    )).scalar_one()
    return {
        "total": int(total),
        "today": int(todays),
        "uniqueCustomers": int(unique),
    }


# ----------------------------
# Orders
# ----------------------------
def _normalize_items(items: Iterable[Dict[str, Any]]) -> List[Tuple[str, int]]:
    merged: Dict[str, int] = {}
    for item in items or []:
        pid = (item.get("product_id") or item.get("id") or "").strip()
        if not pid:
            raise ValidationError("product id is required", field="products")
        try:
            qty = int(item.get("quantity"))
        except (TypeError, ValueError):
            raise ValidationError(
                f"invalid quantity for product {pid}", field="products"
            )
        if qty <= 0:
            raise ValidationError(
                f"quantity for product {pid} must be positive",
                field="products"
            )
        merged[pid] = merged.get(pid, 0) + qty
    if not merged:
        raise ValidationError("Order must contain at least one product",
                              field="products")
    return list(merged.items())


def order_to_dict(o: Order,
                  products: Optional[Dict[str, Product]] = None,
                  locale: str = "en") -> Dict[str, Any]:
    products = products or {}
    lines = []
    for item in o.items:
        p = products.get(item.product_id)
        lines.append({
            "id": item.product_id,
            "quantity": item.quantity,
            "name": localized(p.name, locale) if p else UNKNOWN_PRODUCT,
        })
    return {
        "orderId": o.order_id,
        "customerId": o.customer_id,
        "shopName": o.shop_name,
        "eventId": o.event_id,
        "products": lines,
        "total": o.total,
        "status": o.status,
        "notes": o.notes,
        "orderDate": fmt_date(o.order_date),
    }


async def create_order(db: AsyncSession, data: Dict[str, Any]) -> Order:
    shop_name = (data.get("shop_name") or "").strip()
    event_id = (data.get("event_id") or "").strip()
    customer_id = data.get("customer_id") or None
    if not event_id:
        raise ValidationError("event is required", field="event_id")

    customer: Optional[Customer] = None
    if customer_id:
        customer = await get_customer(db, customer_id)
        shop_name = shop_name or customer.shop_name
    if not shop_name:
        raise ValidationError("Shop name cannot be empty", field="shop_name")

    lines = _normalize_items(data.get("products") or data.get("items"))

    event: Event = await get_event(db, event_id)
    if not accepts_orders(event):
        raise BusinessRuleError(
            f"Event '{event_id}' is not accepting orders"
        )

    ids = [pid for pid, _ in lines]
    found = set((await db.execute(
        select(Product.id).where(Product.id.in_(ids))
    )).scalars().all())
    missing = [pid for pid in ids if pid not in found]
    if missing:
        raise NotFoundError("Product", ", ".join(missing))

    order = Order(
        order_id=new_id("ORD"),
        customer_id=customer.id if customer else None,
        shop_name=shop_name,
        event_id=event.id,
        total=sum(qty for _, qty in lines),
        order_date=utcnow(),
        status=ORDER_CONFIRMED,
        notes=(data.get("notes") or None),
        items=[OrderItem(product_id=pid, quantity=qty) for pid, qty in lines],
    )
    db.add(order)
    await db.commit()
    logger.info("order created id=%s shop=%r event=%s total=%d",
                order.order_id, shop_name, event.id, order.total)
    return order


async def list_orders(db: AsyncSession,
                      event_id: Optional[str] = None,
                      status: Optional[str] = None) -> List[Order]:
    stmt = select(Order).order_by(Order.order_date.desc(), Order.order_id)
    if event_id:
        stmt = stmt.where(Order.event_id == event_id)
    if status:
        stmt = stmt.where(Order.status == status)
    return list((await db.execute(stmt)).scalars().all())


async def get_order(db: AsyncSession, order_id: str) -> Order:
    o = await db.get(Order, order_id)
    if o is None:
        raise NotFoundError("Order", order_id)
    return o


async def update_order(db: AsyncSession, order_id: str,
                       data: Dict[str, Any]) -> Order:
    o = await get_order(db, order_id)
    status = data.get("status")
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid order status: {status}",
                                  field="status")
        o.status = status
    if data.get("notes") is not None:
        o.notes = data["notes"] or None
    await db.commit()
    logger.info("order updated id=%s status=%s", o.order_id, o.status)
    return o


async def delete_order(db: AsyncSession, order_id: str) -> None:
    o = await get_order(db, order_id)
    await db.delete(o)
    await db.commit()
    logger.info("order deleted id=%s", order_id)


async def order_stats(db: AsyncSession,
                      event_id: Optional[str] = None) -> Dict[str, int]:
    stmt = select(Order.status, func.count(), func.coalesce(
        func.sum(Order.total), 0
    )).group_by(Order.status)
    if event_id:
        stmt = stmt.where(Order.event_id == event_id)
    out = {"totalOrders": 0, "totalQuantity": 0,
           ORDER_CONFIRMED: 0, ORDER_CANCELLED: 0}
    for status, n, qty in (await db.execute(stmt)).all():
        out[status] = int(n)
        out["totalOrders"] += int(n)
        if status == ORDER_CONFIRMED:
            out["totalQuantity"] += int(qty)
    return out


async def recent_order_count(db: AsyncSession, days: int = 7) -> int:
    since = utcnow() - timedelta(days=days)
    return (await db.execute(
        select(func.count()).select_from(Order)
        .where(Order.status == ORDER_CONFIRMED)
        .where(Order.order_date >= since)
    )).scalar_one()


def day_bounds(d) -> Tuple[datetime, datetime]:
    start = datetime(d.year, d.month, d.day)
    return start, start + timedelta(days=1)
