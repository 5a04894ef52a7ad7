# model/catalog.py
"""
Events and products.

Both carry localized text stored as JSON objects ({"en": ..., "vi": ...}).
An event is *active* when its status flag is set and today lies inside
[start_date, end_date]; it *accepts orders* when it is active and its type is
not 'expired'.
"""

from __future__ import annotations
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import Event, Product, Order, OrderItem, CheckIn
from ..errors import ValidationError, NotFoundError, ConflictError
from ..helpers import new_id, parse_date, today, fmt_date, localized

logger = logging.getLogger(__name__)

EVENT_TYPES = {
    "simple_packages": {"en": "Simple Packages", "vi": "Gói Đơn Giản"},
    "complex_packages": {"en": "Complex Packages", "vi": "Gói Phức Tạp"},
    "flash_sale": {"en": "Flash Sale", "vi": "Giảm Giá Nhanh"},
    "seasonal": {"en": "Seasonal", "vi": "Theo Mùa"},
    "expired": {"en": "Expired", "vi": "Hết Hạn"},
}
DEFAULT_EVENT_TYPE = "simple_packages"

DEFAULT_PRODUCT_IMAGE = "https://placehold.co/600x400.png"
DEFAULT_PRODUCT_HINT = "product package"

PRODUCTS_PER_PAGE = 6


# ----------------------------
# Events
# ----------------------------
def is_active(ev: Event, on: Optional[date] = None) -> bool:
    on = on or today()
    return bool(ev.status) and ev.start_date <= on <= ev.end_date


def accepts_orders(ev: Event, on: Optional[date] = None) -> bool:
    return is_active(ev, on) and ev.type != "expired"


def event_to_dict(ev: Event) -> Dict[str, Any]:
    return {
        "id": ev.id,
        "name": ev.name,
        "description": ev.description,
        "type": ev.type,
        "startDate": fmt_date(ev.start_date),
        "endDate": fmt_date(ev.end_date),
        "status": bool(ev.status),
        "active": is_active(ev),
        "image": ev.image,
        "aiHint": ev.ai_hint,
    }


def _localized_field(data: Dict[str, Any], key: str,
                     required: bool) -> Optional[Dict[str, str]]:
    value = data.get(key)
    if value is None:
        en = (data.get(f"{key}_en") or "").strip()
        vi = (data.get(f"{key}_vi") or "").strip()
        value = {"en": en, "vi": vi} if (en or vi) else None
    if value is None:
        if required:
            raise ValidationError(f"{key} is required", field=key)
        return None
    if isinstance(value, str):
        value = {"en": value, "vi": value}
    if required and not (value.get("en") and value.get("vi")):
        raise ValidationError(
            f"{key} is required in both English and Vietnamese", field=key
        )
    return {"en": value.get("en") or "", "vi": value.get("vi") or ""}


def _both_languages(value: Optional[Dict[str, str]], key: str) -> None:
    if value is not None and not (value.get("en") and value.get("vi")):
        raise ValidationError(
            f"{key} is required in both English and Vietnamese", field=key
        )


def _date_field(data: Dict[str, Any], key: str) -> Optional[date]:
    raw = data.get(key)
    try:
        return parse_date(raw)
    except ValueError:
        raise ValidationError(
            "Invalid date format. Expected YYYY-MM-DD", field=key
        )


def _check_range(start: date, end: date) -> None:
    if start >= end:
        raise ValidationError("Start date must be before end date",
                              field="start_date")


def _check_type(value: str) -> str:
    if value not in EVENT_TYPES:
        raise ValidationError(f"Invalid event type: {value}", field="type")
    return value


async def list_events(db: AsyncSession) -> List[Event]:
    rows = await db.execute(
        select(Event).order_by(Event.start_date.desc(), Event.id)
    )
    return list(rows.scalars().all())


async def list_active_events(db: AsyncSession) -> List[Event]:
    d = today()
    rows = await db.execute(
        select(Event)
        .where(Event.status.is_(True))
        .where(Event.start_date <= d)
        .where(Event.end_date >= d)
        .order_by(Event.start_date.desc(), Event.id)
    )
    return list(rows.scalars().all())


async def get_event(db: AsyncSession, event_id: str) -> Event:
    ev = await db.get(Event, event_id)
    if ev is None:
        raise NotFoundError("Event", event_id)
    return ev


async def create_event(db: AsyncSession, data: Dict[str, Any]) -> Event:
    name = _localized_field(data, "name", required=True)
    description = _localized_field(data, "description", required=False)
    start = _date_field(data, "start_date")
    end = _date_field(data, "end_date")
    if start is None or end is None:
        raise ValidationError("start_date and end_date are required",
                              field="start_date" if start is None
                              else "end_date")
    _check_range(start, end)

    ev = Event(
        id=data.get("id") or new_id("EVT"),
        name=name,
        description=description,
        type=_check_type(data.get("type") or DEFAULT_EVENT_TYPE),
        start_date=start,
        end_date=end,
        status=bool(data.get("status", True)),
        image=data.get("image") or None,
        ai_hint=data.get("ai_hint") or None,
    )
    db.add(ev)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Event '{ev.id}' already exists")
    logger.info("event created id=%s", ev.id)
    return ev


async def update_event(db: AsyncSession, event_id: str,
                       data: Dict[str, Any]) -> Event:
    ev = await get_event(db, event_id)

    name = _localized_field(data, "name", required=False)
    _both_languages(name, "name")
    if name is not None:
        ev.name = name
    description = _localized_field(data, "description", required=False)
    if description is not None:
        ev.description = description

    start = _date_field(data, "start_date") or ev.start_date
    end = _date_field(data, "end_date") or ev.end_date
    _check_range(start, end)
    ev.start_date, ev.end_date = start, end

    if data.get("type"):
        ev.type = _check_type(data["type"])
    if data.get("status") is not None:
        ev.status = bool(data["status"])
    for key in ("image", "ai_hint"):
        if data.get(key):
            setattr(ev, key, data[key])

    await db.commit()
    logger.info("event updated id=%s", ev.id)
    return ev


async def delete_event(db: AsyncSession, event_id: str) -> None:
    ev = await get_event(db, event_id)
    n_orders = (await db.execute(
        select(func.count()).select_from(Order)
        .where(Order.event_id == event_id)
    )).scalar_one()
    n_checkins = (await db.execute(
        select(func.count()).select_from(CheckIn)
        .where(CheckIn.event_id == event_id)
    )).scalar_one()
    if n_orders or n_checkins:
        raise ConflictError(
            f"Event '{event_id}' has {n_orders} orders and {n_checkins} "
            "check-ins and cannot be deleted"
        )
    await db.delete(ev)
    await db.commit()
    logger.info("event deleted id=%s", event_id)


# ----------------------------
# Products
# ----------------------------
def product_to_dict(p: Product) -> Dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "image": p.image,
        "aiHint": p.ai_hint,
    }


async def list_products(db: AsyncSession) -> List[Product]:
    rows = await db.execute(select(Product).order_by(Product.id))
    return list(rows.scalars().all())


async def products_by_id(db: AsyncSession) -> Dict[str, Product]:
    return {p.id: p for p in await list_products(db)}


async def get_product(db: AsyncSession, product_id: str) -> Product:
    p = await db.get(Product, product_id)
    if p is None:
        raise NotFoundError("Product", product_id)
    return p


def search_products(products: List[Product], term: str,
                    locale: str) -> List[Product]:
    term = (term or "").strip().lower()
    if not term:
        return list(products)
    return [
        p for p in products
        if term in localized(p.name, locale).lower()
        or term in localized(p.description, locale).lower()
    ]


async def create_product(db: AsyncSession, data: Dict[str, Any]) -> Product:
    name = _localized_field(data, "name", required=True)
    description = _localized_field(data, "description", required=True)
    pid = (data.get("id") or "").strip() or new_id("PROD")

    if await db.get(Product, pid) is not None:
        raise ConflictError(f"Product '{pid}' already exists")

    p = Product(
        id=pid,
        name=name,
        description=description,
        image=data.get("image") or DEFAULT_PRODUCT_IMAGE,
        ai_hint=data.get("ai_hint") or DEFAULT_PRODUCT_HINT,
    )
    db.add(p)
    await db.commit()
    logger.info("product created id=%s", p.id)
    return p


async def update_product(db: AsyncSession, product_id: str,
                         data: Dict[str, Any]) -> Product:
    p = await get_product(db, product_id)
    name = _localized_field(data, "name", required=False)
    description = _localized_field(data, "description", required=False)
    _both_languages(name, "name")
    _both_languages(description, "description")
    if name is not None:
        p.name = name
    if description is not None:
        p.description = description
    for key in ("image", "ai_hint"):
        if data.get(key):
            setattr(p, key, data[key])
    await db.commit()
    logger.info("product updated id=%s", p.id)
    return p


async def delete_product(db: AsyncSession, product_id: str) -> None:
    p = await get_product(db, product_id)
    used = (await db.execute(
        select(func.count()).select_from(OrderItem)
        .where(OrderItem.product_id == product_id)
    )).scalar_one()
    if used:
        raise ConflictError(
            f"Product '{product_id}' is referenced by {used} order lines "
            "and cannot be deleted"
        )
    await db.delete(p)
    await db.commit()
    logger.info("product deleted id=%s", product_id)
