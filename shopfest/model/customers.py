from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import Customer, CheckIn, Order
from ..errors import ValidationError, NotFoundError, ConflictError
from ..helpers import new_id, today, fmt_date, is_valid_phone, is_valid_email

logger = logging.getLogger(__name__)


def customer_to_dict(c: Customer) -> Dict[str, Any]:
    return {
        "id": c.id,
        "phone": c.phone,
        "shopName": c.shop_name,
        "address": c.address,
        "email": c.email,
        "joined": fmt_date(c.joined),
    }


def _clean(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _validate(phone: Optional[str], shop_name: Optional[str],
              email: Optional[str]) -> None:
    if phone is not None and not is_valid_phone(phone):
        raise ValidationError("Invalid phone number format", field="phone")
    if shop_name is not None and not shop_name.strip():
        raise ValidationError("Shop name cannot be empty", field="shop_name")
    if email is not None and not is_valid_email(email):
        raise ValidationError("Invalid email format", field="email")


async def list_customers(db: AsyncSession) -> List[Customer]:
    rows = await db.execute(
        select(Customer).order_by(Customer.joined.desc(), Customer.shop_name)
    )
    return list(rows.scalars().all())


async def get_customer(db: AsyncSession, customer_id: str) -> Customer:
    c = await db.get(Customer, customer_id)
    if c is None:
        raise NotFoundError("Customer", customer_id)
    return c


async def find_by_phone(db: AsyncSession, phone: str) -> Optional[Customer]:
    phone = (phone or "").strip()
    if not phone:
        return None
    return (await db.execute(
        select(Customer).where(Customer.phone == phone)
    )).scalars().first()


@dataclass
class PhoneBook:
    """Phone numbers for report rows, by customer id or by shop name."""
    by_customer: Dict[str, str] = field(default_factory=dict)
    by_shop: Dict[str, str] = field(default_factory=dict)

    def lookup(self, order) -> Optional[str]:
        if order.customer_id and order.customer_id in self.by_customer:
            return self.by_customer[order.customer_id]
        # anonymous orders only carry the shop name
        return self.by_shop.get(order.shop_name)


async def phone_book(db: AsyncSession) -> PhoneBook:
    rows = await db.execute(
        select(Customer.id, Customer.shop_name, Customer.phone)
        .order_by(Customer.joined, Customer.id)
    )
    book = PhoneBook()
    for cid, shop, phone in rows.all():
        book.by_customer[cid] = phone
        # first customer registered under a shop name wins
        book.by_shop.setdefault(shop, phone)
    return book


async def create_customer(db: AsyncSession,
                          data: Dict[str, Any]) -> Customer:
    phone = _clean(data, "phone")
    shop_name = _clean(data, "shop_name")
    email = _clean(data, "email")
    if phone is None:
        raise ValidationError("phone is required", field="phone")
    if shop_name is None:
        raise ValidationError("Shop name cannot be empty", field="shop_name")
    _validate(phone, shop_name, email)

    if await find_by_phone(db, phone) is not None:
        raise ConflictError(f"A customer with phone {phone} already exists")

    c = Customer(
        id=new_id("CUST"),
        phone=phone,
        shop_name=shop_name,
        address=_clean(data, "address"),
        email=email,
        joined=today(),
    )
    db.add(c)
    try:
        await db.commit()
    except IntegrityError:
        # concurrent registration of the same phone
        await db.rollback()
        raise ConflictError(f"A customer with phone {phone} already exists")
    logger.info("customer created id=%s shop=%r", c.id, c.shop_name)
    return c


async def update_customer(db: AsyncSession, customer_id: str,
                          data: Dict[str, Any]) -> Customer:
    c = await get_customer(db, customer_id)
    phone = _clean(data, "phone")
    shop_name = _clean(data, "shop_name")
    email = _clean(data, "email")
    _validate(phone, shop_name, email)

    if phone is not None and phone != c.phone:
        other = await find_by_phone(db, phone)
        if other is not None and other.id != c.id:
            raise ConflictError(
                f"A customer with phone {phone} already exists"
            )
        c.phone = phone
    if shop_name is not None:
        c.shop_name = shop_name
    if email is not None:
        c.email = email
    address = _clean(data, "address")
    if address is not None:
        c.address = address

    await db.commit()
    logger.info("customer updated id=%s", c.id)
    return c


async def delete_customer(db: AsyncSession, customer_id: str) -> None:
    c = await get_customer(db, customer_id)
    n_checkins = (await db.execute(
        select(func.count()).select_from(CheckIn)
        .where(CheckIn.customer_id == customer_id)
    )).scalar_one()
    n_orders = (await db.execute(
        select(func.count()).select_from(Order)
        .where(Order.customer_id == customer_id)
    )).scalar_one()
    if n_checkins or n_orders:
        raise ConflictError(
            f"Customer '{customer_id}' has {n_checkins} check-ins and "
            f"{n_orders} orders and cannot be deleted"
        )
    await db.delete(c)
    await db.commit()
    logger.info("customer deleted id=%s", customer_id)
