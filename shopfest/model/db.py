import json
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    Boolean,
    JSON,
    ForeignKey,
    UniqueConstraint,
    Index,
)

from ..helpers import utcnow


Base = declarative_base()


# ----------------------------
# ORM models
# ----------------------------
class Event(Base):
    __tablename__ = "events"
    id = Column(String, primary_key=True)
    # {"en": ..., "vi": ...}
    name = Column(JSON, nullable=False)
    description = Column(JSON, nullable=True)

    # simple_packages | complex_packages | flash_sale | seasonal | expired
    type = Column(String, nullable=False, default="simple_packages")
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(Boolean, nullable=False, default=True)

    image = Column(String, nullable=True)
    ai_hint = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Product(Base):
    __tablename__ = "products"
    id = Column(String, primary_key=True)
    name = Column(JSON, nullable=False)
    description = Column(JSON, nullable=False)
    image = Column(String, nullable=False,
                   default="https://placehold.co/600x400.png")
    ai_hint = Column(String, nullable=False, default="product package")
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Customer(Base):
    __tablename__ = "customers"
    id = Column(String, primary_key=True)
    phone = Column(String, nullable=False, unique=True)
    shop_name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    email = Column(String, nullable=True)
    joined = Column(Date, nullable=False)


class CheckIn(Base):
    __tablename__ = "check_ins"
    __table_args__ = (
        # one check-in per customer per event per day
        UniqueConstraint("customer_id", "event_id", "check_in_date",
                         name="uq_check_in_customer_event_day"),
    )
    id = Column(String, primary_key=True)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False)
    shop_name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    event_id = Column(String, ForeignKey("events.id"), nullable=False)
    check_in_date = Column(Date, nullable=False)
    check_in_time = Column(DateTime, nullable=False, default=utcnow)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_event_date", "event_id", "order_date"),
    )
    order_id = Column(String, primary_key=True)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=True)
    shop_name = Column(String, nullable=False)
    event_id = Column(String, ForeignKey("events.id"), nullable=False)
    # sum of item quantities
    total = Column(Integer, nullable=False, default=0)
    order_date = Column(DateTime, nullable=False, default=utcnow)

    # confirmed | cancelled
    status = Column(String, nullable=False, default="confirmed")
    notes = Column(Text, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.order_id",
                                         ondelete="CASCADE"),
                      nullable=False, index=True)
    product_id = Column(String, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")


class AdminRole(Base):
    __tablename__ = "admin_roles"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    display_name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    # JSON encoded list of permission strings
    permissions = Column(Text, nullable=False, default="[]")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    @property
    def permission_list(self) -> list[str]:
        return list(json.loads(self.permissions or "[]"))


class AdminUser(Base):
    __tablename__ = "admin_users"
    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True)
    username = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    role_id = Column(String, ForeignKey("admin_roles.id"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    role = relationship("AdminRole", lazy="joined")


BUSINESS_TABLES = (CheckIn, OrderItem, Order, Customer, Product, Event)
ADMIN_TABLES = (AdminUser, AdminRole)
