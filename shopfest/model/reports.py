# model/reports.py
"""
Per-event report tables for the dashboard: check-ins and orders, searchable,
paginated, and exportable as CSV.

Orders are paginated by whole orders and only then flattened into one row
per product, so an order never straddles two pages.
"""

from __future__ import annotations
import csv
import io
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .customers import PhoneBook
from .db import CheckIn, Event, Order, Product
from ..helpers import localized, fmt_date, fmt_datetime

PAGE_SIZE_OPTIONS = (10, 20, 50, 100)
DEFAULT_CHECKINS_PER_PAGE = 20
DEFAULT_ORDERS_PER_PAGE = 10

CHECKIN_CSV_COLUMNS = (
    "Customer ID", "Shop Name", "Phone", "Event ID", "Check-in Time",
)
ORDER_CSV_COLUMNS = (
    "Order ID", "Shop Name", "Phone Number", "Product ID", "Product Name",
    "Quantity", "Order Date",
)


@dataclass
class Page:
    items: list
    page: int
    per_page: int
    total: int

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def first_index(self) -> int:
        return 0 if self.total == 0 else (self.page - 1) * self.per_page + 1

    @property
    def last_index(self) -> int:
        return min(self.page * self.per_page, self.total)

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


def page_size(value: Optional[int], default: int) -> int:
    return value if value in PAGE_SIZE_OPTIONS else default


def paginate(items: Sequence, page: Optional[int], per_page: int) -> Page:
    total = len(items)
    pages = max(1, math.ceil(total / per_page))
    page = max(1, min(page or 1, pages))
    start = (page - 1) * per_page
    return Page(list(items[start:start + per_page]), page, per_page, total)


def filter_check_ins(check_ins: Sequence[CheckIn],
                     term: Optional[str]) -> List[CheckIn]:
    term = (term or "").strip().lower()
    if not term:
        return list(check_ins)
    return [
        c for c in check_ins
        if term in c.shop_name.lower() or term in c.phone.lower()
    ]


def filter_orders(orders: Sequence[Order], term: Optional[str],
                  phones: PhoneBook) -> List[Order]:
    term = (term or "").strip().lower()
    if not term:
        return list(orders)
    return [
        o for o in orders
        if term in o.shop_name.lower()
        or term in (phones.lookup(o) or "").lower()
    ]


def product_name(products: Dict[str, Product], product_id: str,
                 locale: str = "vi") -> str:
    p = products.get(product_id)
    if p is None:
        return product_id
    return localized(p.name, locale) or product_id


def flatten_orders(orders: Sequence[Order], products: Dict[str, Product],
                   phones: PhoneBook,
                   locale: str = "vi") -> List[Dict[str, Any]]:
    rows = []
    for o in orders:
        total_qty = sum(i.quantity for i in o.items)
        for idx, item in enumerate(o.items):
            rows.append({
                "order_id": o.order_id,
                "shop_name": o.shop_name,
                "phone": phones.lookup(o) or "N/A",
                "product_id": item.product_id,
                "product_name": product_name(products, item.product_id,
                                             locale),
                "quantity": item.quantity,
                "total_quantity": total_qty,
                "order_date": fmt_date(o.order_date),
                "status": o.status,
                # order columns render once, spanning all its product rows
                "is_first_product": idx == 0,
                "total_products": len(o.items),
            })
    return rows


def _to_csv(header: Sequence[str], rows: List[Sequence[Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue()


def check_ins_csv(check_ins: Sequence[CheckIn]) -> str:
    return _to_csv(CHECKIN_CSV_COLUMNS, [
        (c.customer_id, c.shop_name, c.phone, c.event_id,
         fmt_datetime(c.check_in_time))
        for c in check_ins
    ])


def orders_csv(orders: Sequence[Order], products: Dict[str, Product],
               phones: PhoneBook) -> str:
    return _to_csv(ORDER_CSV_COLUMNS, [
        (o.order_id, o.shop_name, phones.lookup(o) or "",
         item.product_id, product_name(products, item.product_id),
         item.quantity, fmt_date(o.order_date))
        for o in orders
        for item in o.items
    ])


def export_filename(event: Optional[Event], kind: str) -> str:
    name = localized(event.name, "en") if event is not None else "report"
    safe = (name or "report").replace(" ", "_")
    return f"{safe}_{kind}.csv"
