# admin.py
"""
Dashboard pages under /admin.

Every page needs a logged-in admin (anonymous users are redirected to the
login page) and the permission named on its route. Form posts go to the
store functions; a DomainError re-renders the page with the message.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_303_SEE_OTHER

from . import auth
from .errors import DomainError
from .model import (
    accounts, analytics, catalog, customers, maintenance, orders, reports,
)
from .model import leaderboard as board
from .model.accounts import Permissions as P
from .web import get_db, templates

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")


def _render(request: Request, name: str, ctx: Dict[str, Any],
            status_code: int = 200):
    admin = auth.current_admin(request)
    ctx = {
        "admin": admin,
        "can": lambda perm: auth.can(request, perm),
        "P": P,
        **ctx,
    }
    return templates.TemplateResponse(request, name, ctx,
                                      status_code=status_code)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=HTTP_303_SEE_OTHER)


async def _form(request: Request) -> Dict[str, str]:
    form = await request.form()
    return {k: v.strip() if isinstance(v, str) else v
            for k, v in form.items()}


def _flag(form: Dict[str, str], key: str) -> bool:
    # html checkboxes are only posted when ticked
    return form.get(key) in ("on", "true", "1", "yes")


# ----------------------------
# Dashboard
# ----------------------------
@router.get("", response_class=HTMLResponse)
async def dashboard(
    request: Request,
    _admin=Depends(auth.require_page_permission(P.ANALYTICS_READ)),
    db: AsyncSession = Depends(get_db),
):
    entries = await board.leaderboard(db, limit=board.DASHBOARD_LIMIT)
    sales = await analytics.sales_chart(db)
    peak = max((m["sales"] for m in sales), default=0)
    return _render(request, "admin/dashboard.html", {
        "stats": await analytics.dashboard_stats(db),
        "sales": sales,
        "sales_peak": peak or 1,
        "categories": await analytics.category_chart(db),
        "top_shops": board.dashboard_rows(entries),
    })


# ----------------------------
# Events
# ----------------------------
def _event_data(form: Dict[str, str]) -> Dict[str, Any]:
    return {
        "id": form.get("id") or None,
        "name_en": form.get("name_en"),
        "name_vi": form.get("name_vi"),
        "description_en": form.get("description_en"),
        "description_vi": form.get("description_vi"),
        "type": form.get("type") or None,
        "start_date": form.get("start_date") or None,
        "end_date": form.get("end_date") or None,
        "status": _flag(form, "status"),
        "image": form.get("image"),
        "ai_hint": form.get("ai_hint"),
    }


async def _events_page(request, db, error=None, form=None,
                       status_code=200):
    return _render(request, "admin/events.html", {
        "events": await catalog.list_events(db),
        "event_types": catalog.EVENT_TYPES,
        "is_active": catalog.is_active,
        "error": error,
        "form": form or {},
    }, status_code)


@router.get("/events", response_class=HTMLResponse)
async def events_list(
    request: Request,
    _admin=Depends(auth.require_page_permission(P.EVENT_READ)),
    db: AsyncSession = Depends(get_db),
):
    return await _events_page(request, db)


@router.post("/events", response_class=HTMLResponse)
async def events_create(
    request: Request,
    _admin=Depends(auth.require_page_permission(P.EVENT_CREATE)),
    db: AsyncSession = Depends(get_db),
):
    form = await _form(request)
    try:
        await catalog.create_event(db, _event_data(form))
    except DomainError as e:
        return await _events_page(request, db, e.message, form,
                                  e.status_code)
    return _redirect("/admin/events")


@router.get("/events/{event_id}", response_class=HTMLResponse)
async def events_edit(
    request: Request,
    event_id: str,
    _admin=Depends(auth.require_page_permission(P.EVENT_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    return _render(request, "admin/event_edit.html", {
        "event": await catalog.get_event(db, event_id),
        "event_types": catalog.EVENT_TYPES,
        "error": None,
    })


@router.post("/events/{event_id}", response_class=HTMLResponse)
async def events_update(
    request: Request,
    event_id: str,
    _admin=Depends(auth.require_page_permission(P.EVENT_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    form = await _form(request)
    try:
        await catalog.update_event(db, event_id, _event_data(form))
    except DomainError as e:
        await db.rollback()
        return _render(request, "admin/event_edit.html", {
            "event": await catalog.get_event(db, event_id),
            "event_types": catalog.EVENT_TYPES,
            "error": e.message,
        }, e.status_code)
    return _redirect("/admin/events")


@router.post("/events/{event_id}/delete", response_class=HTMLResponse)
async def events_delete(
    request: Request,
    event_id: str,
    _admin=Depends(auth.require_page_permission(P.EVENT_DELETE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        await catalog.delete_event(db, event_id)
    except DomainError as e:
        return await _events_page(request, db, e.message,
                                  status_code=e.status_code)
    return _redirect("/admin/events")


# ----------------------------
# Products
# ----------------------------
def _product_data(form: Dict[str, str]) -> Dict[str, Any]:
    return {
        "id": form.get("id") or None,
        "name_en": form.get("name_en"),
        "name_vi": form.get("name_vi"),
        "description_en": form.get("description_en"),
        "description_vi": form.get("description_vi"),
        "image": form.get("image"),
        "ai_hint": form.get("ai_hint"),
    }


async def _products_page(request, db, error=None, form=None,
                         status_code=200):
    return _render(request, "admin/products.html", {
        "products": await catalog.list_products(db),
        "error": error,
        "form": form or {},
    }, status_code)


@router.get("/products", response_class=HTMLResponse)
async def products_list(
    request: Request,
    _admin=Depends(auth.require_page_permission(P.PRODUCT_READ)),
    db: AsyncSession = Depends(get_db),
):
    return await _products_page(request, db)


@router.post("/products", response_class=HTMLResponse)
async def products_create(
    request: Request,
    _admin=Depends(auth.require_page_permission(P.PRODUCT_CREATE)),
    db: AsyncSession = Depends(get_db),
):
    form = await _form(request)
    try:
        await catalog.create_product(db, _product_data(form))
    except DomainError as e:
        return await _products_page(request, db, e.message, form,
                                    e.status_code)
    return _redirect("/admin/products")


@router.get("/products/{product_id}", response_class=HTMLResponse)
async def products_edit(
    request: Request,
    product_id: str,
    _admin=Depends(auth.require_page_permission(P.PRODUCT_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    return _render(request, "admin/product_edit.html", {
        "product": await catalog.get_product(db, product_id),
        "error": None,
    })


@router.post("/products/{product_id}", response_class=HTMLResponse)
async def products_update(
    request: Request,
    product_id: str,
    _admin=Depends(auth.require_page_permission(P.PRODUCT_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    form = await _form(request)
    try:
        await catalog.update_product(db, product_id, _product_data(form))
    except DomainError as e:
        await db.rollback()
        return _render(request, "admin/product_edit.html", {
            "product": await catalog.get_product(db, product_id),
            "error": e.message,
        }, e.status_code)
    return _redirect("/admin/products")


@router.post("/products/{product_id}/delete", response_class=HTMLResponse)
async def products_delete(
    request: Request,
    product_id: str,
    _admin=Depends(auth.require_page_permission(P.PRODUCT_DELETE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        await catalog.delete_product(db, product_id)
    except DomainError as e:
        return await _products_page(request, db, e.message,
                                    status_code=e.status_code)
    return _redirect("/admin/products")


# ----------------------------
# Customers
# ----------------------------
async def _customers_page(request, db, error=None, form=None,
                          status_code=200):
    return _render(request, "admin/customers.html", {
        "customers": await customers.list_customers(db),
        "error": error,
        "form": form or {},
    }, status_code)


@router.get("/customers", response_class=HTMLResponse)
async def customers_list(
    request: Request,
    _admin=Depends(auth.require_page_permission(P.CUSTOMER_READ)),
    db: AsyncSession = Depends(get_db),
):
    return await _customers_page(request, db)


@router.post("/customers", response_class=HTMLResponse)
async def customers_create(
    request: Request,
    _admin=Depends(auth.require_page_permission(P.CUSTOMER_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    form = await _form(request)
    try:
        await customers.create_customer(db, form)
    except DomainError as e:
        return await _customers_page(request, db, e.message, form,
                                     e.status_code)
    return _redirect("/admin/customers")


@router.get("/customers/{customer_id}", response_class=HTMLResponse)
async def customers_edit(
    request: Request,
    customer_id: str,
    _admin=Depends(auth.require_page_permission(P.CUSTOMER_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    return _render(request, "admin/customer_edit.html", {
        "customer": await customers.get_customer(db, customer_id),
        "error": None,
    })


@router.post("/customers/{customer_id}", response_class=HTMLResponse)
async def customers_update(
    request: Request,
    customer_id: str,
    _admin=Depends(auth.require_page_permission(P.CUSTOMER_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    form = await _form(request)
    try:
        await customers.update_customer(db, customer_id, form)
    except DomainError as e:
        await db.rollback()
        return _render(request, "admin/customer_edit.html", {
            "customer": await customers.get_customer(db, customer_id),
            "error": e.message,
        }, e.status_code)
    return _redirect("/admin/customers")


@router.post("/customers/{customer_id}/delete", response_class=HTMLResponse)
async def customers_delete(
    request: Request,
    customer_id: str,
    _admin=Depends(auth.require_page_permission(P.CUSTOMER_DELETE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        await customers.delete_customer(db, customer_id)
    except DomainError as e:
        return await _customers_page(request, db, e.message,
                                     status_code=e.status_code)
    return _redirect("/admin/customers")


# ----------------------------
# Reports
# ----------------------------
async def _report_event(db: AsyncSession, event_id: Optional[str]):
    events = await catalog.list_events(db)
    if event_id:
        return events, await catalog.get_event(db, event_id)
    return events, (events[0] if events else None)


@router.get("/reports", response_class=HTMLResponse)
async def reports_page(
    request: Request,
    event_id: Optional[str] = None,
    tab: str = "checkins",
    q: str = "",
    page: int = 1,
    per_page: Optional[int] = None,
    _admin=Depends(auth.require_page_permission(P.REPORTS_READ)),
    db: AsyncSession = Depends(get_db),
):
    events, event = await _report_event(db, event_id)
    tab = "orders" if tab == "orders" else "checkins"
    ctx: Dict[str, Any] = {
        "events": events,
        "event": event,
        "tab": tab,
        "q": q,
        "page_sizes": reports.PAGE_SIZE_OPTIONS,
        "listing": None,
        "rows": [],
    }
    if event is None:
        return _render(request, "admin/reports.html", ctx)

    ctx["checkin_stats"] = await orders.check_in_stats(db, event.id)
    ctx["order_stats"] = await orders.order_stats(db, event.id)
    if tab == "checkins":
        found = reports.filter_check_ins(
            await orders.list_check_ins(db, event.id), q
        )
        size = reports.page_size(per_page,
                                 reports.DEFAULT_CHECKINS_PER_PAGE)
        ctx["listing"] = reports.paginate(found, page, size)
    else:
        phones = await customers.phone_book(db)
        found = reports.filter_orders(
            await orders.list_orders(db, event.id), q, phones
        )
        size = reports.page_size(per_page, reports.DEFAULT_ORDERS_PER_PAGE)
        listing = reports.paginate(found, page, size)
        ctx["listing"] = listing
        ctx["rows"] = reports.flatten_orders(
            listing.items, await catalog.products_by_id(db), phones
        )
        ctx["statuses"] = orders.ORDER_STATUSES
    return _render(request, "admin/reports.html", ctx)


def _csv_response(body: str, filename: str) -> Response:
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{quote(filename)}"'
        },
    )


@router.get("/reports/export/checkins.csv")
async def export_checkins(
    event_id: Optional[str] = None,
    q: str = "",
    _admin=Depends(auth.require_page_permission(P.REPORTS_READ)),
    db: AsyncSession = Depends(get_db),
):
    _, event = await _report_event(db, event_id)
    rows = []
    if event is not None:
        rows = reports.filter_check_ins(
            await orders.list_check_ins(db, event.id), q
        )
    logger.info("export check-ins event=%s rows=%d",
                event.id if event else None, len(rows))
    return _csv_response(reports.check_ins_csv(rows),
                         reports.export_filename(event, "checkins"))


@router.get("/reports/export/orders.csv")
async def export_orders(
    event_id: Optional[str] = None,
    q: str = "",
    _admin=Depends(auth.require_page_permission(P.REPORTS_READ)),
    db: AsyncSession = Depends(get_db),
):
    _, event = await _report_event(db, event_id)
    phones = await customers.phone_book(db)
    rows = []
    if event is not None:
        rows = reports.filter_orders(
            await orders.list_orders(db, event.id), q, phones
        )
    logger.info("export orders event=%s rows=%d",
                event.id if event else None, len(rows))
    return _csv_response(
        reports.orders_csv(rows, await catalog.products_by_id(db), phones),
        reports.export_filename(event, "orders"),
    )


def _back_to_reports(event_id: str) -> RedirectResponse:
    return _redirect(f"/admin/reports?event_id={quote(event_id)}&tab=orders")


@router.post("/orders/{order_id}/status")
async def orders_set_status(
    request: Request,
    order_id: str,
    _admin=Depends(auth.require_page_permission(P.ORDER_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    form = await _form(request)
    o = await orders.update_order(db, order_id,
                                  {"status": form.get("status")})
    return _back_to_reports(o.event_id)


@router.post("/orders/{order_id}/delete")
async def orders_delete(
    order_id: str,
    _admin=Depends(auth.require_page_permission(P.ORDER_DELETE)),
    db: AsyncSession = Depends(get_db),
):
    o = await orders.get_order(db, order_id)
    event_id = o.event_id
    await orders.delete_order(db, order_id)
    return _back_to_reports(event_id)


# ----------------------------
# Admin users
# ----------------------------
async def _users_page(request, db, error=None, form=None, status_code=200):
    return _render(request, "admin/users.html", {
        "users": await accounts.list_users(db),
        "roles": await accounts.list_roles(db),
        "error": error,
        "form": form or {},
    }, status_code)


@router.get("/users", response_class=HTMLResponse)
async def users_list(
    request: Request,
    _admin=Depends(auth.require_page_permission(P.USER_READ)),
    db: AsyncSession = Depends(get_db),
):
    return await _users_page(request, db)


@router.post("/users", response_class=HTMLResponse)
async def users_create(
    request: Request,
    admin=Depends(auth.require_page_permission(P.USER_CREATE)),
    db: AsyncSession = Depends(get_db),
):
    form = await _form(request)
    data = dict(form, is_active=_flag(form, "is_active"))
    try:
        await accounts.create_user(db, data, created_by=admin["id"])
    except DomainError as e:
        form.pop("password", None)
        return await _users_page(request, db, e.message, form,
                                 e.status_code)
    return _redirect("/admin/users")


@router.post("/users/{user_id}", response_class=HTMLResponse)
async def users_update(
    request: Request,
    user_id: str,
    _admin=Depends(auth.require_page_permission(P.USER_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    form = await _form(request)
    data = dict(form, is_active=_flag(form, "is_active"))
    try:
        await accounts.update_user(db, user_id, data)
    except DomainError as e:
        await db.rollback()
        return await _users_page(request, db, e.message,
                                 status_code=e.status_code)
    return _redirect("/admin/users")


@router.post("/users/{user_id}/delete", response_class=HTMLResponse)
async def users_delete(
    request: Request,
    user_id: str,
    admin=Depends(auth.require_page_permission(P.USER_DELETE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        await accounts.delete_user(db, user_id, acting_user_id=admin["id"])
    except DomainError as e:
        return await _users_page(request, db, e.message,
                                 status_code=e.status_code)
    return _redirect("/admin/users")


# ----------------------------
# Settings
# ----------------------------
@router.get("/settings", response_class=HTMLResponse)
async def settings_page(
    request: Request,
    cleared: Optional[int] = None,
    _admin=Depends(auth.require_page_permission(P.SYSTEM_SETTINGS)),
    db: AsyncSession = Depends(get_db),
):
    return _render(request, "admin/settings.html", {
        "counts": await maintenance.table_counts(db),
        "cleared": bool(cleared),
    })


@router.post("/settings/clear")
async def settings_clear(
    admin=Depends(auth.require_page_permission(P.DATA_MANAGEMENT)),
    db: AsyncSession = Depends(get_db),
):
    counts = await maintenance.clear_business_data(db)
    logger.warning("business data cleared from dashboard by %s: %s",
                   admin["email"], counts)
    return _redirect("/admin/settings?cleared=1")
