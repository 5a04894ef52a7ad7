from __future__ import annotations
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse, ORJSONResponse
from fastapi import Form
from fastapi.staticfiles import StaticFiles

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.sessions import SessionMiddleware
from starlette.status import HTTP_303_SEE_OTHER

from . import auth
from .admin import router as admin_router
from .config import (
    ADMIN_AUTH_MODE, DATABASE_URL, DEFAULT_LOCALE, LOCALES, SESSION_SECRET,
    SITE_NAME,
)
from .errors import DomainError, ConflictError, NotFoundError
from .helpers import is_checkin_phone, pick_locale
from .i18n import translator
from .logging_config import configure_logging
from .model import accounts, analytics, catalog, customers, orders
from .model import leaderboard as board
from .model.accounts import Permissions as P
from .model.db import Base
from .model.reports import paginate
from .web import HERE, engine, get_db, templates

logger = logging.getLogger(__name__)

CART_KEY = "cart"
SHOP_KEY = "shop"

app = FastAPI(
    title="ShopFest",
    default_response_class=ORJSONResponse,
)
app.mount("/static", StaticFiles(directory=str(HERE / "static")),
          name="static")
app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET)


# ---
# startup
# ---
@app.on_event("startup")
async def _say_hello():
    configure_logging()
    backend = DATABASE_URL.split(":", 1)[0]
    print('\n' * 3)
    print('=' * 50)
    print(f'{SITE_NAME} ShopFest is starting up...')
    print(f'   - Database: {backend}')
    print(f'   - Admin auth mode: {ADMIN_AUTH_MODE}')
    print(f'   - Default locale: {DEFAULT_LOCALE}')
    print('=' * 50)
    print('\n' * 3)


@app.on_event("startup")
async def _db_init():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ----------------------------
# Errors
# ----------------------------
@app.exception_handler(DomainError)
async def _domain_error(request: Request, exc: DomainError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path,
                exc.code, exc.message)
    if request.url.path.startswith("/api/"):
        return ORJSONResponse(exc.to_dict(), status_code=exc.status_code)
    return templates.TemplateResponse(
        request, "error.html",
        {"error": exc.message, "status_code": exc.status_code},
        status_code=exc.status_code,
    )


# ----------------------------
# Helpers
# ----------------------------
def _locale(locale: str) -> str:
    if locale not in LOCALES:
        raise HTTPException(404, detail="unknown locale")
    return locale


def _page(request: Request, locale: str, name: str, ctx: dict,
          status_code: int = 200):
    ctx = {
        "locale": locale,
        "locales": LOCALES,
        "t": translator(locale),
        **ctx,
    }
    return templates.TemplateResponse(request, name, ctx,
                                      status_code=status_code)


def _shop(request: Request) -> Optional[dict]:
    return request.session.get(SHOP_KEY)


def _cart(request: Request) -> dict:
    return dict(request.session.get(CART_KEY) or {})


def _cart_lines(request: Request, by_id: dict) -> list:
    """Cart lines for products that still exist. Stale ids leave the cart."""
    cart = _cart(request)
    lines = [(by_id[pid], qty) for pid, qty in cart.items() if pid in by_id]
    if len(lines) != len(cart):
        request.session[CART_KEY] = {p.id: qty for p, qty in lines}
    return lines


def _to_checkin(locale: str) -> RedirectResponse:
    return RedirectResponse(url=f"/{locale}", status_code=HTTP_303_SEE_OTHER)


app.include_router(admin_router)


# ----------------------------
# Admin login
# ----------------------------
@app.get("/admin/login", response_class=HTMLResponse)
async def admin_login_get(request: Request, next: str | None = "/admin"):
    return templates.TemplateResponse(
        request, "login.html",
        {"next": auth.safe_next(next), "error": None}
    )


@app.post("/admin/login", response_class=HTMLResponse)
async def admin_login_post(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    next: str = Form("/admin"),
    db: AsyncSession = Depends(get_db),
):
    identity = await auth.authenticate(db, email, password)
    if identity is not None:
        auth.login(request, identity)
        return RedirectResponse(
            url=auth.safe_next(next),
            status_code=HTTP_303_SEE_OTHER
        )
    # auth failed
    return templates.TemplateResponse(
        request, "login.html",
        {"next": auth.safe_next(next), "error": "Invalid credentials."},
        status_code=401,
    )


@app.get("/admin/logout")
async def admin_logout(request: Request):
    auth.logout(request)
    return RedirectResponse(url="/admin/login",
                            status_code=HTTP_303_SEE_OTHER)


# ----------------------------
# API: public
# ----------------------------
@app.get("/api/events/active")
async def api_active_events(db: AsyncSession = Depends(get_db)):
    events = await catalog.list_active_events(db)
    return {"items": [catalog.event_to_dict(e) for e in events]}


@app.get("/api/products")
async def api_products(db: AsyncSession = Depends(get_db)):
    products = await catalog.list_products(db)
    return {"items": [catalog.product_to_dict(p) for p in products]}


@app.get("/api/customers/by-phone")
async def api_customer_by_phone(phone: str,
                                db: AsyncSession = Depends(get_db)):
    c = await customers.find_by_phone(db, phone)
    if c is None:
        raise NotFoundError("Customer", phone)
    return customers.customer_to_dict(c)


@app.get("/api/leaderboard")
async def api_leaderboard(
    event_id: Optional[str] = None,
    limit: int = board.DEFAULT_LIMIT,
    locale: str = "en",
    db: AsyncSession = Depends(get_db),
):
    products = await catalog.products_by_id(db)
    entries = await board.leaderboard(db, event_id, limit, products,
                                      pick_locale(locale))
    return {
        "eventId": event_id,
        "limit": board.clamp_limit(limit),
        "items": [e.to_dict() for e in entries],
    }


# ----------------------------
# API: dashboard
# ----------------------------
@app.get("/api/dashboard/stats")
async def api_dashboard_stats(
    _admin=Depends(auth.require_permission(P.ANALYTICS_READ)),
    db: AsyncSession = Depends(get_db),
):
    return await analytics.dashboard_stats(db)


@app.get("/api/dashboard/sales-chart")
async def api_dashboard_sales_chart(
    _admin=Depends(auth.require_permission(P.ANALYTICS_READ)),
    db: AsyncSession = Depends(get_db),
):
    return {"items": await analytics.sales_chart(db)}


@app.get("/api/dashboard/categories")
async def api_dashboard_categories(
    _admin=Depends(auth.require_permission(P.ANALYTICS_READ)),
    db: AsyncSession = Depends(get_db),
):
    return {"items": await analytics.category_chart(db)}


@app.get("/api/check-ins")
async def api_check_ins(
    event_id: Optional[str] = None,
    _admin=Depends(auth.require_permission(P.REPORTS_READ)),
    db: AsyncSession = Depends(get_db),
):
    rows = await orders.list_check_ins(db, event_id)
    return {"items": [orders.check_in_to_dict(ci) for ci in rows]}


@app.get("/api/dashboard/leaderboard")
async def api_dashboard_leaderboard(
    _admin=Depends(auth.require_permission(P.ANALYTICS_READ)),
    db: AsyncSession = Depends(get_db),
):
    entries = await board.leaderboard(db, limit=board.DASHBOARD_LIMIT)
    return {"items": board.dashboard_rows(entries)}


# ----------------------------
# API: admin accounts
# ----------------------------
@app.get("/api/admin/me")
async def api_admin_me(admin=Depends(auth.require_permission())):
    return admin


@app.get("/api/admin/users")
async def api_admin_users(
    _admin=Depends(auth.require_permission(P.USER_READ)),
    db: AsyncSession = Depends(get_db),
):
    users = await accounts.list_users(db)
    return {"items": [accounts.user_to_dict(u) for u in users]}


@app.post("/api/admin/users", status_code=201)
async def api_admin_create_user(
    payload: dict,
    admin=Depends(auth.require_permission(P.USER_CREATE)),
    db: AsyncSession = Depends(get_db),
):
    user = await accounts.create_user(db, payload, created_by=admin["id"])
    return accounts.user_to_dict(user)


@app.put("/api/admin/users/{user_id}")
async def api_admin_update_user(
    user_id: str,
    payload: dict,
    _admin=Depends(auth.require_permission(P.USER_UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    user = await accounts.update_user(db, user_id, payload)
    return accounts.user_to_dict(user)


@app.delete("/api/admin/users/{user_id}")
async def api_admin_delete_user(
    user_id: str,
    admin=Depends(auth.require_permission(P.USER_DELETE)),
    db: AsyncSession = Depends(get_db),
):
    await accounts.delete_user(db, user_id, acting_user_id=admin["id"])
    return {"ok": True}


@app.get("/api/admin/roles")
async def api_admin_roles(
    _admin=Depends(auth.require_permission(P.ROLE_READ)),
    db: AsyncSession = Depends(get_db),
):
    roles = await accounts.list_roles(db)
    return {"items": [accounts.role_to_dict(r) for r in roles]}


# ----------------------------
# Public pages
# ----------------------------
@app.get("/")
async def root():
    return RedirectResponse(url=f"/{DEFAULT_LOCALE}",
                            status_code=HTTP_303_SEE_OTHER)


async def _render_checkin(request: Request, locale: str, db: AsyncSession,
                          error: Optional[str] = None,
                          form: Optional[dict] = None,
                          status_code: int = 200):
    events = await catalog.list_active_events(db)
    form = form or {}
    selected = form.get("event_id") or (events[0].id if events else None)
    return _page(request, locale, "checkin.html", {
        "events": events,
        "selected": selected,
        "error": error,
        "form": form,
    }, status_code=status_code)


@app.get("/{locale}", response_class=HTMLResponse)
async def checkin_page(request: Request, locale: str,
                       db: AsyncSession = Depends(get_db)):
    return await _render_checkin(request, _locale(locale), db)


@app.post("/{locale}/checkin", response_class=HTMLResponse)
async def checkin_submit(
    request: Request,
    locale: str,
    event_id: str = Form(""),
    phone: str = Form(""),
    shop_name: str = Form(""),
    db: AsyncSession = Depends(get_db),
):
    locale = _locale(locale)
    t = translator(locale)
    phone = phone.strip()
    form = {"event_id": event_id, "phone": phone, "shop_name": shop_name}

    if not event_id:
        return await _render_checkin(request, locale, db,
                                     t("checkin.event_required"), form, 400)
    if not is_checkin_phone(phone):
        return await _render_checkin(request, locale, db,
                                     t("checkin.invalid_phone"), form, 400)

    try:
        # before any customer is written
        event = await catalog.get_event(db, event_id)
        if not catalog.is_active(event):
            return await _render_checkin(request, locale, db,
                                         t("checkin.event_inactive"), form,
                                         400)
        customer = await customers.find_by_phone(db, phone)
        if customer is None:
            if not shop_name.strip():
                return await _render_checkin(
                    request, locale, db, t("checkin.shop_required"), form, 400
                )
            customer = await customers.create_customer(db, {
                "phone": phone, "shop_name": shop_name,
            })
        # a failed commit expires the instance
        shop = {
            "customer_id": customer.id,
            "shop_name": customer.shop_name,
            "phone": customer.phone,
            "event_id": event.id,
        }
        try:
            await orders.create_check_in(db, shop["customer_id"], event.id)
        except ConflictError:
            # already checked in today, just continue to ordering
            logger.info("repeat check-in customer=%s event=%s",
                        shop["customer_id"], event.id)
    except DomainError as e:
        return await _render_checkin(request, locale, db, e.message, form,
                                     e.status_code)

    request.session[SHOP_KEY] = shop
    request.session[CART_KEY] = {}
    return RedirectResponse(url=f"/{locale}/order",
                            status_code=HTTP_303_SEE_OTHER)


@app.get("/{locale}/leave")
async def leave_shop(request: Request, locale: str):
    locale = _locale(locale)
    request.session.pop(SHOP_KEY, None)
    request.session.pop(CART_KEY, None)
    return _to_checkin(locale)


@app.get("/{locale}/order", response_class=HTMLResponse)
async def order_page(
    request: Request,
    locale: str,
    q: str = "",
    page: int = 1,
    db: AsyncSession = Depends(get_db),
):
    locale = _locale(locale)
    shop = _shop(request)
    if shop is None:
        return _to_checkin(locale)

    event = await catalog.get_event(db, shop["event_id"])
    all_products = await catalog.list_products(db)
    found = catalog.search_products(all_products, q, locale)
    listing = paginate(found, page, catalog.PRODUCTS_PER_PAGE)

    lines = _cart_lines(request, {p.id: p for p in all_products})
    return _page(request, locale, "order.html", {
        "shop": shop,
        "event": event,
        "listing": listing,
        "q": q,
        "cart_lines": lines,
        "cart_total": sum(qty for _, qty in lines),
    })


@app.post("/{locale}/cart/{action}")
async def cart_update(
    request: Request,
    locale: str,
    action: str,
    product_id: str = Form(...),
    back: str = Form(""),
    db: AsyncSession = Depends(get_db),
):
    locale = _locale(locale)
    if _shop(request) is None:
        return _to_checkin(locale)
    if action not in ("add", "decrement", "remove"):
        raise HTTPException(400, detail="invalid cart action")

    cart = _cart(request)
    if action == "add":
        await catalog.get_product(db, product_id)
        cart[product_id] = cart.get(product_id, 0) + 1
    elif action == "decrement" and product_id in cart:
        cart[product_id] -= 1
        if cart[product_id] <= 0:
            del cart[product_id]
    else:
        cart.pop(product_id, None)
    request.session[CART_KEY] = cart

    dest = back if back.startswith(f"/{locale}/") else f"/{locale}/order"
    return RedirectResponse(url=dest, status_code=HTTP_303_SEE_OTHER)


async def _render_checkout(request: Request, locale: str, db: AsyncSession,
                           error: Optional[str] = None,
                           status_code: int = 200):
    shop = _shop(request)
    lines = _cart_lines(request, await catalog.products_by_id(db))
    return _page(request, locale, "checkout.html", {
        "shop": shop,
        "event": await catalog.get_event(db, shop["event_id"]),
        "cart_lines": lines,
        "cart_total": sum(qty for _, qty in lines),
        "error": error,
    }, status_code=status_code)


@app.get("/{locale}/checkout", response_class=HTMLResponse)
async def checkout_page(request: Request, locale: str,
                        db: AsyncSession = Depends(get_db)):
    locale = _locale(locale)
    if _shop(request) is None:
        return _to_checkin(locale)
    return await _render_checkout(request, locale, db)


@app.post("/{locale}/checkout", response_class=HTMLResponse)
async def checkout_submit(
    request: Request,
    locale: str,
    notes: str = Form(""),
    db: AsyncSession = Depends(get_db),
):
    locale = _locale(locale)
    shop = _shop(request)
    if shop is None:
        return _to_checkin(locale)
    lines = _cart_lines(request, await catalog.products_by_id(db))
    if not lines:
        return await _render_checkout(request, locale, db,
                                      translator(locale)("checkout.empty"),
                                      400)
    try:
        order = await orders.create_order(db, {
            "customer_id": shop["customer_id"],
            "shop_name": shop["shop_name"],
            "event_id": shop["event_id"],
            "products": [{"product_id": p.id, "quantity": qty}
                         for p, qty in lines],
            "notes": notes.strip(),
        })
    except DomainError as e:
        logger.warning("checkout failed shop=%r: %s",
                       shop["shop_name"], e.message)
        return await _render_checkout(request, locale, db, e.message,
                                      e.status_code)

    request.session[CART_KEY] = {}
    return RedirectResponse(
        url=f"/{locale}/checkout/success?order_id={order.order_id}",
        status_code=HTTP_303_SEE_OTHER,
    )


@app.get("/{locale}/checkout/success", response_class=HTMLResponse)
async def checkout_success(request: Request, locale: str, order_id: str,
                           db: AsyncSession = Depends(get_db)):
    locale = _locale(locale)
    order = await orders.get_order(db, order_id)
    products = await catalog.products_by_id(db)
    return _page(request, locale, "success.html", {
        "order": orders.order_to_dict(order, products, locale),
    })


async def _board_event(db: AsyncSession, event_id: Optional[str]):
    events = await catalog.list_events(db)
    if event_id:
        return events, await catalog.get_event(db, event_id)
    active = [e for e in events if catalog.is_active(e)]
    pick = active or events
    return events, (pick[0] if pick else None)


@app.get("/{locale}/leaderboard", response_class=HTMLResponse)
async def leaderboard_page(request: Request, locale: str,
                           event_id: Optional[str] = None,
                           db: AsyncSession = Depends(get_db)):
    locale = _locale(locale)
    events, event = await _board_event(db, event_id)
    entries = []
    if event is not None:
        entries = await board.leaderboard(
            db, event.id, board.MAX_LIMIT,
            await catalog.products_by_id(db), locale,
        )
    return _page(request, locale, "leaderboard.html", {
        "events": events,
        "event": event,
        "entries": entries,
        "refresh_seconds": 5,
    })


@app.get("/{locale}/leaderboard2", response_class=HTMLResponse)
async def leaderboard2_page(request: Request, locale: str,
                            event_id: Optional[str] = None,
                            db: AsyncSession = Depends(get_db)):
    locale = _locale(locale)
    events, event = await _board_event(db, event_id)
    entries = []
    if event is not None:
        entries = await board.leaderboard(
            db, event.id, board.DEFAULT_LIMIT,
            await catalog.products_by_id(db), locale,
        )
    top, rest = board.podium(entries)
    return _page(request, locale, "leaderboard2.html", {
        "events": events,
        "event": event,
        "top": top,
        "rest": rest,
        "refresh_seconds": 5,
    })
