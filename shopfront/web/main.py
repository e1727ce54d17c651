from __future__ import annotations

import secrets
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from shopfront.config import settings
from shopfront.constants import ORDER_STATUSES, PRODUCT_SORTS, ROLE_ADMIN
from shopfront.context import ContextRegistry, ShopContext
from shopfront.db.sqlite import init_db
from shopfront.services.catalog import filter_products, sort_products
from shopfront.services.receipt_pdf import generate_receipt_pdf
from shopfront.utils.formatters import money

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"

app = FastAPI(title="Shopfront Admin")

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["money"] = money


@app.on_event("startup")
def _startup() -> None:
    init_db()


@app.middleware("http")
async def _session_cookie(request: Request, call_next):
    sid = request.cookies.get(settings.session_cookie)
    fresh = not sid
    if fresh:
        sid = secrets.token_urlsafe(16)
    request.state.sid = sid
    response = await call_next(request)
    if fresh:
        response.set_cookie(settings.session_cookie, sid, httponly=True, samesite="lax")
    return response


def get_registry(request: Request) -> ContextRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        registry = ContextRegistry.from_settings(settings, required_role=ROLE_ADMIN, scope_prefix="web:")
        request.app.state.registry = registry
    return registry


async def get_shop(request: Request, registry: ContextRegistry = Depends(get_registry)) -> ShopContext:
    return await registry.get(request.state.sid)


async def find_shop(
    request: Request, registry: ContextRegistry = Depends(get_registry)
) -> Optional[ShopContext]:
    """Signed-in context for this browser, or None. Never builds an anonymous one."""
    shop = await registry.find(request.state.sid)
    if shop is None or not shop.auth.is_authenticated:
        return None
    return shop


def _render(request: Request, name: str, ctx: dict[str, Any], shop: Optional[ShopContext] = None) -> HTMLResponse:
    base = {
        "user": shop.auth.user if shop is not None else None,
        "statuses": ORDER_STATUSES,
        "message": request.query_params.get("msg", ""),
    }
    base.update(ctx)
    return templates.TemplateResponse(request, name, base)


_STOCK_FILTERS = {"1": True, "0": False}


def _to_login() -> RedirectResponse:
    return RedirectResponse(url="/login", status_code=303)


def _to_order(order_id: str, msg: str) -> RedirectResponse:
    return RedirectResponse(url=f"/orders/{order_id}?{urlencode({'msg': msg})}", status_code=303)


# ---------------- auth ----------------

@app.get("/login", response_class=HTMLResponse)
def login_get(request: Request):
    return _render(request, "login.html", {"error": ""})


@app.post("/login")
async def login_post(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    shop: ShopContext = Depends(get_shop),
    registry: ContextRegistry = Depends(get_registry),
):
    result = await shop.auth.login(email.strip(), password)
    if not result.success:
        if not shop.auth.is_authenticated:
            registry.drop(request.state.sid)
        return _render(request, "login.html", {"error": result.message, "email": email})
    return RedirectResponse(url="/", status_code=303)


@app.get("/logout")
async def logout(
    request: Request,
    shop: Optional[ShopContext] = Depends(find_shop),
    registry: ContextRegistry = Depends(get_registry),
):
    if shop is not None:
        await shop.auth.logout_remote()
    registry.drop(request.state.sid)
    return _to_login()


# ---------------- dashboard ----------------

@app.get("/", response_class=HTMLResponse)
async def index(request: Request, shop: Optional[ShopContext] = Depends(find_shop)):
    if shop is None:
        return _to_login()
    result = await shop.admin.stats()
    return _render(
        request,
        "index.html",
        {"stats": result.data if result.success else {}, "error": "" if result.success else result.message},
        shop,
    )


# ---------------- orders ----------------

@app.get("/orders", response_class=HTMLResponse)
async def orders(
    request: Request,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    shop: Optional[ShopContext] = Depends(find_shop),
):
    if shop is None:
        return _to_login()
    result = await shop.admin.orders(page=page, status=status, search=search)
    rows, pagination = result.data if result.success else ([], None)
    return _render(
        request,
        "orders.html",
        {
            "orders": rows,
            "pagination": pagination,
            "selected_status": status or "",
            "search": search or "",
            "error": "" if result.success else result.message,
        },
        shop,
    )


@app.get("/orders/{order_id}", response_class=HTMLResponse)
async def order_detail(request: Request, order_id: str, shop: Optional[ShopContext] = Depends(find_shop)):
    if shop is None:
        return _to_login()
    result = await shop.admin.order(order_id)
    return _render(
        request,
        "order.html",
        {
            "order": result.data if result.success else None,
            "order_id": order_id,
            "error": "" if result.success else result.message,
        },
        shop,
    )


@app.post("/orders/{order_id}/status")
async def order_status(
    order_id: str,
    status: str = Form(...),
    tracking_number: Optional[str] = Form(None),
    admin_notes: Optional[str] = Form(None),
    shop: Optional[ShopContext] = Depends(find_shop),
):
    if shop is None:
        return _to_login()
    result = await shop.admin.update_order_status(
        order_id,
        status,
        tracking_number=(tracking_number or "").strip() or None,
        admin_notes=(admin_notes or "").strip() or None,
    )
    return _to_order(order_id, "Status updated" if result.success else result.message)


@app.get("/orders/{order_id}/receipt")
async def order_receipt(order_id: str, shop: Optional[ShopContext] = Depends(find_shop)):
    if shop is None:
        return _to_login()
    result = await shop.admin.order(order_id)
    if not result.success:
        return _to_order(order_id, result.message or "Order not found")
    path = Path(generate_receipt_pdf(result.data))
    return FileResponse(str(path), filename=path.name, media_type="application/pdf")


# ---------------- products ----------------

@app.get("/products", response_class=HTMLResponse)
async def products(
    request: Request,
    search: Optional[str] = None,
    in_stock: str = "",
    sort: Optional[str] = None,
    page: int = 1,
    shop: Optional[ShopContext] = Depends(find_shop),
):
    if shop is None:
        return _to_login()
    result = await shop.admin.products(page=page, search=search)
    rows, pagination = result.data if result.success else ([], None)
    # stock and ordering are applied to the fetched page only
    rows = filter_products(rows, in_stock=_STOCK_FILTERS.get(in_stock))
    rows = sort_products(rows, sort if sort in PRODUCT_SORTS else None)
    return _render(
        request,
        "products.html",
        {
            "products": rows,
            "pagination": pagination,
            "search": search or "",
            "in_stock": in_stock,
            "sort": sort or "",
            "sorts": PRODUCT_SORTS,
            "error": "" if result.success else result.message,
        },
        shop,
    )
