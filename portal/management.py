"""Browser-based management interface for marketplace administrators."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from fastapi import FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .auth import AuthError, AuthProvider
from .config import PAGE_SIZE_CHOICES, PortalSettings, load_settings
from .database import Database
from .errors import MutationFailed, QueryFailed, StatsFailed, WorkflowFailed
from .filters import (
    PRODUCT_CATEGORIES,
    PRODUCT_STATUS_FILTERS,
    USER_STATUS_FILTERS,
    apply_filters,
    stock_level,
)
from .guard import REASON_UNAUTHENTICATED, SessionGuard
from .listing import ListingQueryEngine
from .models import APPLICATION_STATUSES, ROLES, STATUS_PENDING, User
from .mutations import MutationActions
from .state import NAV_ACTIONS, ListingStateRegistry, LoadedPage, load_page
from .stats import DashboardAggregator
from .store import DocumentStore
from .workflow import SellerApplicationWorkflow

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

logger = logging.getLogger("marketplace.portal.management")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _form_flag(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _format_datetime(value) -> str:
    if value is None:
        return "N/A"
    return value.strftime("%b %d, %Y")


def _format_price(value) -> str:
    return f"₱{float(value or 0):,.2f}"


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[PortalSettings] = None,
    session_secret: Optional[str] = None,
    listing_state: Optional[ListingStateRegistry] = None,
    initialize_database: bool = False,
) -> FastAPI:
    """Create the management web application."""

    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    if session_secret is None:
        session_secret = settings.session_secret
    if not session_secret:
        raise RuntimeError("PORTAL_SESSION_SECRET must be configured to use the management interface")

    if listing_state is None:
        listing_state = ListingStateRegistry()

    store = DocumentStore(database)
    accounts = AuthProvider(database)
    guard = SessionGuard(store)
    listing = ListingQueryEngine(store)
    mutations = MutationActions(store)
    workflow = SellerApplicationWorkflow(store)
    aggregator = DashboardAggregator(store, low_stock_default=settings.low_stock_threshold)

    app = FastAPI(
        title="Marketplace Admin Portal",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.proxy_hosts)
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie="marketplace_admin_session",
        https_only=settings.secure_cookies,
        same_site="lax",
        max_age=60 * 60 * 24 * 7,
    )
    app.state.database = database
    app.state.listing_state = listing_state

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.filters["datetime"] = _format_datetime
    templates.env.filters["price"] = _format_price
    templates.env.globals["stock_level"] = lambda product: stock_level(product, settings.low_stock_threshold)

    def _flash(request: Request, message: str, *, category: str = "info") -> None:
        messages = request.session.get("flash_messages")
        if not isinstance(messages, list):
            messages = []
        messages.append({"message": message, "category": category})
        request.session["flash_messages"] = messages

    def _consume_flash(request: Request) -> List[Dict[str, str]]:
        messages = request.session.pop("flash_messages", [])
        if isinstance(messages, list):
            return messages
        return []

    def _redirect(url) -> RedirectResponse:
        return RedirectResponse(str(url), status_code=status.HTTP_303_SEE_OTHER)

    def _redirect_to_login(request: Request) -> RedirectResponse:
        return _redirect(request.url_for("show_login"))

    def _authorize(request: Request) -> Tuple[Optional[User], Optional[Response]]:
        """Return the admin user, or the response that ends the request."""

        uid = request.session.get("uid")
        try:
            result = guard.authorize(uid if isinstance(uid, str) else None)
        except QueryFailed as exc:
            return None, templates.TemplateResponse(
                request,
                "error.html",
                {"message": exc.message},
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        if result.authorized:
            return result.identity, None
        if result.reason == REASON_UNAUTHENTICATED:
            return None, _redirect_to_login(request)

        logger.warning("Non-admin account %s attempted to open %s", uid, request.url.path)
        return None, templates.TemplateResponse(
            request,
            "forbidden.html",
            {"user": result.identity},
            status_code=status.HTTP_403_FORBIDDEN,
        )

    def _workspace(request: Request) -> str:
        token = request.session.get("workspace")
        if isinstance(token, str) and listing_state.has_workspace(token):
            return token
        token = listing_state.open_workspace()
        request.session["workspace"] = token
        return token

    def _page_size(raw: Optional[str], current: Optional[LoadedPage]) -> int:
        if raw:
            try:
                value = int(raw)
            except ValueError:
                value = 0
            if value in PAGE_SIZE_CHOICES:
                return value
        if current is not None:
            return current.page_size
        return settings.default_page_size

    def _load_listing(
        request: Request,
        kind: str,
        messages: List[Dict[str, str]],
        *,
        page_size: Optional[str],
        nav: Optional[str],
        where: Optional[Mapping[str, object]] = None,
    ) -> Optional[LoadedPage]:
        token = _workspace(request)
        current = listing_state.get(token, kind)
        size = _page_size(page_size, current)
        if nav is not None and nav not in NAV_ACTIONS:
            nav = None

        stale = (
            current is None
            or nav is not None
            or size != current.page_size
            or dict(where or {}) != current.where
        )
        if not stale:
            return current

        try:
            loaded = load_page(listing, kind, size, current=current, nav=nav or "first", where=where)
        except QueryFailed as exc:
            messages.append({"message": exc.message, "category": "error"})
            return current
        listing_state.put(token, loaded)
        return loaded

    def _filtered(
        kind: str,
        page: Optional[LoadedPage],
        messages: List[Dict[str, str]],
        search_text: Optional[str],
        **categorical: Any,
    ) -> List[Any]:
        if page is None:
            return []
        try:
            return apply_filters(kind, page.items, search_text, **categorical)
        except ValueError as exc:
            messages.append({"message": str(exc), "category": "error"})
            return page.items

    def _filter_query(**params: Optional[object]) -> str:
        return urlencode({key: value for key, value in params.items() if value not in (None, "")})

    def _back_to(request: Request, route: str, return_query: str) -> RedirectResponse:
        url = str(request.url_for(route))
        cleaned = return_query.strip().lstrip("?")
        if cleaned:
            url = f"{url}?{cleaned}"
        return _redirect(url)

    def _patch_loaded(request: Request, kind: str, entity_id: str, delta: Mapping[str, object]) -> None:
        page = listing_state.get(request.session.get("workspace"), kind)
        if page is not None:
            page.patch(entity_id, delta)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    @app.get("/", response_class=HTMLResponse)
    async def root(request: Request):
        if not request.session.get("uid"):
            return _redirect_to_login(request)
        return _redirect(request.url_for("dashboard"))

    @app.get("/login", response_class=HTMLResponse, name="show_login")
    async def login_form(request: Request):
        if request.session.get("uid"):
            return _redirect(request.url_for("dashboard"))
        error = request.session.pop("login_error", None)
        return templates.TemplateResponse(request, "login.html", {"error": error})

    @app.post("/login", name="process_login")
    async def process_login(request: Request, email: str = Form(...), password: str = Form(...)):
        try:
            account = accounts.sign_in(email, password)
        except AuthError:
            logger.exception("Sign-in lookup failed for %s", email)
            request.session["login_error"] = "Authentication error. Please try again."
            return _redirect_to_login(request)
        if account is None:
            logger.warning("Failed web login attempt for %s", email)
            request.session["login_error"] = "Invalid email or password."
            return _redirect_to_login(request)

        listing_state.discard(request.session.get("workspace"))
        request.session.clear()
        request.session["uid"] = account.uid
        logger.info("Account %s signed in to the management interface", account.uid)
        return _redirect(request.url_for("dashboard"))

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        listing_state.discard(request.session.get("workspace"))
        request.session.clear()
        return _redirect_to_login(request)

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------
    @app.get("/dashboard", response_class=HTMLResponse, name="dashboard")
    async def dashboard(request: Request):
        user, denied = _authorize(request)
        if denied is not None:
            return denied

        messages = _consume_flash(request)
        try:
            stats = await aggregator.compute_stats()
        except StatsFailed as exc:
            messages.append({"message": exc.message, "category": "error"})
            stats = exc.partial

        try:
            activity = aggregator.recent_activity(settings.activity_limit)
        except QueryFailed as exc:
            messages.append({"message": exc.message, "category": "error"})
            activity = []

        return templates.TemplateResponse(
            request,
            "dashboard.html",
            {"user": user, "messages": messages, "stats": stats, "activity": activity},
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @app.get("/users", response_class=HTMLResponse, name="users")
    async def users_view(
        request: Request,
        q: str = "",
        role: str = "all",
        user_status: str = "all",
        page_size: Optional[str] = None,
        nav: Optional[str] = None,
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied

        messages = _consume_flash(request)
        page = _load_listing(request, "users", messages, page_size=page_size, nav=nav)
        items = _filtered("users", page, messages, q, role=role, status=user_status)
        return templates.TemplateResponse(
            request,
            "users.html",
            {
                "user": user,
                "messages": messages,
                "page": page,
                "items": items,
                "q": q,
                "role": role,
                "user_status": user_status,
                "roles": ROLES,
                "status_choices": USER_STATUS_FILTERS,
                "page_sizes": PAGE_SIZE_CHOICES,
                "filter_query": _filter_query(q=q, role=role, user_status=user_status),
            },
        )

    @app.post("/users/{user_id}/disabled", name="set_user_disabled")
    async def set_user_disabled(
        request: Request,
        user_id: str,
        disabled: str = Form(...),
        return_query: str = Form(""),
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied
        flag = _form_flag(disabled)
        try:
            delta = mutations.set_user_disabled(user_id, flag)
        except MutationFailed as exc:
            _flash(request, exc.message, category="error")
        else:
            _patch_loaded(request, "users", user_id, delta)
            _flash(request, "User disabled." if flag else "User enabled.", category="success")
        return _back_to(request, "users", return_query)

    @app.post("/users/{user_id}/email-verified", name="set_user_email_verified")
    async def set_user_email_verified(
        request: Request,
        user_id: str,
        verified: str = Form(...),
        return_query: str = Form(""),
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied
        flag = _form_flag(verified)
        try:
            delta = mutations.set_user_email_verified(user_id, flag)
        except MutationFailed as exc:
            _flash(request, exc.message, category="error")
        else:
            _patch_loaded(request, "users", user_id, delta)
            _flash(
                request,
                "Email marked as verified." if flag else "Email marked as unverified.",
                category="success",
            )
        return _back_to(request, "users", return_query)

    @app.post("/users/{user_id}/roles", name="set_user_roles")
    async def set_user_roles(
        request: Request,
        user_id: str,
        roles: List[str] = Form(default=[]),
        return_query: str = Form(""),
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied
        try:
            delta = mutations.set_user_roles(user_id, roles)
        except ValueError as exc:
            _flash(request, str(exc), category="error")
        except MutationFailed as exc:
            _flash(request, exc.message, category="error")
        else:
            _patch_loaded(request, "users", user_id, delta)
            _flash(request, "User roles updated.", category="success")
        return _back_to(request, "users", return_query)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    @app.get("/products", response_class=HTMLResponse, name="products")
    async def products_view(
        request: Request,
        q: str = "",
        category: str = "all",
        stock_status: str = "all",
        page_size: Optional[str] = None,
        nav: Optional[str] = None,
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied

        messages = _consume_flash(request)
        page = _load_listing(request, "products", messages, page_size=page_size, nav=nav)
        items = _filtered(
            "products",
            page,
            messages,
            q,
            category=category,
            status=stock_status,
            default_minimum=settings.low_stock_threshold,
        )
        return templates.TemplateResponse(
            request,
            "products.html",
            {
                "user": user,
                "messages": messages,
                "page": page,
                "items": items,
                "q": q,
                "category": category,
                "stock_status": stock_status,
                "categories": PRODUCT_CATEGORIES,
                "status_choices": PRODUCT_STATUS_FILTERS,
                "page_sizes": PAGE_SIZE_CHOICES,
                "filter_query": _filter_query(q=q, category=category, stock_status=stock_status),
            },
        )

    @app.post("/products/{product_id}/active", name="set_product_active")
    async def set_product_active(
        request: Request,
        product_id: str,
        active: str = Form(...),
        return_query: str = Form(""),
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied
        flag = _form_flag(active)
        try:
            delta = mutations.set_product_active(product_id, flag)
        except MutationFailed as exc:
            _flash(request, exc.message, category="error")
        else:
            _patch_loaded(request, "products", product_id, delta)
            _flash(request, "Product activated." if flag else "Product deactivated.", category="success")
        return _back_to(request, "products", return_query)

    @app.post("/products/{product_id}/stock", name="set_product_stock")
    async def set_product_stock(
        request: Request,
        product_id: str,
        stock: str = Form(...),
        return_query: str = Form(""),
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied
        try:
            value = int(stock.strip())
            delta = mutations.set_product_stock(product_id, value)
        except ValueError:
            _flash(request, "Stock must be a whole number of zero or more.", category="error")
        except MutationFailed as exc:
            _flash(request, exc.message, category="error")
        else:
            _patch_loaded(request, "products", product_id, delta)
            _flash(request, f"Stock updated to {value}.", category="success")
        return _back_to(request, "products", return_query)

    @app.post("/products/{product_id}/delete", name="delete_product")
    async def delete_product(
        request: Request,
        product_id: str,
        return_query: str = Form(""),
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied
        try:
            mutations.delete_product(product_id)
        except MutationFailed as exc:
            _flash(request, exc.message, category="error")
        else:
            page = listing_state.get(request.session.get("workspace"), "products")
            if page is not None:
                page.remove(product_id)
            _flash(request, "Product deleted successfully.", category="success")
        return _back_to(request, "products", return_query)

    # ------------------------------------------------------------------
    # Seller applications
    # ------------------------------------------------------------------
    @app.get("/sellers", response_class=HTMLResponse, name="sellers")
    async def sellers_view(
        request: Request,
        q: str = "",
        queue: str = STATUS_PENDING,
        application_status: str = "all",
        page_size: Optional[str] = None,
        nav: Optional[str] = None,
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied

        messages = _consume_flash(request)
        where = {"status": STATUS_PENDING} if queue == STATUS_PENDING else None
        page = _load_listing(request, "sellers", messages, page_size=page_size, nav=nav, where=where)
        items = _filtered("sellers", page, messages, q, status=application_status)
        return templates.TemplateResponse(
            request,
            "sellers.html",
            {
                "user": user,
                "messages": messages,
                "page": page,
                "items": items,
                "q": q,
                "queue": queue,
                "application_status": application_status,
                "status_choices": APPLICATION_STATUSES,
                "page_sizes": PAGE_SIZE_CHOICES,
                "filter_query": _filter_query(q=q, queue=queue, application_status=application_status),
            },
        )

    @app.post("/sellers/{application_id}/approve", name="approve_application")
    async def approve_application(
        request: Request,
        application_id: str,
        user_id: str = Form(...),
        return_query: str = Form(""),
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied
        try:
            application = workflow.approve(application_id, user_id)
        except WorkflowFailed as exc:
            _flash(request, exc.message, category="error")
            return _back_to(request, "sellers", return_query)

        workspace = request.session.get("workspace")
        listing_state.invalidate(workspace, "sellers")
        listing_state.invalidate(workspace, "users")
        name = application.business_name or application.full_name or application.id
        _flash(request, f"Approved seller application for {name}.", category="success")
        return _back_to(request, "sellers", return_query)

    @app.post("/sellers/{application_id}/reject", name="reject_application")
    async def reject_application(
        request: Request,
        application_id: str,
        user_id: str = Form(...),
        return_query: str = Form(""),
    ):
        user, denied = _authorize(request)
        if denied is not None:
            return denied
        try:
            application = workflow.reject(application_id, user_id)
        except WorkflowFailed as exc:
            _flash(request, exc.message, category="error")
            return _back_to(request, "sellers", return_query)

        listing_state.invalidate(request.session.get("workspace"), "sellers")
        name = application.business_name or application.full_name or application.id
        _flash(request, f"Rejected seller application for {name}.", category="warning")
        return _back_to(request, "sellers", return_query)

    return app


__all__ = ["create_app"]
