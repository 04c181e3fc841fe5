"""Privileged JSON API used by admin tooling.

Every function call resolves the caller from its bearer token and re-checks
the ``admin`` role against the ``users`` collection before doing any work.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .auth import AuthError, AuthProvider
from .config import PortalSettings, load_settings
from .database import Database
from .errors import InvalidArgument, LookupFailed, PortalError, Unauthenticated
from .guard import SessionGuard
from .listing import ListingQueryEngine
from .models import User
from .security import BearerSessionAuth
from .sessions import ApiSessionStore
from .stats import DashboardAggregator
from .store import DocumentStore

logger = logging.getLogger("marketplace.portal.api")

DASHBOARD_COUNTS = ("total_users", "total_products", "total_orders", "total_sellers")


class SignInRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        stripped = value.strip().lower()
        if not stripped:
            raise ValueError("email must not be empty")
        return stripped


class SignInResponse(BaseModel):
    token: str
    uid: str
    expires_at: datetime


class UserCreationDateRequest(BaseModel):
    userId: str = Field(..., min_length=1, max_length=128)


class UserCreationDateResponse(BaseModel):
    creationTime: datetime
    lastSignInTime: Optional[datetime] = None


class GetAllUsersRequest(BaseModel):
    pageSize: int = Field(default=10, ge=1, le=100)
    lastVisible: Optional[str] = Field(default=None, max_length=128)


class UserPayload(BaseModel):
    id: str
    email: str
    displayName: str
    roles: List[str]
    emailVerified: bool
    disabled: bool
    createdAt: Optional[datetime] = None


class GetAllUsersResponse(BaseModel):
    users: List[UserPayload]
    lastVisible: Optional[str] = None


class DashboardStatsResponse(BaseModel):
    userCount: int
    productCount: int
    orderCount: int
    sellerCount: int


def user_to_payload(user: User) -> UserPayload:
    return UserPayload(
        id=user.id,
        email=user.email,
        displayName=user.display_name,
        roles=list(user.roles),
        emailVerified=user.email_verified,
        disabled=user.disabled,
        createdAt=user.created_at,
    )


def create_app(
    *,
    database: Database | None = None,
    settings: PortalSettings | None = None,
    sessions: ApiSessionStore | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    if sessions is None:
        sessions = ApiSessionStore(ttl=settings.token_ttl)

    store = DocumentStore(database)
    accounts = AuthProvider(database)
    guard = SessionGuard(store)
    listing = ListingQueryEngine(store)
    aggregator = DashboardAggregator(store, low_stock_default=settings.low_stock_threshold)
    bearer = BearerSessionAuth(sessions)

    app = FastAPI(
        title="Marketplace Admin API",
        description="Privileged functions for marketplace administrators",
        version="1.0.0",
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.proxy_hosts)
    app.state.database = database
    app.state.sessions = sessions

    @app.exception_handler(PortalError)
    async def handle_portal_error(request: Request, exc: PortalError) -> JSONResponse:
        return JSONResponse(status_code=exc.http_status, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = InvalidArgument("; ".join(str(item.get("msg", "invalid value")) for item in exc.errors()))
        return JSONResponse(status_code=error.http_status, content=error.to_payload())

    async def require_admin(uid: str = Depends(bearer)) -> User:
        return guard.require_admin(uid)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/auth/sign-in", response_model=SignInResponse)
    async def sign_in(payload: SignInRequest) -> SignInResponse:
        try:
            account = accounts.sign_in(payload.email, payload.password)
        except AuthError as exc:
            logger.exception("Sign-in lookup failed for %s", payload.email)
            raise PortalError("Sign-in is temporarily unavailable.") from exc
        if account is None:
            logger.warning("Failed API sign-in attempt for %s", payload.email)
            raise Unauthenticated("Invalid email or password.")

        session = sessions.issue(account.uid)
        logger.info("Account %s signed in to the API", account.uid)
        return SignInResponse(token=session.token, uid=session.uid, expires_at=session.expires_at)

    @app.post("/v1/auth/sign-out")
    async def sign_out(request: Request) -> Dict[str, str]:
        token = await bearer.token(request)
        if token is not None and sessions.revoke(token):
            logger.info("Revoked an API token")
        return {"status": "signed-out"}

    @app.post("/v1/functions/getUserCreationDate", response_model=UserCreationDateResponse)
    async def get_user_creation_date(
        payload: UserCreationDateRequest,
        caller: User = Depends(require_admin),
    ) -> UserCreationDateResponse:
        try:
            metadata = accounts.get_account_metadata(payload.userId)
        except AuthError as exc:
            logger.error("Error fetching account metadata for %s: %s", payload.userId, exc)
            raise LookupFailed(str(exc)) from exc
        return UserCreationDateResponse(
            creationTime=metadata.creation_time,
            lastSignInTime=metadata.last_sign_in_time,
        )

    @app.post("/v1/functions/getAllUsers", response_model=GetAllUsersResponse)
    async def get_all_users(
        payload: GetAllUsersRequest,
        caller: User = Depends(require_admin),
    ) -> GetAllUsersResponse:
        page = listing.list_page("users", payload.pageSize, payload.lastVisible)
        last_visible = page.items[-1].id if page.items else None
        return GetAllUsersResponse(
            users=[user_to_payload(user) for user in page.items],
            lastVisible=last_visible,
        )

    @app.post("/v1/functions/getDashboardStats", response_model=DashboardStatsResponse)
    async def get_dashboard_stats(caller: User = Depends(require_admin)) -> DashboardStatsResponse:
        stats = await aggregator.compute_stats(DASHBOARD_COUNTS)
        return DashboardStatsResponse(
            userCount=stats["total_users"],
            productCount=stats["total_products"],
            orderCount=stats["total_orders"],
            sellerCount=stats["total_sellers"],
        )

    return app


__all__ = ["create_app"]
