from __future__ import annotations

import pytest

from portal.errors import PermissionDenied, QueryFailed, Unauthenticated
from portal.guard import REASON_PERMISSION_DENIED, REASON_UNAUTHENTICATED, SessionGuard
from portal.store import DocumentStore, StoreError

from conftest import add_user


def test_admin_is_authorized(store: DocumentStore) -> None:
    add_user(store, "admin-1", "admin@example.com", roles=["admin", "user"])

    result = SessionGuard(store).authorize("admin-1")

    assert result.authorized
    assert result.identity is not None
    assert result.identity.email == "admin@example.com"


def test_missing_uid_is_unauthenticated(store: DocumentStore) -> None:
    result = SessionGuard(store).authorize(None)
    assert not result.authorized
    assert result.reason == REASON_UNAUTHENTICATED

    with pytest.raises(Unauthenticated):
        SessionGuard(store).require_admin("")


def test_user_without_admin_role_is_denied(store: DocumentStore) -> None:
    add_user(store, "seller-1", "seller@example.com", roles=["user", "seller"])
    guard = SessionGuard(store)

    result = guard.authorize("seller-1")
    assert not result.authorized
    assert result.reason == REASON_PERMISSION_DENIED
    assert result.identity is not None

    with pytest.raises(PermissionDenied):
        guard.require_admin("seller-1")


def test_user_without_profile_document_is_denied(store: DocumentStore) -> None:
    result = SessionGuard(store).authorize("orphan")
    assert not result.authorized
    assert result.reason == REASON_PERMISSION_DENIED
    assert result.identity is None


def test_revoked_role_applies_on_next_check(store: DocumentStore) -> None:
    add_user(store, "admin-1", "admin@example.com", roles=["admin", "user"])
    guard = SessionGuard(store)
    assert guard.authorize("admin-1").authorized

    store.update("users", "admin-1", {"roles": ["user"]})
    assert not guard.authorize("admin-1").authorized


def test_store_failure_surfaces_as_query_failed(store: DocumentStore, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_get(collection: str, doc_id: str):
        raise StoreError("disk I/O error")

    monkeypatch.setattr(store, "get", broken_get)
    with pytest.raises(QueryFailed):
        SessionGuard(store).authorize("admin-1")
