from __future__ import annotations

from datetime import datetime, timezone

import pytest

from portal.errors import InvalidTransition, WorkflowFailed
from portal.store import DocumentStore, StoreError
from portal.workflow import SellerApplicationWorkflow, grant_seller_role

from conftest import add_application, add_user

FIXED_NOW = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)


@pytest.fixture()
def workflow(store: DocumentStore) -> SellerApplicationWorkflow:
    return SellerApplicationWorkflow(store, clock=lambda: FIXED_NOW)


def test_grant_seller_role_keeps_existing_roles() -> None:
    assert grant_seller_role(("user",)) == ["user", "seller"]
    assert grant_seller_role(("admin", "user")) == ["admin", "user", "seller"]
    assert grant_seller_role(()) == ["user", "seller"]
    assert grant_seller_role(("seller", "user", "seller")) == ["seller", "user"]


def test_approve_updates_application_and_roles(store: DocumentStore, workflow: SellerApplicationWorkflow) -> None:
    add_user(store, "u1", "owner@example.com", roles=["user"])
    add_application(store, "app1", "u1", "Acme")

    application = workflow.approve("app1", "u1")

    assert application.status == "approved"
    stored = store.get("sellers", "app1").data
    assert stored["status"] == "approved"
    assert stored["verificationStatus"] == "approved"
    assert stored["updatedAt"] == "2026-03-04T05:06:07.000000+00:00"
    assert store.get("users", "u1").data["roles"] == ["user", "seller"]


def test_reject_leaves_roles_untouched(store: DocumentStore, workflow: SellerApplicationWorkflow) -> None:
    add_user(store, "u1", "owner@example.com", roles=["user"])
    add_application(store, "app1", "u1", "Acme")

    application = workflow.reject("app1", "u1")

    assert application.status == "rejected"
    assert store.get("sellers", "app1").data["status"] == "rejected"
    assert store.get("users", "u1").data["roles"] == ["user"]


def test_decided_application_cannot_transition_again(
    store: DocumentStore, workflow: SellerApplicationWorkflow
) -> None:
    add_user(store, "u1", "owner@example.com")
    add_application(store, "app1", "u1", "Acme")
    workflow.reject("app1", "u1")

    with pytest.raises(InvalidTransition):
        workflow.approve("app1", "u1")
    with pytest.raises(InvalidTransition):
        workflow.reject("app1", "u1")
    assert store.get("users", "u1").data["roles"] == ["user"]


def test_owner_mismatch_is_refused(store: DocumentStore, workflow: SellerApplicationWorkflow) -> None:
    add_user(store, "u1", "owner@example.com")
    add_user(store, "u2", "other@example.com")
    add_application(store, "app1", "u1", "Acme")

    with pytest.raises(WorkflowFailed):
        workflow.approve("app1", "u2")
    assert store.get("sellers", "app1").data["status"] == "pending"
    assert store.get("users", "u2").data["roles"] == ["user"]


def test_application_keyed_by_owner_uid(store: DocumentStore, workflow: SellerApplicationWorkflow) -> None:
    add_user(store, "u9", "legacy@example.com")
    store.set("sellers", "u9", {"businessName": "Legacy", "status": "pending", "submittedAt": FIXED_NOW})

    workflow.approve("u9", "u9")
    assert "seller" in store.get("users", "u9").data["roles"]


def test_missing_application_or_user(store: DocumentStore, workflow: SellerApplicationWorkflow) -> None:
    with pytest.raises(WorkflowFailed):
        workflow.approve("ghost", "u1")

    add_application(store, "app1", "u1", "Acme")
    with pytest.raises(WorkflowFailed):
        workflow.approve("app1", "u1")
    assert store.get("sellers", "app1").data["status"] == "pending"


def test_failed_commit_changes_nothing(
    store: DocumentStore, workflow: SellerApplicationWorkflow, monkeypatch: pytest.MonkeyPatch
) -> None:
    add_user(store, "u1", "owner@example.com")
    add_application(store, "app1", "u1", "Acme")

    original_batch = store.batch

    def failing_batch():
        batch = original_batch()
        commit = batch.commit

        def commit_with_missing_target() -> None:
            batch.update("users", "vanished", {"roles": []})
            commit()

        batch.commit = commit_with_missing_target  # type: ignore[method-assign]
        return batch

    monkeypatch.setattr(store, "batch", failing_batch)
    with pytest.raises(WorkflowFailed) as excinfo:
        workflow.approve("app1", "u1")
    assert isinstance(excinfo.value.__cause__, StoreError)

    assert store.get("sellers", "app1").data["status"] == "pending"
    assert store.get("users", "u1").data["roles"] == ["user"]


def test_reconcile_repairs_missing_roles(store: DocumentStore, workflow: SellerApplicationWorkflow) -> None:
    add_user(store, "u1", "half@example.com", roles=["user"])
    add_user(store, "u2", "done@example.com", roles=["user", "seller"])
    add_application(store, "app1", "u1", "Half Done", status="approved")
    add_application(store, "app2", "u2", "Done", status="approved")
    add_application(store, "app3", "ghost", "Nobody", status="approved")
    add_application(store, "app4", "u1", "Second Try", status="pending")

    assert workflow.reconcile() == ["u1"]
    assert store.get("users", "u1").data["roles"] == ["user", "seller"]
    assert workflow.reconcile() == []
