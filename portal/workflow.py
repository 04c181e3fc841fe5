"""Approve/reject transitions for seller applications."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from .errors import InvalidTransition, WorkflowFailed
from .models import (
    ROLE_SELLER,
    ROLE_USER,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    SellerApplication,
    User,
    utcnow,
)
from .store import DocumentStore, Query, StoreError

logger = logging.getLogger("marketplace.portal.workflow")

APPLICATIONS = "sellers"
USERS = "users"


def grant_seller_role(roles: Tuple[str, ...]) -> List[str]:
    """Return ``roles`` with ``user`` and ``seller`` added, keeping existing order."""

    granted = list(dict.fromkeys(roles))
    for role in (ROLE_USER, ROLE_SELLER):
        if role not in granted:
            granted.append(role)
    return granted


class SellerApplicationWorkflow:
    """State transitions ``pending -> approved`` and ``pending -> rejected``.

    Approval writes the application and the owner's role set in one batch,
    so either both documents change or neither does.
    """

    def __init__(self, store: DocumentStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def approve(self, application_id: str, user_id: str) -> SellerApplication:
        application = self._load_pending(application_id, user_id, action="approve")
        try:
            user_doc = self._store.get(USERS, user_id)
        except StoreError as exc:
            logger.exception("Failed to load user %s while approving %s", user_id, application_id)
            raise WorkflowFailed("Failed to approve seller request. Please try again.") from exc
        if user_doc is None:
            raise WorkflowFailed(f"User {user_id} does not exist; the application was left pending.")

        user = User.from_document(user_doc.id, user_doc.data)
        now = self._clock()
        application_fields = {
            "status": STATUS_APPROVED,
            "verificationStatus": STATUS_APPROVED,
            "updatedAt": now,
        }
        user_fields = {"roles": grant_seller_role(user.roles), "updatedAt": now}

        batch = self._store.batch()
        batch.update(APPLICATIONS, application_id, application_fields)
        batch.update(USERS, user_id, user_fields)
        try:
            batch.commit()
        except StoreError as exc:
            logger.exception("Approval of %s for user %s failed", application_id, user_id)
            raise WorkflowFailed("Failed to approve seller request. Please try again.") from exc

        logger.info("Approved seller application %s; user %s is now a seller", application_id, user_id)
        return SellerApplication.from_document(application_id, {**application.document, **application_fields})

    def reject(self, application_id: str, user_id: str) -> SellerApplication:
        application = self._load_pending(application_id, user_id, action="reject")
        fields = {
            "status": STATUS_REJECTED,
            "verificationStatus": STATUS_REJECTED,
            "updatedAt": self._clock(),
        }
        try:
            self._store.update(APPLICATIONS, application_id, fields)
        except StoreError as exc:
            logger.exception("Rejection of %s failed", application_id)
            raise WorkflowFailed("Failed to reject seller request. Please try again.") from exc

        logger.info("Rejected seller application %s for user %s", application_id, user_id)
        return SellerApplication.from_document(application_id, {**application.document, **fields})

    def reconcile(self) -> List[str]:
        """Grant ``seller`` to owners of approved applications who lack it.

        Returns the ids of the users that were repaired.
        """

        try:
            approved = self._store.query(Query(APPLICATIONS).where("status", "==", STATUS_APPROVED))
        except StoreError as exc:
            logger.exception("Failed to scan approved applications")
            raise WorkflowFailed("Failed to scan approved seller applications.") from exc

        repaired: List[str] = []
        for document in approved:
            application = SellerApplication.from_document(document.id, document.data)
            user_id = application.user_id or application.id
            if user_id in repaired:
                continue
            try:
                user_doc = self._store.get(USERS, user_id)
                if user_doc is None:
                    logger.warning(
                        "Approved application %s references missing user %s", application.id, user_id
                    )
                    continue
                user = User.from_document(user_doc.id, user_doc.data)
                if user.has_role(ROLE_SELLER):
                    continue
                self._store.update(
                    USERS,
                    user_id,
                    {"roles": grant_seller_role(user.roles), "updatedAt": self._clock()},
                )
            except StoreError as exc:
                logger.exception("Failed to repair seller role for %s", user_id)
                raise WorkflowFailed(f"Failed to repair seller role for user {user_id}.") from exc
            logger.info("Granted missing seller role to %s (application %s)", user_id, application.id)
            repaired.append(user_id)
        return repaired

    def _load_pending(self, application_id: str, user_id: str, *, action: str) -> SellerApplication:
        try:
            document = self._store.get(APPLICATIONS, application_id)
        except StoreError as exc:
            logger.exception("Failed to load seller application %s", application_id)
            raise WorkflowFailed(f"Failed to {action} seller request. Please try again.") from exc
        if document is None:
            raise WorkflowFailed(f"Seller application {application_id} does not exist.")

        application = SellerApplication.from_document(document.id, document.data)
        owner: Optional[str] = application.user_id or application.id
        if owner != user_id:
            raise WorkflowFailed(
                f"Seller application {application_id} does not belong to user {user_id}."
            )
        if application.status != STATUS_PENDING:
            raise InvalidTransition(
                f"Seller application {application_id} is already {application.status}."
            )
        return application


__all__ = ["SellerApplicationWorkflow", "grant_seller_role"]
