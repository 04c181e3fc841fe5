"""Admin session guard."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import PermissionDenied, QueryFailed, Unauthenticated
from .models import ROLE_ADMIN, User
from .store import DocumentStore, StoreError

logger = logging.getLogger("marketplace.portal.guard")

REASON_UNAUTHENTICATED = "unauthenticated"
REASON_PERMISSION_DENIED = "permission-denied"


@dataclass(frozen=True)
class Authorization:
    authorized: bool
    identity: Optional[User] = None
    reason: Optional[str] = None


class SessionGuard:
    """Decide whether a signed-in uid may use the portal.

    The ``users`` document is re-read on every call so that revoking the
    ``admin`` role takes effect on the next request.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def authorize(self, uid: Optional[str]) -> Authorization:
        if not uid:
            return Authorization(authorized=False, reason=REASON_UNAUTHENTICATED)

        try:
            document = self._store.get("users", uid)
        except StoreError as exc:
            logger.exception("Failed to load user record for %s", uid)
            raise QueryFailed("Could not verify admin permissions. Please try again.") from exc

        if document is None:
            return Authorization(authorized=False, reason=REASON_PERMISSION_DENIED)

        user = User.from_document(document.id, document.data)
        if not user.has_role(ROLE_ADMIN):
            return Authorization(authorized=False, identity=user, reason=REASON_PERMISSION_DENIED)
        return Authorization(authorized=True, identity=user)

    def require_admin(self, uid: Optional[str]) -> User:
        result = self.authorize(uid)
        if result.authorized and result.identity is not None:
            return result.identity
        if result.reason == REASON_UNAUTHENTICATED:
            raise Unauthenticated("Must be signed in")
        raise PermissionDenied("Must be an admin")


__all__ = ["Authorization", "SessionGuard", "REASON_UNAUTHENTICATED", "REASON_PERMISSION_DENIED"]
