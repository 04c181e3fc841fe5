"""Single-entity writes used by the user and product views."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List

from .errors import MutationFailed
from .models import ROLES, utcnow
from .store import DocumentStore, StoreError

logger = logging.getLogger("marketplace.portal.mutations")


class MutationActions:
    """Each action writes one field group plus ``updatedAt``.

    The returned mapping is exactly what was written, so callers can apply
    the same delta to their in-memory copy instead of re-fetching.
    """

    def __init__(self, store: DocumentStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def set_user_disabled(self, user_id: str, disabled: bool) -> Dict[str, object]:
        return self._write("users", user_id, {"disabled": bool(disabled)}, "update user status")

    def set_user_email_verified(self, user_id: str, verified: bool) -> Dict[str, object]:
        return self._write("users", user_id, {"emailVerified": bool(verified)}, "update email verification")

    def set_user_roles(self, user_id: str, roles: Iterable[str]) -> Dict[str, object]:
        cleaned: List[str] = []
        for role in roles:
            if role not in ROLES:
                raise ValueError(f"Unknown role '{role}'")
            if role not in cleaned:
                cleaned.append(role)
        return self._write("users", user_id, {"roles": cleaned}, "update user roles")

    def set_product_active(self, product_id: str, active: bool) -> Dict[str, object]:
        return self._write("products", product_id, {"isActive": bool(active)}, "update product status")

    def set_product_stock(self, product_id: str, stock: int) -> Dict[str, object]:
        if isinstance(stock, bool) or not isinstance(stock, int):
            raise ValueError("Stock must be a whole number")
        if stock < 0:
            raise ValueError("Stock cannot be negative")
        return self._write("products", product_id, {"currentStock": stock}, "update stock")

    def delete_product(self, product_id: str) -> None:
        try:
            self._store.delete("products", product_id)
        except StoreError as exc:
            logger.exception("Failed to delete product %s", product_id)
            raise MutationFailed(f"Failed to delete product: {exc}") from exc
        logger.info("Deleted product %s", product_id)

    def _write(self, collection: str, doc_id: str, fields: Dict[str, object], action: str) -> Dict[str, object]:
        delta = dict(fields)
        delta["updatedAt"] = self._clock()
        try:
            self._store.update(collection, doc_id, delta)
        except StoreError as exc:
            logger.exception("Failed to %s for %s/%s", action, collection, doc_id)
            raise MutationFailed(f"Failed to {action}: {exc}") from exc
        logger.info("Applied %s to %s/%s", sorted(fields), collection, doc_id)
        return delta


__all__ = ["MutationActions"]
