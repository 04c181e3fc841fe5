"""Cursor-paginated listing of users, products and seller applications."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import QueryFailed
from .models import Product, SellerApplication, User
from .store import DocumentNotFound, DocumentStore, FieldFilter, Query, StoreError

logger = logging.getLogger("marketplace.portal.listing")


@dataclass(frozen=True)
class EntityKind:
    """How one entity kind is stored and ordered."""

    name: str
    collection: str
    order_field: str
    descending: bool
    factory: Callable[[str, Mapping[str, Any]], Any]
    label: str


ENTITY_KINDS: Dict[str, EntityKind] = {
    "users": EntityKind(
        name="users",
        collection="users",
        order_field="email",
        descending=False,
        factory=User.from_document,
        label="users",
    ),
    "products": EntityKind(
        name="products",
        collection="products",
        order_field="createdAt",
        descending=True,
        factory=Product.from_document,
        label="products",
    ),
    "sellers": EntityKind(
        name="sellers",
        collection="sellers",
        order_field="submittedAt",
        descending=True,
        factory=SellerApplication.from_document,
        label="seller applications",
    ),
}


def get_entity_kind(kind: str) -> EntityKind:
    try:
        return ENTITY_KINDS[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown entity kind '{kind}'") from exc


@dataclass(frozen=True)
class Page:
    kind: str
    items: List[Any]
    next_cursor: Optional[str]
    total_count: int
    page_size: int
    after_cursor: Optional[str] = None


def _equality_filters(where: Optional[Mapping[str, object]]) -> Tuple[FieldFilter, ...]:
    if not where:
        return ()
    return tuple(FieldFilter(field, "==", value) for field, value in where.items())


class ListingQueryEngine:
    """Load one page of entities at a time in a stable order."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def list_page(
        self,
        kind: str,
        page_size: int,
        after_cursor: Optional[str] = None,
        *,
        where: Optional[Mapping[str, object]] = None,
    ) -> Page:
        entity_kind = get_entity_kind(kind)
        if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
            raise ValueError("page_size must be a positive integer")

        filters = _equality_filters(where)
        query = Query(entity_kind.collection, filters=filters).order_by(
            entity_kind.order_field, descending=entity_kind.descending
        ).limit_to(page_size)

        try:
            try:
                documents = self._store.query(query.after(after_cursor) if after_cursor else query)
            except DocumentNotFound:
                logger.warning(
                    "Cursor %s no longer exists in %s; restarting from the first page",
                    after_cursor,
                    entity_kind.collection,
                )
                after_cursor = None
                documents = self._store.query(query)
            # Separate read; may disagree with ``documents`` under concurrent writes.
            total = self._store.count(entity_kind.collection, filters)
        except StoreError as exc:
            logger.exception("Failed to load %s", entity_kind.label)
            raise QueryFailed(f"Failed to load {entity_kind.label}. Please try again.") from exc

        items = [entity_kind.factory(doc.id, doc.data) for doc in documents]
        next_cursor = items[-1].id if len(items) == page_size else None
        return Page(
            kind=kind,
            items=items,
            next_cursor=next_cursor,
            total_count=total,
            page_size=page_size,
            after_cursor=after_cursor,
        )

    def get_entity(self, kind: str, entity_id: str) -> Optional[Any]:
        entity_kind = get_entity_kind(kind)
        try:
            document = self._store.get(entity_kind.collection, entity_id)
        except StoreError as exc:
            logger.exception("Failed to load %s/%s", entity_kind.collection, entity_id)
            raise QueryFailed(f"Failed to load {entity_kind.label}. Please try again.") from exc
        if document is None:
            return None
        return entity_kind.factory(document.id, document.data)


__all__ = ["ENTITY_KINDS", "EntityKind", "ListingQueryEngine", "Page", "get_entity_kind"]
