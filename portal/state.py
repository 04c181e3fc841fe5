"""Per-session in-memory copies of loaded listing pages."""

from __future__ import annotations

import secrets
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from .listing import ListingQueryEngine, Page, get_entity_kind

NAV_FIRST = "first"
NAV_NEXT = "next"
NAV_PREV = "prev"
NAV_REFRESH = "refresh"
NAV_ACTIONS = (NAV_FIRST, NAV_NEXT, NAV_PREV, NAV_REFRESH)


@dataclass
class LoadedPage:
    """Entities of the current page keyed by id, in display order."""

    kind: str
    page_size: int
    total_count: int
    next_cursor: Optional[str]
    cursor_stack: List[Optional[str]] = field(default_factory=lambda: [None])
    where: Dict[str, object] = field(default_factory=dict)
    _entities: "OrderedDict[str, Any]" = field(default_factory=OrderedDict)

    @classmethod
    def from_page(
        cls,
        page: Page,
        *,
        cursor_stack: List[Optional[str]],
        where: Optional[Mapping[str, object]] = None,
    ) -> "LoadedPage":
        entities: "OrderedDict[str, Any]" = OrderedDict((item.id, item) for item in page.items)
        return cls(
            kind=page.kind,
            page_size=page.page_size,
            total_count=page.total_count,
            next_cursor=page.next_cursor,
            cursor_stack=list(cursor_stack),
            where=dict(where or {}),
            _entities=entities,
        )

    @property
    def items(self) -> List[Any]:
        return list(self._entities.values())

    @property
    def page_number(self) -> int:
        return len(self.cursor_stack)

    @property
    def total_pages(self) -> int:
        if self.total_count <= 0:
            return 1
        return -(-self.total_count // self.page_size)

    @property
    def has_previous(self) -> bool:
        return len(self.cursor_stack) > 1

    @property
    def has_next(self) -> bool:
        return self.next_cursor is not None

    def get(self, entity_id: str) -> Optional[Any]:
        return self._entities.get(entity_id)

    def patch(self, entity_id: str, delta: Mapping[str, object]) -> Optional[Any]:
        """Apply a field delta that was just written to the store."""

        current = self._entities.get(entity_id)
        if current is None:
            return None
        factory = get_entity_kind(self.kind).factory
        updated = factory(entity_id, {**current.document, **delta})
        self._entities[entity_id] = updated
        return updated

    def remove(self, entity_id: str) -> bool:
        if self._entities.pop(entity_id, None) is None:
            return False
        self.total_count = max(self.total_count - 1, 0)
        return True


def load_page(
    engine: ListingQueryEngine,
    kind: str,
    page_size: int,
    *,
    current: Optional[LoadedPage] = None,
    nav: str = NAV_FIRST,
    where: Optional[Mapping[str, object]] = None,
) -> LoadedPage:
    """Run the query that ``nav`` implies relative to ``current``.

    ``QueryFailed`` propagates before anything is replaced, so a failed
    navigation leaves the caller's page untouched.
    """

    same_shape = current is not None and current.page_size == page_size
    if nav == NAV_NEXT and same_shape and current.next_cursor:
        stack = current.cursor_stack + [current.next_cursor]
    elif nav == NAV_PREV and same_shape and current.has_previous:
        stack = current.cursor_stack[:-1]
    elif nav == NAV_REFRESH and same_shape:
        stack = list(current.cursor_stack)
    else:
        stack = [None]

    page = engine.list_page(kind, page_size, stack[-1], where=where)
    if page.after_cursor != stack[-1]:
        # The cursor vanished and the engine restarted from the first page.
        stack = [None]
    return LoadedPage.from_page(page, cursor_stack=stack, where=where)


@dataclass
class _Workspace:
    expires_at: datetime
    pages: Dict[str, LoadedPage] = field(default_factory=dict)


class ListingStateRegistry:
    """Loaded pages per UI session; never shared between sessions."""

    def __init__(self, *, ttl: timedelta = timedelta(hours=8)) -> None:
        self._ttl = ttl
        self._workspaces: Dict[str, _Workspace] = {}
        self._lock = threading.Lock()

    def open_workspace(self) -> str:
        token = secrets.token_urlsafe(24)
        with self._lock:
            self._purge_expired()
            self._workspaces[token] = _Workspace(expires_at=self._now() + self._ttl)
        return token

    def has_workspace(self, token: Optional[str]) -> bool:
        if not token:
            return False
        with self._lock:
            return self._touch(token) is not None

    def get(self, token: Optional[str], kind: str) -> Optional[LoadedPage]:
        if not token:
            return None
        with self._lock:
            workspace = self._touch(token)
            if workspace is None:
                return None
            return workspace.pages.get(kind)

    def put(self, token: str, page: LoadedPage) -> None:
        with self._lock:
            workspace = self._touch(token)
            if workspace is None:
                workspace = _Workspace(expires_at=self._now() + self._ttl)
                self._workspaces[token] = workspace
            workspace.pages[page.kind] = page

    def invalidate(self, token: Optional[str], kind: Optional[str] = None) -> None:
        if not token:
            return
        with self._lock:
            workspace = self._workspaces.get(token)
            if workspace is None:
                return
            if kind is None:
                workspace.pages.clear()
            else:
                workspace.pages.pop(kind, None)

    def discard(self, token: Optional[str]) -> None:
        if not token:
            return
        with self._lock:
            self._workspaces.pop(token, None)

    def _touch(self, token: str) -> Optional[_Workspace]:
        workspace = self._workspaces.get(token)
        if workspace is None:
            return None
        now = self._now()
        if workspace.expires_at <= now:
            self._workspaces.pop(token, None)
            return None
        workspace.expires_at = now + self._ttl
        return workspace

    def _purge_expired(self) -> None:
        now = self._now()
        for token in [key for key, value in self._workspaces.items() if value.expires_at <= now]:
            self._workspaces.pop(token, None)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = [
    "ListingStateRegistry",
    "LoadedPage",
    "NAV_ACTIONS",
    "NAV_FIRST",
    "NAV_NEXT",
    "NAV_PREV",
    "NAV_REFRESH",
    "load_page",
]
