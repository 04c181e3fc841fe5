from __future__ import annotations

from datetime import timedelta

from portal.listing import ListingQueryEngine
from portal.state import NAV_NEXT, NAV_PREV, NAV_REFRESH, ListingStateRegistry, load_page
from portal.store import DocumentStore

from conftest import add_product, seed_products


def test_navigation_keeps_cursor_stack(store: DocumentStore) -> None:
    seed_products(store, 12)
    engine = ListingQueryEngine(store)

    first = load_page(engine, "products", 5)
    assert first.page_number == 1
    assert first.total_pages == 3
    assert not first.has_previous

    second = load_page(engine, "products", 5, current=first, nav=NAV_NEXT)
    third = load_page(engine, "products", 5, current=second, nav=NAV_NEXT)
    assert third.page_number == 3
    assert [item.id for item in third.items] == ["p01", "p00"]
    assert not third.has_next

    back = load_page(engine, "products", 5, current=third, nav=NAV_PREV)
    assert back.page_number == 2
    assert [item.id for item in back.items] == [item.id for item in second.items]


def test_refresh_and_page_size_change(store: DocumentStore) -> None:
    seed_products(store, 8)
    engine = ListingQueryEngine(store)
    first = load_page(engine, "products", 5)
    second = load_page(engine, "products", 5, current=first, nav=NAV_NEXT)

    add_product(store, "late", "Late arrival", minutes=-10)
    refreshed = load_page(engine, "products", 5, current=second, nav=NAV_REFRESH)
    assert refreshed.page_number == 2
    assert refreshed.total_count == 9
    assert refreshed.items[-1].id == "late"

    resized = load_page(engine, "products", 10, current=second, nav=NAV_NEXT)
    assert resized.page_number == 1
    assert len(resized.items) == 9


def test_vanished_cursor_resets_to_first_page(store: DocumentStore) -> None:
    seed_products(store, 8)
    engine = ListingQueryEngine(store)
    first = load_page(engine, "products", 3)
    store.delete("products", first.next_cursor)

    reloaded = load_page(engine, "products", 3, current=first, nav=NAV_NEXT)
    assert reloaded.page_number == 1
    assert reloaded.cursor_stack == [None]


def test_patch_and_remove_update_local_copy(store: DocumentStore) -> None:
    add_product(store, "p1", "Shirt", currentStock=20)
    add_product(store, "p2", "Cap", minutes=1)
    page = load_page(ListingQueryEngine(store), "products", 10)

    updated = page.patch("p1", {"currentStock": 4})
    assert updated.current_stock == 4
    assert page.get("p1").name == "Shirt"
    assert page.patch("ghost", {"currentStock": 1}) is None

    assert page.remove("p2")
    assert not page.remove("p2")
    assert [item.id for item in page.items] == ["p1"]
    assert page.total_count == 1


def test_registry_isolates_and_expires_workspaces(store: DocumentStore) -> None:
    seed_products(store, 2)
    page = load_page(ListingQueryEngine(store), "products", 10)
    registry = ListingStateRegistry()

    first = registry.open_workspace()
    second = registry.open_workspace()
    registry.put(first, page)
    assert registry.get(first, "products") is page
    assert registry.get(second, "products") is None

    registry.invalidate(first, "products")
    assert registry.get(first, "products") is None
    assert registry.has_workspace(first)

    registry.discard(first)
    assert not registry.has_workspace(first)

    expired = ListingStateRegistry(ttl=timedelta(seconds=-1))
    token = expired.open_workspace()
    assert not expired.has_workspace(token)
