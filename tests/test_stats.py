from __future__ import annotations

from datetime import timedelta

import anyio
import pytest

from portal.errors import QueryFailed, StatsFailed
from portal.stats import DashboardAggregator
from portal.store import DocumentStore, StoreError

from conftest import BASE_TIME, add_application, add_product, add_user


def _seed(store: DocumentStore) -> None:
    add_user(store, "u1", "admin@example.com", roles=["admin", "user"])
    add_user(store, "u2", "seller@example.com", roles=["seller", "user"])
    add_user(store, "u3", "buyer@example.com")
    add_product(store, "p1", "Shirt", currentStock=0)
    add_product(store, "p2", "Lamp", currentStock=30, minimumStock=40, isActive=False)
    add_product(store, "p3", "Cap", currentStock=50)
    add_application(store, "a1", "u2", "Acme", status="approved")
    add_application(store, "a2", "u3", "Bolt")
    store.set("orders", "o1", {"total": 100})


def test_compute_stats_counts_every_metric(store: DocumentStore) -> None:
    _seed(store)
    aggregator = DashboardAggregator(store)

    stats = anyio.run(aggregator.compute_stats)

    assert stats == {
        "total_users": 3,
        "total_products": 3,
        "total_orders": 1,
        "total_sellers": 2,
        "active_products": 2,
        "low_stock_products": 2,
        "pending_applications": 1,
        "approved_sellers": 1,
    }
    assert list(stats) == aggregator.metric_names


def test_empty_store_yields_zeros(store: DocumentStore) -> None:
    stats = anyio.run(DashboardAggregator(store).compute_stats)
    assert set(stats.values()) == {0}


def test_failed_metric_reports_partial_results(store: DocumentStore, monkeypatch: pytest.MonkeyPatch) -> None:
    _seed(store)
    original_count = store.count

    def flaky_count(collection, filters=()):
        if collection == "orders":
            raise StoreError("orders table unavailable")
        return original_count(collection, filters)

    monkeypatch.setattr(store, "count", flaky_count)

    with pytest.raises(StatsFailed) as excinfo:
        anyio.run(DashboardAggregator(store).compute_stats)

    assert excinfo.value.failed == ("total_orders",)
    assert excinfo.value.partial["total_users"] == 3
    assert "total_orders" not in excinfo.value.partial


def test_recent_activity_is_newest_first(store: DocumentStore) -> None:
    for index in range(4):
        store.set(
            "activity_logs",
            f"log{index}",
            {
                "action": f"action {index}",
                "actor": "admin@example.com",
                "timestamp": BASE_TIME + timedelta(minutes=index),
            },
        )

    entries = DashboardAggregator(store).recent_activity(limit=3)
    assert [entry.id for entry in entries] == ["log3", "log2", "log1"]
    assert entries[0].timestamp == BASE_TIME + timedelta(minutes=3)


def test_recent_activity_failure(store: DocumentStore, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_query(query):
        raise StoreError("boom")

    monkeypatch.setattr(store, "query", broken_query)
    with pytest.raises(QueryFailed):
        DashboardAggregator(store).recent_activity()


def test_products_without_stock_are_not_low_stock(store: DocumentStore) -> None:
    add_product(store, "p1", "Shirt", currentStock=2)
    store.set("products", "p2", {"name": "Gift Card", "isActive": True, "createdAt": BASE_TIME})

    stats = anyio.run(DashboardAggregator(store).compute_stats)

    assert stats["total_products"] == 2
    assert stats["low_stock_products"] == 1


def test_compute_selected_metrics_only(store: DocumentStore, monkeypatch: pytest.MonkeyPatch) -> None:
    _seed(store)
    aggregator = DashboardAggregator(store)

    def broken_query(query):
        raise StoreError("products scan unavailable")

    monkeypatch.setattr(store, "query", broken_query)
    stats = anyio.run(aggregator.compute_stats, ["total_sellers", "total_users", "total_users"])

    assert stats == {"total_sellers": 2, "total_users": 3}

    with pytest.raises(ValueError):
        anyio.run(aggregator.compute_stats, ["total_users", "revenue"])
