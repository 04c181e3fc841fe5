"""Dashboard counters, one independent store query per metric."""
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

import anyio

from .errors import QueryFailed, StatsFailed
from .filters import DEFAULT_MINIMUM_STOCK, is_low_stock
from .models import STATUS_APPROVED, STATUS_PENDING, ActivityEntry, Product
from .store import DocumentStore, FieldFilter, Query, StoreError

logger = logging.getLogger("marketplace.portal.stats")

MetricFunction = Callable[[DocumentStore], int]


class DashboardAggregator:
    """Compute store-wide counts.

    Metrics run concurrently in worker threads. Each count reflects the store
    at the moment its own query ran; there is no cross-metric snapshot.
    """

    def __init__(self, store: DocumentStore, *, low_stock_default: int = DEFAULT_MINIMUM_STOCK) -> None:
        self._store = store
        self._low_stock_default = low_stock_default
        self._metrics: Dict[str, MetricFunction] = {
            "total_users": lambda store: store.count("users"),
            "total_products": lambda store: store.count("products"),
            "total_orders": lambda store: store.count("orders"),
            "total_sellers": lambda store: store.count("sellers"),
            "active_products": lambda store: store.count(
                "products", [FieldFilter("isActive", "==", True)]
            ),
            "low_stock_products": self._count_low_stock,
            "pending_applications": lambda store: store.count(
                "sellers", [FieldFilter("status", "==", STATUS_PENDING)]
            ),
            "approved_sellers": lambda store: store.count(
                "sellers", [FieldFilter("status", "==", STATUS_APPROVED)]
            ),
        }

    @property
    def metric_names(self) -> List[str]:
        return list(self._metrics)

    async def compute_stats(self, names: Optional[Iterable[str]] = None) -> Dict[str, int]:
        """Run the named metrics, or all of them when ``names`` is omitted."""

        selected = self._select(names)
        results: Dict[str, int] = {}
        failed: List[str] = []

        async def run_metric(name: str, metric: MetricFunction) -> None:
            try:
                results[name] = await anyio.to_thread.run_sync(metric, self._store)
            except StoreError:
                logger.exception("Dashboard metric %s failed", name)
                failed.append(name)

        async with anyio.create_task_group() as task_group:
            for name in selected:
                task_group.start_soon(run_metric, name, self._metrics[name])

        if failed:
            raise StatsFailed(
                f"Failed to load dashboard statistics: {', '.join(sorted(failed))}",
                partial=results,
                failed=sorted(failed),
            )
        return {name: results[name] for name in selected}

    def _select(self, names: Optional[Iterable[str]]) -> List[str]:
        if names is None:
            return list(self._metrics)
        selected = list(dict.fromkeys(names))
        unknown = [name for name in selected if name not in self._metrics]
        if unknown:
            raise ValueError(f"Unknown dashboard metric(s): {', '.join(unknown)}")
        return selected

    def recent_activity(self, limit: int = 10) -> List[ActivityEntry]:
        query = Query("activity_logs").order_by("timestamp", descending=True).limit_to(limit)
        try:
            documents = self._store.query(query)
        except StoreError as exc:
            logger.exception("Failed to load recent activity")
            raise QueryFailed("Failed to load recent activity.") from exc
        return [ActivityEntry.from_document(doc.id, doc.data) for doc in documents]

    def _count_low_stock(self, store: DocumentStore) -> int:
        # Threshold comes from each product's own minimumStock, which the store cannot compare.
        documents = store.query(Query("products"))
        return sum(
            1
            for doc in documents
            if is_low_stock(Product.from_document(doc.id, doc.data), self._low_stock_default)
        )


__all__ = ["DashboardAggregator"]
