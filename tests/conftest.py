from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portal.database import Database
from portal.store import DocumentStore

BASE_TIME = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "portal.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def store(database: Database) -> DocumentStore:
    return DocumentStore(database)


def add_user(
    store: DocumentStore,
    uid: str,
    email: str,
    roles: Iterable[str] = ("user",),
    **extra: object,
) -> None:
    data = {
        "email": email,
        "displayName": extra.pop("displayName", email.split("@")[0].title()),
        "roles": list(roles),
        "emailVerified": extra.pop("emailVerified", True),
        "disabled": extra.pop("disabled", False),
        "createdAt": BASE_TIME,
    }
    data.update(extra)
    store.set("users", uid, data)


def add_product(store: DocumentStore, product_id: str, name: str, minutes: int = 0, **extra: object) -> None:
    data = {
        "name": name,
        "sku": extra.pop("sku", f"SKU-{product_id}"),
        "description": extra.pop("description", ""),
        "brand": extra.pop("brand", "Generic"),
        "category": extra.pop("category", "clothing"),
        "price": extra.pop("price", 199.0),
        "currentStock": extra.pop("currentStock", 20),
        "isActive": extra.pop("isActive", True),
        "sellerId": extra.pop("sellerId", "seller-1"),
        "createdAt": BASE_TIME + timedelta(minutes=minutes),
    }
    data.update(extra)
    store.set("products", product_id, data)


def add_application(
    store: DocumentStore,
    application_id: str,
    user_id: str,
    business_name: str,
    status: str = "pending",
    minutes: int = 0,
) -> None:
    store.set(
        "sellers",
        application_id,
        {
            "userId": user_id,
            "businessName": business_name,
            "firstName": "Maria",
            "lastName": "Santos",
            "email": f"{user_id}@example.com",
            "city": "Quezon City",
            "status": status,
            "verificationStatus": status,
            "submittedAt": BASE_TIME + timedelta(minutes=minutes),
        },
    )


def seed_products(store: DocumentStore, count: int) -> List[str]:
    ids = []
    for index in range(count):
        product_id = f"p{index:02d}"
        add_product(store, product_id, f"Product {index}", minutes=index)
        ids.append(product_id)
    return ids
