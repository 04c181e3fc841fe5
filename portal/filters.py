"""In-memory search and filtering over an already loaded page.

Nothing here touches the store: filters only narrow what the listing engine
has fetched for the current page.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .models import APPLICATION_STATUSES, ROLES, Product, SellerApplication, User

DEFAULT_MINIMUM_STOCK = 5

PRODUCT_STATUS_FILTERS = ("active", "inactive", "lowstock", "outofstock")
USER_STATUS_FILTERS = ("active", "disabled", "unverified")
PRODUCT_CATEGORIES = ("clothing", "electronics", "accessories", "home", "books", "sports")

_WILDCARDS = {None, "", "all"}

SEARCH_FIELDS: Dict[str, Sequence[str]] = {
    "products": ("name", "description", "brand", "sku"),
    "users": ("email", "display_name"),
    "sellers": ("business_name", "first_name", "last_name", "email", "city"),
}


def is_out_of_stock(product: Product) -> bool:
    return product.current_stock == 0


def is_low_stock(product: Product, default_minimum: int = DEFAULT_MINIMUM_STOCK) -> bool:
    # A product without a recorded stock level is neither low nor out of stock.
    if product.current_stock is None:
        return False
    return product.current_stock <= (product.minimum_stock or default_minimum)


def stock_level(product: Product, default_minimum: int = DEFAULT_MINIMUM_STOCK) -> str:
    if product.current_stock is None:
        return "unknown"
    if is_out_of_stock(product):
        return "out_of_stock"
    if is_low_stock(product, default_minimum):
        return "low_stock"
    return "in_stock"


def _is_wildcard(value: Optional[str]) -> bool:
    return value in _WILDCARDS


def matches_search(item: Any, fields: Iterable[str], search_text: Optional[str]) -> bool:
    if not search_text:
        return True
    needle = search_text.strip().lower()
    if not needle:
        return True
    for name in fields:
        value = getattr(item, name, None)
        if value and needle in str(value).lower():
            return True
    return False


def _product_status_predicate(status: str, default_minimum: int) -> Callable[[Product], bool]:
    if status == "active":
        return lambda product: product.is_active
    if status == "inactive":
        return lambda product: not product.is_active
    if status == "lowstock":
        return lambda product: is_low_stock(product, default_minimum)
    if status == "outofstock":
        return is_out_of_stock
    raise ValueError(f"Unknown product status filter '{status}'")


def _user_status_predicate(status: str) -> Callable[[User], bool]:
    if status == "active":
        return lambda user: not user.disabled
    if status == "disabled":
        return lambda user: user.disabled
    if status == "unverified":
        return lambda user: not user.email_verified
    raise ValueError(f"Unknown user status filter '{status}'")


def filter_products(
    products: Iterable[Product],
    *,
    search_text: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    default_minimum: int = DEFAULT_MINIMUM_STOCK,
) -> List[Product]:
    predicates: List[Callable[[Product], bool]] = []
    if not _is_wildcard(category):
        wanted = str(category).lower()
        predicates.append(lambda product: bool(product.category) and product.category.lower() == wanted)
    if not _is_wildcard(status):
        predicates.append(_product_status_predicate(str(status), default_minimum))

    fields = SEARCH_FIELDS["products"]
    return [
        product
        for product in products
        if matches_search(product, fields, search_text) and all(check(product) for check in predicates)
    ]


def filter_users(
    users: Iterable[User],
    *,
    search_text: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
) -> List[User]:
    predicates: List[Callable[[User], bool]] = []
    if not _is_wildcard(role):
        if role not in ROLES:
            raise ValueError(f"Unknown role filter '{role}'")
        predicates.append(lambda user: user.has_role(str(role)))
    if not _is_wildcard(status):
        predicates.append(_user_status_predicate(str(status)))

    fields = SEARCH_FIELDS["users"]
    return [
        user
        for user in users
        if matches_search(user, fields, search_text) and all(check(user) for check in predicates)
    ]


def filter_applications(
    applications: Iterable[SellerApplication],
    *,
    search_text: Optional[str] = None,
    status: Optional[str] = None,
) -> List[SellerApplication]:
    if not _is_wildcard(status) and status not in APPLICATION_STATUSES:
        raise ValueError(f"Unknown application status filter '{status}'")

    fields = SEARCH_FIELDS["sellers"]
    return [
        application
        for application in applications
        if matches_search(application, fields, search_text)
        and (_is_wildcard(status) or application.status == status)
    ]


def apply_filters(kind: str, items: Iterable[Any], search_text: Optional[str] = None, **categorical: Any) -> List[Any]:
    """Dispatch to the filter for ``kind``; unknown keyword filters raise ``TypeError``."""

    if kind == "products":
        return filter_products(items, search_text=search_text, **categorical)
    if kind == "users":
        return filter_users(items, search_text=search_text, **categorical)
    if kind == "sellers":
        return filter_applications(items, search_text=search_text, **categorical)
    raise ValueError(f"Unknown entity kind '{kind}'")


__all__ = [
    "DEFAULT_MINIMUM_STOCK",
    "PRODUCT_CATEGORIES",
    "PRODUCT_STATUS_FILTERS",
    "USER_STATUS_FILTERS",
    "apply_filters",
    "filter_applications",
    "filter_products",
    "filter_users",
    "is_low_stock",
    "is_out_of_stock",
    "stock_level",
]
