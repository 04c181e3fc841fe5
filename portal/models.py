"""Domain models for the documents the portal reads and writes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

ROLE_ADMIN = "admin"
ROLE_SELLER = "seller"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_SELLER, ROLE_USER)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
APPLICATION_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: object) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _optional_text(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    return str(value)


def web_link(value: Optional[str]) -> Optional[str]:
    """Return ``value`` only when it is an absolute http(s) URL."""

    if not value:
        return None
    candidate = value.strip()
    parts = urlsplit(candidate)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None
    return candidate


def _optional_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _optional_float(value: object) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class User:
    """A marketplace account as stored in the ``users`` collection."""

    id: str
    email: str
    display_name: str
    roles: Tuple[str, ...]
    email_verified: bool
    disabled: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime] = None
    document: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "User":
        raw_roles = data.get("roles") or ()
        if isinstance(raw_roles, str):
            raw_roles = (raw_roles,)
        return cls(
            id=doc_id,
            email=_text(data, "email"),
            display_name=_text(data, "displayName"),
            roles=tuple(str(role) for role in raw_roles),
            email_verified=bool(data.get("emailVerified", False)),
            disabled=bool(data.get("disabled", False)),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            document=dict(data),
        )

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role(ROLE_ADMIN)


@dataclass(frozen=True)
class SellerApplication:
    """A seller onboarding request from the ``sellers`` collection."""

    id: str
    user_id: str
    business_name: str
    first_name: str
    last_name: str
    email: str
    phone: str
    date_of_birth: str
    id_last4: str
    street: str
    barangay: str
    city: str
    province: str
    postal_code: str
    id_document_url: Optional[str]
    business_document_url: Optional[str]
    status: str
    submitted_at: Optional[datetime]
    updated_at: Optional[datetime] = None
    document: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "SellerApplication":
        return cls(
            id=doc_id,
            user_id=_text(data, "userId"),
            business_name=_text(data, "businessName"),
            first_name=_text(data, "firstName"),
            last_name=_text(data, "lastName"),
            email=_text(data, "email"),
            phone=_text(data, "phone"),
            date_of_birth=_text(data, "dateOfBirth"),
            id_last4=_text(data, "idLast4"),
            street=_text(data, "street"),
            barangay=_text(data, "barangay"),
            city=_text(data, "city"),
            province=_text(data, "province"),
            postal_code=_text(data, "postalCode"),
            id_document_url=_optional_text(data, "idDocumentUrl"),
            business_document_url=_optional_text(data, "businessDocumentUrl"),
            status=_text(data, "status") or STATUS_PENDING,
            submitted_at=parse_timestamp(data.get("submittedAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            document=dict(data),
        )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def is_pending(self) -> bool:
        return self.status == STATUS_PENDING

    @property
    def id_document_link(self) -> Optional[str]:
        return web_link(self.id_document_url)

    @property
    def business_document_link(self) -> Optional[str]:
        return web_link(self.business_document_url)


@dataclass(frozen=True)
class Product:
    """A listing from the ``products`` collection."""

    id: str
    name: str
    sku: str
    description: str
    brand: str
    category: str
    price: float
    sale_price: Optional[float]
    current_stock: Optional[int]
    minimum_stock: Optional[int]
    is_active: bool
    seller_id: str
    images: Tuple[str, ...]
    created_at: Optional[datetime]
    updated_at: Optional[datetime] = None
    document: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "Product":
        images = data.get("images") or ()
        if isinstance(images, str):
            images = (images,)
        return cls(
            id=doc_id,
            name=_text(data, "name"),
            sku=_text(data, "sku"),
            description=_text(data, "description"),
            brand=_text(data, "brand"),
            category=_text(data, "category"),
            price=_optional_float(data.get("price")) or 0.0,
            sale_price=_optional_float(data.get("salePrice")),
            current_stock=_optional_int(data.get("currentStock")),
            minimum_stock=_optional_int(data.get("minimumStock")),
            is_active=bool(data.get("isActive", False)),
            seller_id=_text(data, "sellerId"),
            images=tuple(str(image) for image in images),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            document=dict(data),
        )


@dataclass(frozen=True)
class ActivityEntry:
    id: str
    action: str
    actor: str
    details: str
    timestamp: Optional[datetime]

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "ActivityEntry":
        return cls(
            id=doc_id,
            action=_text(data, "action"),
            actor=_text(data, "actor"),
            details=_text(data, "details"),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


__all__ = [
    "ROLE_ADMIN",
    "ROLE_SELLER",
    "ROLE_USER",
    "ROLES",
    "STATUS_PENDING",
    "STATUS_APPROVED",
    "STATUS_REJECTED",
    "APPLICATION_STATUSES",
    "User",
    "SellerApplication",
    "Product",
    "ActivityEntry",
    "utcnow",
    "serialize_timestamp",
    "parse_timestamp",
    "web_link",
]
