"""Account service: credentials and sign-in metadata."""
from __future__ import annotations

import logging
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from passlib.context import CryptContext

from .database import Database
from .models import parse_timestamp, serialize_timestamp, utcnow

logger = logging.getLogger("marketplace.portal.auth")

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_UID_BYTES = 21


class AuthError(Exception):
    """Raised when the account service cannot complete a request."""


class AccountNotFound(AuthError):
    def __init__(self, uid: str) -> None:
        super().__init__(f"No account exists for uid {uid}")
        self.uid = uid


@dataclass(frozen=True)
class Account:
    uid: str
    email: str
    display_name: Optional[str]
    disabled: bool
    created_at: datetime
    last_sign_in_at: Optional[datetime]


@dataclass(frozen=True)
class AccountMetadata:
    creation_time: datetime
    last_sign_in_time: Optional[datetime]


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthProvider:
    """Email/password accounts stored next to the document collections."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def create_account(
        self,
        email: str,
        password: str,
        *,
        display_name: Optional[str] = None,
        uid: Optional[str] = None,
    ) -> Account:
        if not password:
            raise ValueError("Password must not be empty")
        normalized = _normalize_email(email)
        if not normalized:
            raise ValueError("Email must not be empty")

        account_uid = uid or secrets.token_urlsafe(_UID_BYTES)
        created_at = utcnow()
        try:
            with self._database.connect() as conn:
                conn.execute(
                    """
                    INSERT INTO accounts (uid, email, display_name, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        account_uid,
                        normalized,
                        display_name,
                        _hash_password(password),
                        serialize_timestamp(created_at),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ValueError("An account with this email or uid already exists") from exc
        except sqlite3.Error as exc:
            raise AuthError(f"Failed to create account: {exc}") from exc

        logger.info("Created account %s for %s", account_uid, normalized)
        return Account(
            uid=account_uid,
            email=normalized,
            display_name=display_name,
            disabled=False,
            created_at=created_at,
            last_sign_in_at=None,
        )

    def sign_in(self, email: str, password: str) -> Optional[Account]:
        """Verify credentials and record the sign-in time."""

        normalized = _normalize_email(email)
        try:
            with self._database.connect() as conn:
                row = conn.execute(
                    "SELECT * FROM accounts WHERE email = ?",
                    (normalized,),
                ).fetchone()
                if row is None or bool(row["disabled"]):
                    return None
                if not _verify_password(password, str(row["password_hash"])):
                    return None
                signed_in_at = serialize_timestamp(utcnow())
                conn.execute(
                    "UPDATE accounts SET last_sign_in_at = ? WHERE uid = ?",
                    (signed_in_at, row["uid"]),
                )
        except sqlite3.Error as exc:
            raise AuthError(f"Sign-in lookup failed: {exc}") from exc

        account = self._row_to_account(row)
        return Account(
            uid=account.uid,
            email=account.email,
            display_name=account.display_name,
            disabled=account.disabled,
            created_at=account.created_at,
            last_sign_in_at=parse_timestamp(signed_in_at),
        )

    def get_account(self, uid: str) -> Account:
        try:
            with self._database.connect() as conn:
                row = conn.execute("SELECT * FROM accounts WHERE uid = ?", (uid,)).fetchone()
        except sqlite3.Error as exc:
            raise AuthError(f"Account lookup failed: {exc}") from exc
        if row is None:
            raise AccountNotFound(uid)
        return self._row_to_account(row)

    def get_account_metadata(self, uid: str) -> AccountMetadata:
        account = self.get_account(uid)
        return AccountMetadata(
            creation_time=account.created_at,
            last_sign_in_time=account.last_sign_in_at,
        )

    def _row_to_account(self, row: sqlite3.Row) -> Account:
        created_at = parse_timestamp(row["created_at"])
        assert created_at is not None
        return Account(
            uid=str(row["uid"]),
            email=str(row["email"]),
            display_name=row["display_name"],
            disabled=bool(row["disabled"]),
            created_at=created_at,
            last_sign_in_at=parse_timestamp(row["last_sign_in_at"]),
        )


__all__ = [
    "Account",
    "AccountMetadata",
    "AccountNotFound",
    "AuthError",
    "AuthProvider",
]
