from __future__ import annotations

import pytest

from portal.auth import AccountNotFound, AuthProvider
from portal.database import Database


def test_create_and_sign_in(database: Database) -> None:
    provider = AuthProvider(database)
    account = provider.create_account("Admin@Example.com ", "correct horse battery", display_name="Admin")

    assert account.email == "admin@example.com"
    assert account.last_sign_in_at is None

    assert provider.sign_in("admin@example.com", "wrong") is None
    assert provider.sign_in("nobody@example.com", "correct horse battery") is None

    signed_in = provider.sign_in("ADMIN@example.com", "correct horse battery")
    assert signed_in is not None
    assert signed_in.uid == account.uid
    assert signed_in.last_sign_in_at is not None

    metadata = provider.get_account_metadata(account.uid)
    assert metadata.creation_time == account.created_at
    assert metadata.last_sign_in_time == signed_in.last_sign_in_at


def test_duplicate_email_is_rejected(database: Database) -> None:
    provider = AuthProvider(database)
    provider.create_account("seller@example.com", "secret-password")
    with pytest.raises(ValueError):
        provider.create_account("seller@example.com", "another-password")


def test_password_is_not_stored_in_plain_text(database: Database) -> None:
    provider = AuthProvider(database)
    account = provider.create_account("plain@example.com", "visible-secret", uid="fixed-uid")
    assert account.uid == "fixed-uid"

    with database.connect() as conn:
        stored = conn.execute("SELECT password_hash FROM accounts WHERE uid = ?", ("fixed-uid",)).fetchone()[0]
    assert "visible-secret" not in stored
    assert stored.startswith("$pbkdf2-sha256$")


def test_disabled_accounts_cannot_sign_in(database: Database) -> None:
    provider = AuthProvider(database)
    account = provider.create_account("blocked@example.com", "secret-password")
    with database.connect() as conn:
        conn.execute("UPDATE accounts SET disabled = 1 WHERE uid = ?", (account.uid,))

    assert provider.sign_in("blocked@example.com", "secret-password") is None


def test_unknown_account_lookup_raises(database: Database) -> None:
    with pytest.raises(AccountNotFound):
        AuthProvider(database).get_account_metadata("ghost")
