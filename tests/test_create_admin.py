"""Tests for the administrator bootstrap script."""

from __future__ import annotations

import importlib.util
import sys
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portal.auth import AuthProvider
from portal.database import Database
from portal.guard import SessionGuard
from portal.store import DocumentStore


def _load_script():
    spec = importlib.util.spec_from_file_location("create_admin", ROOT / "scripts" / "create_admin.py")
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class CreateAdminTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.database = Database(Path(self._tmp.name) / "portal.sqlite3")
        self.database.initialize()
        self.script = _load_script()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_created_admin_passes_the_guard(self) -> None:
        uid = self.script.create_admin(self.database, "root@example.com", "a-long-password", "Root")

        account = AuthProvider(self.database).sign_in("root@example.com", "a-long-password")
        self.assertIsNotNone(account)
        self.assertEqual(account.uid, uid)

        result = SessionGuard(DocumentStore(self.database)).authorize(uid)
        self.assertTrue(result.authorized)
        self.assertEqual(result.identity.roles, ("admin", "user"))

    def test_duplicate_email_is_rejected(self) -> None:
        self.script.create_admin(self.database, "root@example.com", "a-long-password")
        with self.assertRaises(ValueError):
            self.script.create_admin(self.database, "root@example.com", "another-password")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
