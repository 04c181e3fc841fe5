import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portal.auth import AuthProvider
from portal.config import load_settings
from portal.database import Database
from portal.models import ROLE_ADMIN, ROLE_USER, utcnow
from portal.store import DocumentStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a marketplace administrator account")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument("--name", default=None, help="Display name for the administrator")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (defaults to PORTAL_CONFIG when set)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < 12:
            print("Password must be at least 12 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def create_admin(database: Database, email: str, password: str, display_name: str | None = None) -> str:
    """Create the account and its ``users`` document; return the uid."""

    account = AuthProvider(database).create_account(email, password, display_name=display_name)
    DocumentStore(database).set(
        "users",
        account.uid,
        {
            "email": account.email,
            "displayName": display_name or "",
            "roles": [ROLE_ADMIN, ROLE_USER],
            "emailVerified": True,
            "disabled": False,
            "createdAt": account.created_at,
            "updatedAt": utcnow(),
        },
    )
    return account.uid


def main() -> int:
    args = parse_args()
    settings = load_settings(Path(args.config) if args.config else None)
    password = prompt_for_password()

    database = Database(settings.database_path)
    database.initialize()

    try:
        uid = create_admin(database, args.email.strip().lower(), password, args.name)
    except ValueError as exc:  # duplicates, etc.
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created administrator {uid} <{args.email.strip().lower()}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
