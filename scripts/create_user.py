import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ctfadmin.config import load_settings, resolve_database_path
from ctfadmin.database import Database
from ctfadmin.models import Role


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a CTF administration user")
    parser.add_argument("username", help="Unique user name")
    parser.add_argument("email", nargs="?", default=None, help="Optional unique email address")
    parser.add_argument(
        "--admin",
        action="store_true",
        help="Grant the Admin role so the account can use the administration API",
    )
    parser.add_argument("--real-name", default="", help="Real name shown to administrators")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to CTFADMIN_DB_PATH or data/ctfadmin.sqlite3)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    if args.db_path:
        db_path = resolve_database_path(args.db_path)
    else:
        db_path = load_settings().database_path

    database = Database(db_path)
    database.initialize()

    role = Role.ADMIN if args.admin else Role.USER
    try:
        user, api_key = database.create_user(
            args.username,
            args.email,
            role=role,
            real_name=args.real_name.strip(),
        )
    except ValueError as exc:  # duplicates, etc.
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created {user.role.value} #{user.id}: {user.username} <{user.email or 'no email set'}>")
    print(f"API key (shown once): {api_key}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
