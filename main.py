#!/usr/bin/env python3
"""
SessionGate -- administrative command line.

Usage:
  python main.py create-user admin admin@example.com "Site Admin"
  python main.py create-user jdoe jdoe@example.com "Jane Doe" --level 1
  python main.py purge-tokens
  python main.py purge-tokens --retention-days 0

Environment variables:
  SECRET_KEY     Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL   SQLAlchemy URL of the credential store (default: ./sessiongate.db)
"""

import argparse
import getpass
import sys
from datetime import timedelta
from typing import Optional

from pydantic import ValidationError

from api.main import build_components
from api.models import UserCreate
from auth.errors import AuthError
from auth.models import MAX_LEVEL, MIN_LEVEL
from auth.policy import check_password
from core.config import get_settings


def _read_password() -> Optional[str]:
    """Prompt twice without echo. Returns None when the entries differ or fail the policy."""
    password = getpass.getpass("Password: ")
    confirm = getpass.getpass("Confirm password: ")
    if password != confirm:
        print("  [!] Passwords do not match.")
        return None
    problems = check_password(password)
    if problems:
        for problem in problems:
            print(f"  [!] {problem}")
        return None
    return password


def cmd_create_user(args: argparse.Namespace) -> int:
    """Create an active principal that does not need a password change.

    Intended for bootstrapping the first administrator.
    """
    password = _read_password()
    if password is None:
        return 1
    try:
        body = UserCreate(
            username=args.username,
            email=args.email,
            fullname=args.fullname,
            password=password,
            level=args.level,
        )
    except ValidationError as exc:
        for err in exc.errors():
            print(f"  [!] {'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
        return 1
    store, _, accounts = build_components(get_settings())
    try:
        principal = accounts.create(
            username=body.username,
            email=body.email,
            fullname=body.fullname,
            password=body.password,
            level=body.level,
            active=True,
            must_change_password=False,
        )
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()
    print(f"Created {principal.username} (id {principal.id}, level {principal.level}).")
    return 0


def cmd_purge_tokens(args: argparse.Namespace) -> int:
    settings = get_settings()
    retention_days = settings.refresh_record_retention_days if args.retention_days is None else args.retention_days
    store, sessions, _ = build_components(settings)
    try:
        count = sessions.purge_expired(timedelta(days=retention_days))
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()
    print(f"Purged {count} refresh record(s) expired more than {retention_days} day(s) ago.")
    return 0


def _level(value: str) -> int:
    level = int(value)
    if not MIN_LEVEL <= level <= MAX_LEVEL:
        raise argparse.ArgumentTypeError(f"level must be between {MIN_LEVEL} and {MAX_LEVEL}")
    return level


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sessiongate",
        description="Administrative commands for the SessionGate credential store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user admin admin@example.com "Site Admin"
  python main.py purge-tokens --retention-days 7
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-user", help="Create an active principal (prompts for the password)")
    create.add_argument("username", help="Login name, 4-20 characters")
    create.add_argument("email", help="Email address, also accepted as a login identifier")
    create.add_argument("fullname", help="Display name")
    create.add_argument(
        "--level",
        type=_level,
        default=MAX_LEVEL,
        metavar="N",
        help=f"Role level {MIN_LEVEL}-{MAX_LEVEL} (default: {MAX_LEVEL}, full administrator)",
    )
    create.set_defaults(func=cmd_create_user)

    purge = sub.add_parser("purge-tokens", help="Delete refresh records that expired long ago")
    purge.add_argument(
        "--retention-days",
        type=int,
        default=None,
        metavar="DAYS",
        help="Keep records for this many days after expiry (default: REFRESH_RECORD_RETENTION_DAYS)",
    )
    purge.set_defaults(func=cmd_purge_tokens)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
