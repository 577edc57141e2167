#!/usr/bin/env python3
"""
Backoffice -- user authentication and account administration API.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py create-user admin@example.com --role admin --name "Site Admin"

create-user prompts for the password (twice) unless --password is given.
It is the bootstrap path for the first admin: the HTTP API only lets an
existing admin grant the admin role.

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Token signing key, >= 32 chars. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL. Defaults to a SQLite file under auth/.
  JWT_ISSUER     Issuer claim stamped into and required on every token.
"""

import argparse
import getpass
import sys

from auth.errors import AuthError
from auth.store import UserStore
from auth.users import UserAdminService, UserCreate
from core.config import get_settings


def _read_password(provided: str | None) -> str:
    if provided:
        return provided
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return first


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = UserStore(settings.sqlalchemy_url, timeout=settings.db_timeout_seconds)
    try:
        service = UserAdminService(store)
        user = service.create(
            UserCreate(
                email=args.email,
                password=_read_password(args.password),
                name=args.name,
                role=args.role,
            )
        )
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()
    print(f"  Created {user.role.value} {user.email} ({user.id})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backoffice authentication API.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8080)
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development).")
    serve.set_defaults(func=cmd_serve)

    create = sub.add_parser("create-user", help="Create an account directly in the store.")
    create.add_argument("email")
    create.add_argument("--name", default="")
    create.add_argument("--role", default="user", help='"user" (default) or "admin".')
    create.add_argument("--password", default=None, help="Omit to be prompted.")
    create.set_defaults(func=cmd_create_user)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
