#!/usr/bin/env python3
"""
msgboard -- Message board backend, operator command line.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 4000
  python main.py set-role alice admin
  python main.py set-role alice user

The HTTP API never changes a user's role. Admins are created here, by an
operator with access to the database. A user's existing token keeps its old
role until it expires (at most TOKEN_EXPIRE_SECONDS); GET /api/user shows
the new role immediately.

Environment variables:
  SECRET_KEY     JWT signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL. Defaults to a SQLite file next to the code.
  CORS_ORIGIN    Extra browser origin allowed to call the API.
"""

import argparse
import sys

from auth.models import ROLE_ADMIN, ROLE_USER
from auth.store import UserStore
from core.config import get_settings


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _set_role(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        user = store.get_by_username(args.username)
        if user is None:
            print(f"  [!] No user named '{args.username}'.")
            return 1
        if user.role == args.role:
            print(f"  {user.username} already has role '{args.role}'.")
            return 0
        store.set_role(user.id, args.role)
        print(f"  {user.username}: {user.role} -> {args.role}")
        print("  Existing sessions keep the old role until their token expires.")
        return 0
    finally:
        store.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="msgboard",
        description="Message board backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --port 4000
  python main.py set-role alice admin
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=4000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(func=_serve)

    set_role = sub.add_parser("set-role", help="Promote a user to admin or demote back to user")
    set_role.add_argument("username")
    set_role.add_argument("role", choices=[ROLE_ADMIN, ROLE_USER])
    set_role.set_defaults(func=_set_role)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
