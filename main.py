#!/usr/bin/env python3
"""
Session Authority -- operator command line.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py serve --reload
  python main.py init-db
  python main.py set-active alice@x.com --disable
  python main.py set-active alice@x.com --enable

Environment variables (see core/config.py for the full list):
  ACCESS_TOKEN_SECRET    Access-token signing secret (>= 32 chars). Required unless DEBUG=true.
  REFRESH_TOKEN_SECRET   Refresh-token signing secret (>= 32 chars, must differ). Required unless DEBUG=true.
  DATABASE_URL           SQLAlchemy URL of the users database.

Exit codes: 0 success, 1 user not found, 2 usage error.
"""

import argparse
import logging
import sys
from typing import Optional

from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("authority.cli")


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _cmd_init_db(args: argparse.Namespace) -> int:
    settings = get_settings()
    # UserStore creates the schema on construction.
    store = UserStore(settings.database_url)
    store.close()
    print(f"  Database ready: {settings.database_url}")
    return 0


def _cmd_set_active(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        user = store.get_by_email(args.email)
        if user is None:
            print(f"  [!] No user with email '{args.email}'.")
            return 1
        store.set_active(user.id, args.enable)
        if not args.enable:
            # A disabled account must not keep a usable refresh token.
            store.update_refresh_token(user.id, None, None)
    finally:
        store.close()
    state = "enabled" if args.enable else "disabled"
    logger.info("User id=%s %s from CLI", user.id, state)
    print(f"  User '{args.email}' {state}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authority",
        description="Session Authority -- user registration and token sessions.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only).")
    serve.set_defaults(func=_cmd_serve)

    init_db = sub.add_parser("init-db", help="Create the users table if it does not exist.")
    init_db.set_defaults(func=_cmd_init_db)

    set_active = sub.add_parser("set-active", help="Enable or disable login for a user.")
    set_active.add_argument("email")
    group = set_active.add_mutually_exclusive_group(required=True)
    group.add_argument("--enable", dest="enable", action="store_true")
    group.add_argument("--disable", dest="enable", action="store_false")
    set_active.set_defaults(func=_cmd_set_active)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
