#!/usr/bin/env python3
"""
authbridge -- Session-backed authentication over a pluggable identity provider.

Usage:
  python main.py serve [--host HOST] [--port PORT] [--reload]
  python main.py create-account EMAIL PASSWORD [--role ROLE] [--name NAME]
  python main.py exists EMAIL

Environment variables (see core/config.py for the full list):
  SECRET_KEY                 Session/JWT signing key, >= 32 chars. Required unless DEBUG=true.
  AUTH_BACKEND               "identity" (default) or "local".
  IDENTITY_API_KEY           API key for the hosted identity provider.
  IDENTITY_EMULATOR_HOST     host:port of a local Auth emulator, e.g. localhost:9099.
  DATABASE_URL               SQLAlchemy URL for local accounts and profiles.
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

from auth.models import AuthUser
from auth.providers import build_auth
from auth.session import CookieSessionManager
from core.config import Settings, get_settings
from profiles.controllers import UserController
from profiles.models import UserProfile
from profiles.store import SQLDocumentStore


async def _create_account(settings: Settings, email: str, password: str, role: Optional[str], name: Optional[str]) -> int:
    """Register an account and its profile. Returns the process exit code.

    The profile is what carries the role for identity-provider accounts, so
    an admin can be provisioned here before anyone logs in.
    """
    auth = build_auth(settings, CookieSessionManager(settings))
    db = SQLDocumentStore(settings.database_url)
    try:
        resp = await auth.create_account(AuthUser(username=email, password=password, role=role, name=name))
        body = json.loads(resp.body)
        if resp.status_code != 201:
            print(f"  [!] {body['errorCode']}: {body['errorMessage']}")
            return 1
        identity = body["user"]
        UserController(db).create(
            UserProfile(
                id=identity["uid"],
                username=identity["email"],
                role=role or identity.get("role") or settings.default_role,
                preferences={"theme": "dark"},
            )
        )
        print(json.dumps(identity, indent=2))
        return 0
    finally:
        await auth.aclose()
        db.close()


async def _exists(settings: Settings, email: str) -> int:
    auth = build_auth(settings, CookieSessionManager(settings))
    try:
        registered = await auth.exists(AuthUser(username=email))
    finally:
        await auth.aclose()
    print("registered" if registered else "not registered")
    return 0 if registered else 1


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="authbridge",
        description="Run the authbridge API or provision accounts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  AUTH_BACKEND=local python main.py create-account admin@example.com s3cret --role admin
  IDENTITY_EMULATOR_HOST=localhost:9099 python main.py exists test@example.com
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    create = sub.add_parser("create-account", help="Register an account and its profile")
    create.add_argument("email")
    create.add_argument("password")
    create.add_argument("--role", default=None, help="Profile role (default: DEFAULT_ROLE)")
    create.add_argument("--name", default=None, help="Display name (local backend only)")

    exists = sub.add_parser("exists", help="Exit 0 if the email is registered, 1 otherwise")
    exists.add_argument("email")

    args = parser.parse_args()

    if args.command == "serve":
        import uvicorn

        uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
        return

    if args.command is None:
        parser.print_help()
        return

    settings = get_settings()
    if args.command == "create-account":
        code = asyncio.run(_create_account(settings, args.email, args.password, args.role, args.name))
    else:
        code = asyncio.run(_exists(settings, args.email))
    sys.exit(code)


if __name__ == "__main__":
    main()
