#!/usr/bin/env python3
"""
Gatehouse -- operator command line.

Usage:
  python main.py serve [--host 127.0.0.1] [--port 8000] [--reload]
  python main.py create-user admin@example.com --admin --verified
  python main.py create-user ops@example.com --role MODERATOR
  python main.py grant-role ops@example.com ADMIN
  python main.py revoke-role ops@example.com ADMIN

create-user reads the password from the GATEHOUSE_PASSWORD environment
variable if set, otherwise prompts for it (never from argv, which ends up in
shell history and process listings).

Environment variables: see core/config.py (SECRET_KEY, DATABASE_URL, ...).
"""

import argparse
import getpass
import os
import sys

from auth.errors import AuthError
from auth.models import ROLE_ADMIN, ROLE_USER
from auth.service import build_auth_service
from auth.store import UserStore
from core.config import get_settings


def _read_password() -> str:
    password = os.environ.get("GATEHOUSE_PASSWORD")
    if password:
        return password
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        raise SystemExit("Passwords do not match.")
    return password


def _unknown_roles(store: UserStore, roles: list[str]) -> bool:
    """Print an error naming the valid roles if any of roles is not seeded."""
    known = store.role_names()
    unknown = [r for r in roles if r not in known]
    if unknown:
        print(f"Unknown role: {', '.join(unknown)}. Known roles: {', '.join(known)}", file=sys.stderr)
    return bool(unknown)


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _cmd_create_user(args: argparse.Namespace, store: UserStore) -> int:
    password = _read_password()
    if len(password) < 6:
        print("Password must be at least 6 characters.", file=sys.stderr)
        return 1
    roles = [ROLE_USER]
    if args.admin:
        roles.append(ROLE_ADMIN)
    roles.extend(r.upper() for r in args.role if r.upper() not in roles)
    if _unknown_roles(store, roles):
        return 1
    service = build_auth_service(get_settings(), store)
    identity = service.provision(args.email, password, roles=tuple(roles), verified=args.verified)
    print(f"Created user {identity.id} <{identity.email}> roles={','.join(identity.roles)}")
    return 0


def _cmd_role(args: argparse.Namespace, store: UserStore) -> int:
    identity = store.get_by_email(args.email)
    if identity is None:
        print(f"No such user: {args.email}", file=sys.stderr)
        return 1
    role = args.role.upper()
    if _unknown_roles(store, [role]):
        return 1
    service = build_auth_service(get_settings(), store)
    change = service.grant_role if args.command == "grant-role" else service.revoke_role
    profile = change(identity.id, role)
    print(f"User {profile.id} <{profile.email}> roles={','.join(profile.roles)}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gatehouse",
        description="Gatehouse -- registration, verification, 2FA login and role-gated access.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")

    create = sub.add_parser("create-user", help="Create an account without sending mail")
    create.add_argument("email")
    create.add_argument("--admin", action="store_true", help="Also grant the ADMIN role")
    create.add_argument("--role", action="append", default=[], help="Extra role (repeatable)")
    create.add_argument("--verified", action="store_true", help="Mark the email as already verified")

    for name in ("grant-role", "revoke-role"):
        cmd = sub.add_parser(name, help=f"{name.split('-')[0].capitalize()} a role")
        cmd.add_argument("email")
        cmd.add_argument("role")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.command == "serve":
        return _cmd_serve(args)

    store = UserStore(db_url=get_settings().database_url)
    try:
        if args.command == "create-user":
            return _cmd_create_user(args, store)
        return _cmd_role(args, store)
    except AuthError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
