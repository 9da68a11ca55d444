#!/usr/bin/env python3
"""
reliefauth -- Unified authentication and session coordination for the
disaster-response client.

Usage:
  python main.py health
  python main.py request GET /users --email asha@example.org --password secret
  python main.py request POST /emergency --data '{"type": "flood"}' --direct-user user --password pw
  python main.py --verbose request GET /volunteers --direct-user admin --password pw

Environment variables (or .env):
  BACKEND_BASE_URL          REST backend root, e.g. http://localhost:8080/api
  SERVICE_ACCOUNT_PASSWORD  Required unless DEBUG=true.
  FIREBASE_API_KEY          Required for --email sign-in.
"""

import argparse
import json
import logging
import sys
from typing import Any, Optional

from api.client import ApiRequest, RequestExecutor
from auth.session import SessionCoordinator
from cache.store import CredentialCache
from core.config import Settings, get_settings
from core.errors import ReliefAuthError, user_message
from core.models import SessionState
from identity.base import IdentityProvider
from identity.firebase import FirebaseIdentityProvider
from profiles.store import ProfileStore

logger = logging.getLogger("reliefauth.cli")


class _SignedOutProvider(IdentityProvider):
    """Placeholder for direct-backend runs when no identity provider is configured."""

    def sign_in(self, email: str, password: str):
        raise ReliefAuthError("No identity provider is configured. Set FIREBASE_API_KEY.")

    def sign_up(self, email: str, password: str, display_name: Optional[str] = None):
        raise ReliefAuthError("No identity provider is configured. Set FIREBASE_API_KEY.")

    def sign_out(self) -> None:
        self._emit(None)


def build_coordinator(settings: Optional[Settings] = None) -> SessionCoordinator:
    """Wire the identity provider, stores, and coordinator from settings."""
    cfg = settings or get_settings()
    cache = CredentialCache(cfg.credential_cache_url)
    profiles = ProfileStore(cfg.profile_store_url, cache=cache)
    identity: IdentityProvider
    if cfg.firebase_api_key:
        identity = FirebaseIdentityProvider.from_settings(cfg)
    else:
        identity = _SignedOutProvider()
    return SessionCoordinator(identity, profiles, cache, settings=cfg)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def _log_state(state: SessionState) -> None:
    who = state.profile.name if state.profile else "-"
    logger.info("Session is now %s (%s)", state.status.value, who)


def _cmd_health(executor: RequestExecutor) -> int:
    _print_json({"health": executor.check_health(), "database": executor.check_database_health()})
    return 0


def _cmd_request(coordinator: SessionCoordinator, executor: RequestExecutor, args: argparse.Namespace) -> int:
    data = json.loads(args.data) if args.data else None
    if args.email:
        state = coordinator.login(args.email, args.password)
    else:
        state = coordinator.login_direct(args.direct_user, args.password)
    if not state.is_authenticated:
        error = coordinator.consume_error()
        print(f"  [!] {user_message(error) or 'Sign-in did not complete.'}", file=sys.stderr)
        return 1
    try:
        resp = executor.execute(ApiRequest(args.method.upper(), args.path, json=data))
        if resp.content:
            _print_json(resp.json())
    finally:
        coordinator.logout()
    return 0


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reliefauth",
        description="Sign in and call the disaster-response REST backend.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Check backend and database health (no sign-in).")

    req = sub.add_parser("request", help="Sign in, make one authenticated call, sign out.")
    req.add_argument("method", help="HTTP method, e.g. GET or POST.")
    req.add_argument("path", help="Path under the backend base URL, e.g. /users.")
    req.add_argument("--data", help="JSON request body.")
    who = req.add_mutually_exclusive_group(required=True)
    who.add_argument("--email", help="Sign in through the identity provider.")
    who.add_argument("--direct-user", help="Authenticate directly against the backend.")
    req.add_argument("--password", required=True)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    coordinator = build_coordinator()
    coordinator.add_listener(_log_state)
    coordinator.start()
    executor = RequestExecutor(coordinator)
    try:
        if args.command == "health":
            return _cmd_health(executor)
        return _cmd_request(coordinator, executor, args)
    except json.JSONDecodeError as exc:
        print(f"  [!] --data is not valid JSON: {exc}", file=sys.stderr)
        return 2
    except ReliefAuthError as exc:
        print(f"  [!] {user_message(exc)}", file=sys.stderr)
        return 1
    finally:
        coordinator.stop()


if __name__ == "__main__":
    sys.exit(main())
