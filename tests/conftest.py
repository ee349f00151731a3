"""
tests/conftest.py -- Shared test fixtures for Gatehouse unit and integration tests.

This module provides:
  - RecordingNotifier: captures every verification token / 2FA code "sent"
  - FakeClock: a settable clock injected into ChallengeStore for TTL tests
  - store / service / issuer: unit-level fixtures over an in-memory SQLite store
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient because it runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

DEBUG and BCRYPT_ROUNDS must be set before any project import: get_settings()
is cached on first call, and auth/passwords.py reads the cost factor at load.
"""

from __future__ import annotations

import os

# CRITICAL: Set before any auth/core import so get_settings() auto-generates
# SECRET_KEY in dev mode and bcrypt runs at its cheapest cost.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.challenges import ChallengeStore
from auth.errors import NotificationError
from auth.generator import SecretGenerator
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import get_settings

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingNotifier:
    """Notifier that remembers what it was asked to deliver.

    Set fail=True to simulate an unreachable mail transport.
    """

    is_configured = True

    def __init__(self) -> None:
        self.verifications: list[tuple[str, str]] = []
        self.codes: list[tuple[str, str]] = []
        self.fail = False

    def send_verification(self, email: str, token: str) -> None:
        if self.fail:
            raise NotificationError()
        self.verifications.append((email, token))

    def send_two_factor_code(self, email: str, code: str) -> None:
        if self.fail:
            raise NotificationError()
        self.codes.append((email, code))

    def last_token(self, email: str) -> str:
        return [t for e, t in self.verifications if e == email][-1]

    def last_code(self, email: str) -> str:
        return [c for e, c in self.codes if e == email][-1]


class FakeClock:
    """Callable clock frozen at `now` until advanced."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(get_settings().secret_key, full_ttl=timedelta(hours=1))


@pytest.fixture
def challenges(store: UserStore, clock: FakeClock) -> ChallengeStore:
    return ChallengeStore(store, SecretGenerator(), clock=clock)


@pytest.fixture
def service(
    store: UserStore, challenges: ChallengeStore, issuer: TokenIssuer, notifier: RecordingNotifier
) -> AuthService:
    return AuthService(store, challenges, issuer, notifier)


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(store: UserStore, notifier: RecordingNotifier):
    """Return an async context manager that replaces the real lifespan.

    Wires a test store and the recording notifier into app.state so routes
    see an isolated DB and no mail leaves the process.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.auth_service = AuthService(
            store,
            ChallengeStore(store, SecretGenerator()),
            TokenIssuer(get_settings().secret_key),
            notifier,
        )
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, RecordingNotifier, UserStore], None, None]:
    """Yield (client, notifier, store) for API integration tests.

    Each test module gets its own named in-memory DB so modules don't share
    accounts. Tests inside a module should use distinct email addresses.
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    store = UserStore(db_url=f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    notifier = RecordingNotifier()

    app.router.lifespan_context = _patch_lifespan(store, notifier)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, notifier, store

    store.close()

