"""Unit tests for auth/store.py -- identity repository and challenge columns.

Covers:
- create_identity() normalizes email, assigns USER, rejects duplicates
- Lookups by email are case-insensitive; snapshots are immutable
- update_fields() whitelists columns
- Role grant/revoke and unknown-role handling
- Conditional challenge consumption: only the caller holding the current
  secret wins
"""

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import ConflictError, NotFoundError
from auth.models import ROLE_ADMIN, ROLE_MODERATOR, ROLE_USER
from auth.store import UserStore

_LATER = datetime(2030, 1, 1, tzinfo=timezone.utc)


class TestIdentities:
    def test_create_defaults(self, store: UserStore) -> None:
        identity = store.create_identity("  Alice@Example.COM ", "hash")
        assert identity.email == "alice@example.com"
        assert identity.email_verified is False
        assert identity.two_factor_enabled is False
        assert identity.is_active is True
        assert identity.roles == (ROLE_USER,)
        assert identity.created_at

    def test_duplicate_email_conflicts(self, store: UserStore) -> None:
        store.create_identity("a@x.com", "hash")
        with pytest.raises(ConflictError):
            store.create_identity("A@x.com", "hash")

    def test_unknown_role_on_create_rolls_back(self, store: UserStore) -> None:
        with pytest.raises(NotFoundError):
            store.create_identity("a@x.com", "hash", roles=("NOPE",))
        assert store.get_by_email("a@x.com") is None

    def test_lookup_by_email_and_id(self, store: UserStore) -> None:
        created = store.create_identity("a@x.com", "hash")
        assert store.get_by_email("A@X.COM") == created
        assert store.get_by_id(created.id) == created
        assert store.get_by_id(9999) is None
        assert store.get_by_email("nobody@x.com") is None

    def test_snapshots_are_frozen(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        with pytest.raises(dataclasses.FrozenInstanceError):
            identity.email_verified = True  # type: ignore[misc]

    def test_update_fields(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        assert store.update_fields(identity.id, two_factor_enabled=True) is True
        assert store.get_by_id(identity.id).two_factor_enabled is True
        assert store.update_fields(9999, is_active=False) is False

    def test_update_fields_rejects_challenge_columns(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        with pytest.raises(ValueError):
            store.update_fields(identity.id, two_factor_code="123456")

    def test_list_identities_sorted_by_email(self, store: UserStore) -> None:
        store.create_identity("b@x.com", "hash")
        store.create_identity("a@x.com", "hash")
        assert [i.email for i in store.list_identities()] == ["a@x.com", "b@x.com"]

    def test_ping(self, store: UserStore) -> None:
        assert store.ping() is True


class TestRoles:
    def test_default_roles_seeded(self, store: UserStore) -> None:
        assert store.role_names() == [ROLE_ADMIN, ROLE_MODERATOR, ROLE_USER]

    def test_seeding_is_idempotent(self, store: UserStore) -> None:
        store._ensure_roles()
        assert store.role_names() == [ROLE_ADMIN, ROLE_MODERATOR, ROLE_USER]

    def test_grant_and_revoke(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        assert store.grant_role(identity.id, ROLE_ADMIN) is True
        assert store.grant_role(identity.id, ROLE_ADMIN) is False
        assert store.get_by_id(identity.id).roles == (ROLE_ADMIN, ROLE_USER)
        assert store.revoke_role(identity.id, ROLE_ADMIN) is True
        assert store.revoke_role(identity.id, ROLE_ADMIN) is False
        assert store.get_by_id(identity.id).roles == (ROLE_USER,)

    def test_unknown_role_or_user(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        with pytest.raises(NotFoundError):
            store.grant_role(identity.id, "SUPERUSER")
        with pytest.raises(NotFoundError):
            store.grant_role(9999, ROLE_ADMIN)


class TestEmailChallengeColumns:
    def test_set_and_get(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        store.set_email_challenge(identity.id, "tok", _LATER)
        challenge = store.get_email_challenge("tok")
        assert challenge.user_id == identity.id
        assert challenge.expires_at == _LATER

    def test_new_token_replaces_old(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        store.set_email_challenge(identity.id, "old", _LATER)
        store.set_email_challenge(identity.id, "new", _LATER)
        assert store.get_email_challenge("old") is None
        assert store.get_email_challenge("new") is not None

    def test_consume_is_single_use(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        store.set_email_challenge(identity.id, "tok", _LATER)
        assert store.consume_email_challenge(identity.id, "tok") is True
        assert store.consume_email_challenge(identity.id, "tok") is False
        assert store.get_by_id(identity.id).email_verified is True
        assert store.get_email_challenge("tok") is None

    def test_consume_with_stale_token_loses(self, store: UserStore) -> None:
        """A consumer that read the old token cannot win after a resend replaced it."""
        identity = store.create_identity("a@x.com", "hash")
        store.set_email_challenge(identity.id, "old", _LATER)
        store.set_email_challenge(identity.id, "new", _LATER)
        assert store.consume_email_challenge(identity.id, "old") is False
        assert store.get_by_id(identity.id).email_verified is False


class TestTwoFactorColumns:
    def test_conditional_clear(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        store.set_two_factor_challenge(identity.id, "123456", _LATER)
        assert store.clear_two_factor_challenge(identity.id, expected_code="999999") is False
        assert store.get_two_factor_challenge(identity.id).code == "123456"
        assert store.clear_two_factor_challenge(identity.id, expected_code="123456") is True
        assert store.clear_two_factor_challenge(identity.id, expected_code="123456") is False
        assert store.get_two_factor_challenge(identity.id) is None

    def test_expiry_round_trips_as_utc(self, store: UserStore) -> None:
        identity = store.create_identity("a@x.com", "hash")
        expires = datetime.now(timezone.utc) + timedelta(minutes=5)
        store.set_two_factor_challenge(identity.id, "123456", expires)
        assert store.get_two_factor_challenge(identity.id).expires_at == expires
