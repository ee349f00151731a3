"""
auth/store.py -- SQLAlchemy Core persistence layer for identities and roles.

Pattern: Repository + Data Mapper. UserStore is the repository;
_row_to_identity / _row_to_*_challenge are the mappers. Services never touch
SQL directly, and every read returns a frozen snapshot from auth/models.py.

Atomicity:
  Challenge consumption is a conditional UPDATE whose WHERE clause repeats the
  secret the caller observed (token or code). Two concurrent consumers can
  both read a live challenge, but only one UPDATE matches a row; the other
  sees rowcount == 0 and loses. No SELECT ... FOR UPDATE, no app-level locks.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are trimmed and lower-cased before every write and lookup.

DB path: auth/gatehouse_auth.db unless Settings.database_url says otherwise.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError, NotFoundError
from auth.models import DEFAULT_ROLES, ROLE_USER, EmailChallenge, Identity, TwoFactorChallenge

logger = logging.getLogger("gatehouse.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("two_factor_enabled", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
    # Live challenge state. NULL = no live challenge. At most one of each per user.
    Column("email_verification_token", String(255), unique=True),
    Column("email_verification_expires", String(40)),
    Column("two_factor_code", String(16)),
    Column("two_factor_expires", String(40)),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
    Column("description", Text),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and FK enforcement on every new SQLite connection.

    SQLite PRAGMAs are per-connection, so they must be set in the connect
    hook rather than once at startup.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Identity records, their roles, and their live challenges.

    Usage:
        store = UserStore("sqlite:///:memory:")
        identity = store.create_identity("a@x.com", hash_password("secret1"))
        store.get_by_email("A@X.com")  # same identity
        store.close()
    """

    # Fields update_fields() may touch. Challenge columns are excluded: they
    # change only through the dedicated set_/consume_/clear_ methods below.
    _UPDATABLE_FIELDS: frozenset = frozenset({"email_verified", "two_factor_enabled", "is_active", "password_hash"})
    _BOOL_FIELDS: frozenset = frozenset({"email_verified", "two_factor_enabled", "is_active"})

    def __init__(self, db_url: str = "sqlite:///:memory:") -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._ensure_roles()

    def _ensure_roles(self) -> None:
        """Seed the default roles. Idempotent -- safe to call on every startup."""
        with self.engine.begin() as conn:
            existing = set(conn.execute(select(_roles.c.name)).scalars())
            for name, description in DEFAULT_ROLES.items():
                if name not in existing:
                    conn.execute(_roles.insert().values(name=name, description=description))

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Identity queries
    # ------------------------------------------------------------------

    def create_identity(
        self,
        email: str,
        password_hash: str,
        roles: tuple[str, ...] = (ROLE_USER,),
        email_verified: bool = False,
    ) -> Identity:
        """Insert a new identity with its role links in one transaction.

        Raises ConflictError if the email is already registered, including the
        race where a concurrent request inserted it first (the UNIQUE
        constraint is the final arbiter). Raises NotFoundError for an unknown
        role name.
        """
        now = _now_iso()
        try:
            with self.engine.begin() as conn:
                role_ids = self._role_ids(conn, roles)
                result = conn.execute(
                    _users.insert().values(
                        email=normalize_email(email),
                        password_hash=password_hash,
                        email_verified=1 if email_verified else 0,
                        two_factor_enabled=0,
                        is_active=1,
                        created_at=now,
                        updated_at=now,
                    )
                )
                user_id = result.inserted_primary_key[0]
                for role_id in role_ids:
                    conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
        except IntegrityError as exc:
            raise ConflictError() from exc
        identity = self.get_by_id(user_id)
        if identity is None:
            raise RuntimeError("identity vanished after insert")
        return identity

    def get_by_email(self, email: str) -> Identity | None:
        """Look up an identity by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
            return _row_to_identity(row, self._roles_for(conn, row.id)) if row is not None else None

    def get_by_id(self, user_id: int) -> Identity | None:
        """Look up an identity by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            return _row_to_identity(row, self._roles_for(conn, row.id)) if row is not None else None

    def list_identities(self) -> list[Identity]:
        """Return all identities ordered by email. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
            return [_row_to_identity(r, self._roles_for(conn, r.id)) for r in rows]

    def update_fields(self, user_id: int, **fields) -> bool:
        """Atomically update mutable flags on an identity.

        Accepted fields: email_verified, two_factor_enabled, is_active,
        password_hash. Unknown keys raise ValueError -- fail fast rather than
        silently ignoring a typo.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown identity fields: {unknown!r}")
        if not fields:
            return False
        values = {k: (1 if v else 0) if k in self._BOOL_FIELDS else v for k, v in fields.items()}
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def role_names(self) -> list[str]:
        with self.engine.connect() as conn:
            return list(conn.execute(select(_roles.c.name).order_by(_roles.c.name)).scalars())

    def grant_role(self, user_id: int, role: str) -> bool:
        """Link a role to an identity. Returns False if it was already linked.

        Raises NotFoundError for an unknown user or role.
        """
        with self.engine.begin() as conn:
            self._require_user(conn, user_id)
            (role_id,) = self._role_ids(conn, (role,))
            exists = conn.execute(
                select(_user_roles.c.user_id).where(
                    (_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id)
                )
            ).first()
            if exists is not None:
                return False
            conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
            conn.execute(_users.update().where(_users.c.id == user_id).values(updated_at=_now_iso()))
        return True

    def revoke_role(self, user_id: int, role: str) -> bool:
        """Unlink a role from an identity. Returns False if it was not linked.

        Raises NotFoundError for an unknown user or role.
        """
        with self.engine.begin() as conn:
            self._require_user(conn, user_id)
            (role_id,) = self._role_ids(conn, (role,))
            result = conn.execute(
                _user_roles.delete().where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id))
            )
            if result.rowcount:
                conn.execute(_users.update().where(_users.c.id == user_id).values(updated_at=_now_iso()))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Email-verification challenge
    # ------------------------------------------------------------------

    def set_email_challenge(self, user_id: int, token: str, expires_at: datetime) -> bool:
        """Store a new verification token, overwriting any previous live one."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(email_verification_token=token, email_verification_expires=expires_at.isoformat())
            )
            conn.commit()
        return result.rowcount > 0

    def get_email_challenge(self, token: str) -> EmailChallenge | None:
        """Find the challenge holding this exact token. Expiry is NOT checked here."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_users.c.id, _users.c.email_verification_token, _users.c.email_verification_expires).where(
                    _users.c.email_verification_token == token
                )
            ).fetchone()
        if row is None or row.email_verification_expires is None:
            return None
        return _row_to_email_challenge(row)

    def consume_email_challenge(self, user_id: int, token: str) -> bool:
        """Mark the identity verified and clear the challenge, if the token still matches.

        Returns False when another caller consumed (or replaced) the token
        first. Exactly one concurrent consumer can win.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.email_verification_token == token))
                .values(
                    email_verified=1,
                    email_verification_token=None,
                    email_verification_expires=None,
                    updated_at=_now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Two-factor challenge
    # ------------------------------------------------------------------

    def set_two_factor_challenge(self, user_id: int, code: str, expires_at: datetime) -> bool:
        """Store a new 2FA code, overwriting any previous live one."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(two_factor_code=code, two_factor_expires=expires_at.isoformat())
            )
            conn.commit()
        return result.rowcount > 0

    def get_two_factor_challenge(self, user_id: int) -> TwoFactorChallenge | None:
        """Return the stored 2FA code for a user, or None. Expiry is NOT checked here."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_users.c.id, _users.c.two_factor_code, _users.c.two_factor_expires).where(
                    _users.c.id == user_id
                )
            ).fetchone()
        if row is None or row.two_factor_code is None or row.two_factor_expires is None:
            return None
        return _row_to_two_factor_challenge(row)

    def clear_two_factor_challenge(self, user_id: int, expected_code: str | None = None) -> bool:
        """Delete the stored 2FA code.

        With expected_code set, the delete only happens if the stored code is
        still that value -- this is the single-use consumption step. Without
        it, any stored code is dropped unconditionally (used by disable-2FA).
        """
        condition = _users.c.id == user_id
        if expected_code is not None:
            condition = condition & (_users.c.two_factor_code == expected_code)
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(condition).values(two_factor_code=None, two_factor_expires=None)
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _roles_for(conn: Connection, user_id: int) -> tuple[str, ...]:
        rows = conn.execute(
            select(_roles.c.name)
            .select_from(_user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id))
            .where(_user_roles.c.user_id == user_id)
            .order_by(_roles.c.name)
        ).scalars()
        return tuple(rows)

    @staticmethod
    def _role_ids(conn: Connection, names: tuple[str, ...]) -> list[int]:
        if not names:
            return []
        rows = conn.execute(select(_roles.c.id, _roles.c.name).where(_roles.c.name.in_(names))).fetchall()
        by_name = {r.name: r.id for r in rows}
        missing = [n for n in names if n not in by_name]
        if missing:
            raise NotFoundError(f"Unknown role: {missing[0]}")
        return [by_name[n] for n in names]

    @staticmethod
    def _require_user(conn: Connection, user_id: int) -> None:
        if conn.execute(select(_users.c.id).where(_users.c.id == user_id)).first() is None:
            raise NotFoundError("User not found.")


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row, roles: tuple[str, ...]) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        email_verified=bool(row.email_verified),
        two_factor_enabled=bool(row.two_factor_enabled),
        is_active=bool(row.is_active),
        roles=roles,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    # Rows written by older code may lack an offset; everything here is UTC.
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def _row_to_email_challenge(row) -> EmailChallenge:
    return EmailChallenge(
        user_id=row.id,
        token=row.email_verification_token,
        expires_at=_parse_ts(row.email_verification_expires),
    )


def _row_to_two_factor_challenge(row) -> TwoFactorChallenge:
    return TwoFactorChallenge(
        user_id=row.id,
        code=row.two_factor_code,
        expires_at=_parse_ts(row.two_factor_expires),
    )
