"""Database repository for console users, tenants and invitations."""

from __future__ import annotations

from datetime import datetime, timezone

from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.invitations import Invitation
from .domain.profile import Profile

_PROFILE_COLUMNS = (
    "id, auth_user_id, email, name, role, tenant_id, title, created_at, last_loggedin_at, "
    "auth_created"
)

# rows referencing users.id that go away together with the user
_USER_DEPENDENT_TABLES = ("user_teams", "user_roles", "internal_user_tenant_access")


class UserRepository:
    """Postgres-backed persistence for the ``users`` table and its neighbours."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get_profile(self, user_id: str) -> Profile | None:
        """Fetch a profile by its primary key or return ``None``."""
        return self._fetch_profile("id", user_id)

    def get_profile_by_auth_user(self, auth_user_id: str) -> Profile | None:
        """Fetch the profile linked to an auth user id or return ``None``."""
        return self._fetch_profile("auth_user_id", auth_user_id)

    def _fetch_profile(self, column: str, value: str) -> Profile | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_PROFILE_COLUMNS} FROM users WHERE {column} = %s",
                    (value,),
                )
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_profile(row)

    def insert_profile(self, profile: Profile) -> Profile:
        """Persist a new profile row and return it as stored."""
        now = datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO users (id, auth_user_id, email, name, role, tenant_id, title, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_PROFILE_COLUMNS}
                    """,
                    (
                        profile.id,
                        profile.auth_user_id,
                        profile.email,
                        profile.name,
                        profile.role,
                        profile.tenant_id,
                        profile.title,
                        now,
                    ),
                )
                row = cur.fetchone()
                conn.commit()
        return self._map_profile(row)

    def set_auth_user_id(self, user_id: str, auth_user_id: str) -> bool:
        return self._update_user(user_id, "auth_user_id", auth_user_id)

    def touch_last_login(self, user_id: str, at: datetime | None = None) -> bool:
        """Stamp ``last_loggedin_at`` and mark the invitation as accepted.

        A sign-in proves the invite was accepted, so ``auth_created`` and the
        matching ``user_invites.accepted_at`` are set in the same transaction.
        Returns ``False`` when no row matched.
        """
        at = at or datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        UPDATE users SET last_loggedin_at = %s, auth_created = TRUE
                        WHERE id = %s
                        RETURNING email
                        """,
                        (at, user_id),
                    )
                    row = cur.fetchone()
                    if not row:
                        return False
                    cur.execute(
                        """
                        UPDATE user_invites SET accepted_at = %s
                        WHERE email = %s AND accepted_at IS NULL
                        """,
                        (at, row[0]),
                    )
        return True

    def _update_user(self, user_id: str, column: str, value: object) -> bool:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"UPDATE users SET {column} = %s WHERE id = %s", (value, user_id))
                updated = cur.rowcount
                conn.commit()
        return updated > 0

    def delete_user_cascade(self, user_id: str) -> bool:
        """Delete the user and every membership row pointing at it in one transaction."""
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    for table in _USER_DEPENDENT_TABLES:
                        cur.execute(f"DELETE FROM {table} WHERE user_id = %s", (user_id,))
                    cur.execute("DELETE FROM users WHERE id = %s", (user_id,))
                    deleted = cur.rowcount
        return deleted > 0

    def get_tenant_name(self, tenant_id: str) -> str | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute("SELECT name FROM tenants WHERE id = %s", (tenant_id,))
                row = cur.fetchone()
        return row[0] if row else None

    def get_invitation(self, email: str) -> Invitation | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    "SELECT email, invited_at, accepted_at FROM user_invites WHERE email = %s",
                    (email,),
                )
                row = cur.fetchone()
        if not row:
            return None
        return Invitation(email=row[0], invited_at=row[1], accepted_at=row[2])

    def upsert_invitation(self, email: str, invited_at: datetime | None = None) -> Invitation:
        """Record a (re)sent invitation, resetting any previous acceptance."""
        invited_at = invited_at or datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO user_invites (email, invited_at, accepted_at)
                    VALUES (%s, %s, NULL)
                    ON CONFLICT (email) DO UPDATE
                    SET invited_at = EXCLUDED.invited_at, accepted_at = NULL
                    """,
                    (email, invited_at),
                )
                conn.commit()
        return Invitation(email=email, invited_at=invited_at)

    def _map_profile(self, row: tuple) -> Profile:
        return Profile(
            id=row[0],
            auth_user_id=row[1],
            email=row[2],
            name=row[3],
            role=row[4],
            tenant_id=row[5],
            title=row[6],
            created_at=row[7],
            last_loggedin_at=row[8],
            auth_created=bool(row[9]),
        )
