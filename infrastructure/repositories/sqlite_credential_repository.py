import json
import logging
import sqlite3
from typing import Optional, Tuple

from use_cases.session_models import UserSnapshot

log = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"
ADMIN_FLAG_KEY = "isAdmin"
DEFAULT_SCOPE = "default"


class SQLiteCredentialRepository:
    """Durable bearer-token + user-snapshot storage.

    Three fixed keys per scope live in the `session_credentials` table: the
    token string, the serialized user, and the admin-login annotation flag.
    A scope is one browser session; scopes never see each other's rows.
    """

    def __init__(self, db_path: str, scope: str = DEFAULT_SCOPE):
        if not scope:
            raise ValueError("scope must be a non-empty string")
        self.db_path = db_path
        self.scope = scope

    def _conn(self):
        return sqlite3.connect(self.db_path)

    def _get_current_version(self, conn) -> int:
        row = conn.execute("SELECT version FROM schema_info").fetchone()
        if row:
            return row[0]
        return 0

    def _migrate_v1(self, conn):
        """Baseline schema (v1)."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS credentials (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

    def _migrate_v2(self, conn):
        """Local audit trail (v2)."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ts TEXT NOT NULL,
                actor_user_id TEXT,
                actor_role TEXT,
                action TEXT NOT NULL,
                target_type TEXT NOT NULL,
                target_id TEXT,
                metadata_json TEXT,
                result TEXT NOT NULL
            )
        """)

    def _migrate_v3(self, conn):
        """Credentials keyed by browser session (v3). Unscoped rows move to the default scope."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS session_credentials (
                scope TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (scope, key)
            )
        """)
        conn.execute(
            "INSERT OR IGNORE INTO session_credentials (scope, key, value) SELECT ?, key, value FROM credentials",
            (DEFAULT_SCOPE,),
        )
        conn.execute("DROP TABLE credentials")

    def init_db(self):
        MIGRATIONS = [self._migrate_v1, self._migrate_v2, self._migrate_v3]

        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_info (
                    version INTEGER NOT NULL
                )
            """)

            current_version = self._get_current_version(conn)
            has_version_row = conn.execute("SELECT COUNT(*) FROM schema_info").fetchone()[0] > 0
            if not has_version_row:
                conn.execute("INSERT INTO schema_info (version) VALUES (?)", (current_version,))

            for i in range(current_version, len(MIGRATIONS)):
                target_version = i + 1
                try:
                    MIGRATIONS[i](conn)
                    conn.execute("UPDATE schema_info SET version = ?", (target_version,))
                except Exception as e:
                    # Raising inside the `with` block skips commit, so the whole run rolls back.
                    raise RuntimeError(f"Session database migration to v{target_version} failed: {e}") from e

            conn.commit()

    def _put(self, conn, key: str, value: str):
        conn.execute(
            "INSERT OR REPLACE INTO session_credentials (scope, key, value) VALUES (?, ?, ?)",
            (self.scope, key, value),
        )

    def save(self, token: str, user: Optional[UserSnapshot], is_admin_login: bool = False):
        """Write token, user and admin flag in one transaction."""
        if not token:
            raise ValueError("token must be a non-empty string")
        with self._conn() as conn:
            self._put(conn, TOKEN_KEY, token)
            self._put(conn, ADMIN_FLAG_KEY, "true" if is_admin_login else "false")
            if user is not None:
                self._put(conn, USER_KEY, json.dumps(user.to_dict()))
            else:
                conn.execute(
                    "DELETE FROM session_credentials WHERE scope = ? AND key = ?", (self.scope, USER_KEY)
                )
            conn.commit()

    def save_user(self, user: UserSnapshot):
        """Replace the cached snapshot while keeping the stored token."""
        with self._conn() as conn:
            self._put(conn, USER_KEY, json.dumps(user.to_dict()))
            conn.commit()

    def read(self) -> Tuple[Optional[str], Optional[UserSnapshot]]:
        """Return the last saved (token, user) pair; (None, None) when nothing usable is stored."""
        try:
            with self._conn() as conn:
                rows = dict(conn.execute(
                    "SELECT key, value FROM session_credentials WHERE scope = ? AND key IN (?, ?)",
                    (self.scope, TOKEN_KEY, USER_KEY),
                ).fetchall())
        except sqlite3.Error as e:
            log.warning(f"Credential store unreadable, treating as empty: {e}")
            return None, None

        token = rows.get(TOKEN_KEY) or None
        if token is None:
            return None, None

        user = None
        raw_user = rows.get(USER_KEY)
        if raw_user:
            try:
                user = UserSnapshot(**json.loads(raw_user))
            except (TypeError, ValueError) as e:
                log.warning(f"Discarding corrupt cached user snapshot: {e}")
        return token, user

    def read_token(self) -> Optional[str]:
        return self.read()[0]

    def is_admin_login(self) -> bool:
        try:
            with self._conn() as conn:
                row = conn.execute(
                    "SELECT value FROM session_credentials WHERE scope = ? AND key = ?",
                    (self.scope, ADMIN_FLAG_KEY),
                ).fetchone()
        except sqlite3.Error:
            return False
        return bool(row) and row[0] == "true"

    def clear(self):
        with self._conn() as conn:
            conn.execute("DELETE FROM session_credentials WHERE scope = ?", (self.scope,))
            conn.commit()
