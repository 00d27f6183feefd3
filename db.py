import sqlite3
import aiosqlite
import datetime
import json
import logging
import secrets
import uuid
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional, Type

from errors import (
    PersistenceError,
    PersistenceReadFailed,
    PersistenceWriteFailed,
    RecordNotFound,
)

logger = logging.getLogger(__name__)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "profiles": (
            """CREATE TABLE profiles (
                    id TEXT PRIMARY KEY,
                    username TEXT,
                    experience_points INTEGER NOT NULL DEFAULT 0,
                    level INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT
                );""",
            ["id", "username", "experience_points", "level", "created_at"],
        ),
        "goals": (
            """CREATE TABLE goals (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    goal_text TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    daily_tasks TEXT NOT NULL DEFAULT '[]',
                    resource_links TEXT NOT NULL DEFAULT '[]',
                    user_id TEXT NOT NULL,
                    created_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES profiles(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "goal_text",
                "end_date",
                "daily_tasks",
                "resource_links",
                "user_id",
                "created_at",
            ],
        ),
        "auth_tokens": (
            """CREATE TABLE auth_tokens (
                    token TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    created_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES profiles(id) ON DELETE CASCADE
                );""",
            ["token", "user_id", "created_at"],
        ),
    }

    # tables reachable through the generic store operations
    _PUBLIC_TABLES = ("profiles", "goals")

    _JSON_COLUMNS = {
        "goals": {"daily_tasks", "resource_links"},
    }

    def __init__(self, db_path: str = "goalquest.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            # keep references from other tables pointing at the rebuilt table
            cursor.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("Migrating table %s", table)
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "experience_points":
                        return "0"
                    if col == "level":
                        return "1"
                    if col in ("daily_tasks", "resource_links"):
                        return "'[]'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    @classmethod
    def columns(cls, table: str) -> List[str]:
        if table not in cls._PUBLIC_TABLES:
            raise ValueError(f"unknown table: {table}")
        return cls._TABLE_DEFINITIONS[table][1]

    @staticmethod
    def _now() -> str:
        return datetime.datetime.now(datetime.timezone.utc).isoformat()


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def execute_count(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


class LocalStore(AsyncBaseRepository):
    """Record store over the local SQLite database.

    Exposes the same logical operations as the hosted backend:
    ``insert_one``, ``update_one`` and ``fetch_one``. Filters are plain
    column equality. List columns are stored as JSON text.
    """

    def _checked(
        self, table: str, keys, error: Type[PersistenceError]
    ) -> List[str]:
        try:
            columns = self.columns(table)
        except ValueError as e:
            raise error(table, str(e)) from e
        unknown = [k for k in keys if k not in columns]
        if unknown:
            raise error(table, f"unknown columns: {', '.join(sorted(unknown))}")
        return columns

    def _encode(self, table: str, column: str, value):
        if column in self._JSON_COLUMNS.get(table, ()):
            return json.dumps(list(value or []))
        return value

    def _decode_row(self, table: str, columns: List[str], row: Tuple) -> dict:
        record = dict(zip(columns, row))
        for column in self._JSON_COLUMNS.get(table, ()):
            raw = record.get(column)
            record[column] = json.loads(raw) if raw else []
        return record

    @staticmethod
    def _where(filters: dict) -> Tuple[str, Tuple]:
        clause = " AND ".join(f"{k} = ?" for k in filters)
        return clause, tuple(filters.values())

    async def insert_one(self, table: str, record: dict) -> dict:
        if not record:
            raise PersistenceWriteFailed(table, "empty record")
        columns = self._checked(table, record, PersistenceWriteFailed)
        row = dict(record)
        if "created_at" in columns and "created_at" not in row:
            row["created_at"] = self._now()
        if table == "profiles" and not row.get("id"):
            row["id"] = str(uuid.uuid4())
        names = list(row)
        sql = (
            f"INSERT INTO {table} ({', '.join(names)}) "
            f"VALUES ({', '.join('?' for _ in names)});"
        )
        params = tuple(self._encode(table, n, row[n]) for n in names)
        try:
            rowid = await self.execute(sql, params)
        except sqlite3.Error as e:
            raise PersistenceWriteFailed(table, str(e)) from e
        if "id" not in row:
            row["id"] = rowid
        logger.debug("Inserted %s record %s", table, row["id"])
        return row

    async def update_one(self, table: str, filters: dict, patch: dict) -> None:
        if not filters:
            raise PersistenceWriteFailed(table, "refusing unfiltered update")
        if not patch:
            raise PersistenceWriteFailed(table, "empty patch")
        self._checked(table, list(filters) + list(patch), PersistenceWriteFailed)
        assignments = ", ".join(f"{k} = ?" for k in patch)
        where, where_params = self._where(filters)
        params = tuple(self._encode(table, k, v) for k, v in patch.items())
        try:
            count = await self.execute_count(
                f"UPDATE {table} SET {assignments} WHERE {where};",
                params + where_params,
            )
        except sqlite3.Error as e:
            raise PersistenceWriteFailed(table, str(e)) from e
        if count == 0:
            raise RecordNotFound(table)

    async def fetch_many(self, table: str, filters: Optional[dict] = None) -> List[dict]:
        filters = filters or {}
        columns = self._checked(table, filters, PersistenceReadFailed)
        sql = f"SELECT {', '.join(columns)} FROM {table}"
        params: Tuple = ()
        if filters:
            where, params = self._where(filters)
            sql += f" WHERE {where}"
        sql += " ORDER BY rowid;"
        try:
            rows = await self.fetch_all(sql, params)
        except sqlite3.Error as e:
            raise PersistenceReadFailed(table, str(e)) from e
        return [self._decode_row(table, columns, r) for r in rows]

    async def fetch_one(self, table: str, filters: dict) -> dict:
        rows = await self.fetch_many(table, filters)
        if len(rows) != 1:
            raise PersistenceReadFailed(
                table, f"expected exactly one record, found {len(rows)}"
            )
        return rows[0]


class ProfileRepository(BaseRepository):
    """Repository used for account provisioning."""

    def create(self, username: str, user_id: Optional[str] = None) -> str:
        user_id = user_id or str(uuid.uuid4())
        self.execute(
            "INSERT INTO profiles (id, username, experience_points, level, created_at) "
            "VALUES (?, ?, 0, 1, ?);",
            (user_id, username, self._now()),
        )
        logger.info("Provisioned profile %s for %s", user_id, username)
        return user_id

    def fetch(self, user_id: str) -> Optional[dict]:
        rows = super().fetch_all(
            "SELECT id, username, experience_points, level FROM profiles WHERE id = ?;",
            (user_id,),
        )
        if not rows:
            return None
        uid, username, xp, level = rows[0]
        return {
            "id": uid,
            "username": username,
            "experience_points": int(xp or 0),
            "level": int(level or 1),
        }

    def find_by_username(self, username: str) -> Optional[str]:
        rows = super().fetch_all(
            "SELECT id FROM profiles WHERE username = ? ORDER BY rowid LIMIT 1;",
            (username,),
        )
        return rows[0][0] if rows else None


class TokenRepository(BaseRepository):
    """Repository for session tokens issued by the local backend."""

    def issue(self, user_id: str) -> str:
        rows = super().fetch_all("SELECT id FROM profiles WHERE id = ?;", (user_id,))
        if not rows:
            raise ValueError("profile not found")
        token = secrets.token_urlsafe(24)
        self.execute(
            "INSERT INTO auth_tokens (token, user_id, created_at) VALUES (?, ?, ?);",
            (token, user_id, self._now()),
        )
        return token

    def user_for(self, token: str) -> Optional[str]:
        rows = super().fetch_all(
            "SELECT user_id FROM auth_tokens WHERE token = ?;", (token,)
        )
        return rows[0][0] if rows else None

    def revoke(self, token: str) -> None:
        self.execute("DELETE FROM auth_tokens WHERE token = ?;", (token,))
