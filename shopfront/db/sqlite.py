from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime
from typing import Any, Optional

from shopfront.config import settings


def _connect(db_path: str) -> sqlite3.Connection:
    parent = os.path.dirname(db_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Optional[str] = None) -> None:
    conn = _connect(db_path or settings.storage_path)
    try:
        with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


class SqliteStorage:
    """
    Persisted client storage: a JSON value per (scope, key).
    One scope per client (telegram user, dashboard session).
    Every write replaces the whole value; there are no diffs.
    """

    def __init__(self, scope: str, db_path: Optional[str] = None):
        self.scope = scope
        self.db_path = db_path or settings.storage_path
        init_db(self.db_path)

    def get(self, key: str) -> Optional[Any]:
        conn = _connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT value FROM kv WHERE scope=? AND key=?",
                (self.scope, key),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return json.loads(row["value"])

    def set(self, key: str, value: Any) -> None:
        updated_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        conn = _connect(self.db_path)
        try:
            conn.execute(
                "INSERT INTO kv(scope, key, value, updated_at) VALUES(?,?,?,?) "
                "ON CONFLICT(scope, key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                (self.scope, key, json.dumps(value), updated_at),
            )
            conn.commit()
        finally:
            conn.close()

    def remove(self, key: str) -> None:
        conn = _connect(self.db_path)
        try:
            conn.execute("DELETE FROM kv WHERE scope=? AND key=?", (self.scope, key))
            conn.commit()
        finally:
            conn.close()
