from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Mapping

from ..models import utc_now


@dataclass(slots=True)
class SqliteSubscriberStore:
    """
    SQLite 存储（可选后端）。

    表设计：
    - subscribers：chat_id 主键 + active 标记 + 最后更新时间

    与 JSON 文件不同，save 只做 upsert、不删除行：即使启动时 load 失败导致内存为空，
    之前记录的会话也不会因为下一次 save 被覆盖掉。
    """

    sqlite_path: str

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.sqlite_path)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.row_factory = sqlite3.Row
        return conn

    def _create_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS subscribers (
                chat_id INTEGER PRIMARY KEY,
                active INTEGER NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

    def load(self) -> dict[int, bool]:
        conn = self._connect()
        try:
            with conn:
                self._create_table(conn)
                rows = conn.execute("SELECT chat_id, active FROM subscribers").fetchall()
        finally:
            conn.close()
        return {int(row["chat_id"]): bool(row["active"]) for row in rows}

    def save(self, subscribers: Mapping[int, bool]) -> None:
        now = utc_now().isoformat()
        conn = self._connect()
        try:
            with conn:
                self._create_table(conn)
                conn.executemany(
                    """
                    INSERT INTO subscribers(chat_id, active, updated_at)
                    VALUES(?, ?, ?)
                    ON CONFLICT(chat_id) DO UPDATE SET
                        active=excluded.active,
                        updated_at=excluded.updated_at
                    WHERE subscribers.active != excluded.active
                    """,
                    [(int(chat_id), 1 if active else 0, now) for chat_id, active in subscribers.items()],
                )
        finally:
            conn.close()
