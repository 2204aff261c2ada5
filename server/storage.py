import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


class Storage:
    """SQLite store for users' manga lists and profiles. Implements the interaction source."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS interactions (
                    user_id TEXT NOT NULL,
                    manga_id INTEGER NOT NULL,
                    like_status TEXT NOT NULL DEFAULT 'none' CHECK(like_status IN ('like','dislike','none')),
                    reading_status TEXT NOT NULL DEFAULT 'plan-to-read'
                        CHECK(reading_status IN ('reading','completed','plan-to-read')),
                    ts DATETIME DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (user_id, manga_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    user_id TEXT PRIMARY KEY,
                    favorite_genres TEXT NOT NULL DEFAULT '[]',
                    experience_level TEXT NOT NULL DEFAULT 'intermediate'
                )
            """)
            conn.commit()

    def replace_user_interactions(self, user_id: str, items: Iterable[Dict[str, Any]]):
        """Replace the user's whole list in one transaction."""
        rows = [(user_id, int(i["item_id"]), i["like_status"], i["reading_status"]) for i in items]
        with self._connect() as conn:
            conn.execute("DELETE FROM interactions WHERE user_id = ?", (user_id,))
            conn.executemany(
                "INSERT INTO interactions (user_id, manga_id, like_status, reading_status) VALUES (?, ?, ?, ?)",
                rows,
            )
            conn.commit()

    def get_user_interactions(self, user_id: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT user_id, manga_id, like_status, reading_status FROM interactions WHERE user_id = ? ORDER BY manga_id",
                (user_id,),
            ).fetchall()
        return [self._row_to_interaction(r) for r in rows]

    def load_all_user_interactions(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT user_id, manga_id, like_status, reading_status FROM interactions ORDER BY user_id, manga_id"
            ).fetchall()
        return [self._row_to_interaction(r) for r in rows]

    def save_profile(self, user_id: str, favorite_genres: Iterable[str], experience_level: str):
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO profiles (user_id, favorite_genres, experience_level) VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    favorite_genres = excluded.favorite_genres,
                    experience_level = excluded.experience_level
                """,
                (user_id, json.dumps(sorted(favorite_genres)), experience_level),
            )
            conn.commit()

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT favorite_genres, experience_level FROM profiles WHERE user_id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return None
        return {"favorite_genres": json.loads(row["favorite_genres"]), "experience_level": row["experience_level"]}

    @staticmethod
    def _row_to_interaction(row) -> Dict[str, Any]:
        return {
            "user_id": row["user_id"],
            "item_id": row["manga_id"],
            "like_status": row["like_status"],
            "reading_status": row["reading_status"],
        }
