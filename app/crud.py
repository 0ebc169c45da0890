# crud.py
import logging
from typing import Any, Dict, List, Optional

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from app.database import DatabaseManager, create_tables
from app.errors import ConflictError
from app.storage import UPDATABLE_USER_FIELDS, USER_FIELDS, Storage

logger = logging.getLogger(__name__)


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class PostgresStorage(Storage):
    """Entity store backed by PostgreSQL through a psycopg connection pool."""

    def __init__(self, db: DatabaseManager, max_video_duration: int = 60):
        self.db = db
        self.max_video_duration = max_video_duration

    async def open(self) -> None:
        await self.db.create_pool()
        await create_tables(self.db, self.max_video_duration)

    async def close(self) -> None:
        await self.db.close_pool()

    async def _fetchone(self, query, params=()) -> Optional[Dict[str, Any]]:
        async with self.db.get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cursor:
                await cursor.execute(query, params)
                row = await cursor.fetchone()
            await conn.commit()
        return row

    async def _fetchall(self, query, params=()) -> List[Dict[str, Any]]:
        async with self.db.get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cursor:
                await cursor.execute(query, params)
                return await cursor.fetchall()

    async def _count(self, query, params=()) -> int:
        row = await self._fetchone(query, params)
        return int(row["count"]) if row else 0

    async def _execute(self, query, params=()) -> int:
        async with self.db.get_connection() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute(query, params)
                affected = cursor.rowcount
            await conn.commit()
        return affected

    # --- Users ---
    async def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        return await self._fetchone("SELECT * FROM users WHERE id = %s", (user_id,))

    async def get_user_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        return await self._fetchone("SELECT * FROM users WHERE lower(username) = lower(%s)", (username,))

    async def create_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        query = """
            INSERT INTO users (username, password, display_name, bio, profile_picture, website)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING *
        """
        try:
            row = await self._fetchone(query, tuple(data.get(field) for field in USER_FIELDS))
        except psycopg.errors.UniqueViolation:
            raise ConflictError("Username already taken")
        logger.info("Created user %s (%d)", row["username"], row["id"])
        return row

    async def update_user(self, user_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        changes = {k: v for k, v in updates.items() if k in UPDATABLE_USER_FIELDS}
        if not changes:
            return await self.get_user(user_id)

        query = sql.SQL("UPDATE users SET {} WHERE id = %s RETURNING *").format(
            sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
            )
        )
        try:
            return await self._fetchone(query, (*changes.values(), user_id))
        except psycopg.errors.UniqueViolation:
            raise ConflictError("Username already taken")

    async def search_users(self, query: str) -> List[Dict[str, Any]]:
        if not query:
            return []
        pattern = _like_pattern(query)
        return await self._fetchall(
            "SELECT * FROM users WHERE username ILIKE %s OR display_name ILIKE %s ORDER BY id",
            (pattern, pattern),
        )

    # --- Videos ---
    async def get_video(self, video_id: int) -> Optional[Dict[str, Any]]:
        return await self._fetchone("SELECT * FROM videos WHERE id = %s", (video_id,))

    async def create_video(self, data: Dict[str, Any]) -> Dict[str, Any]:
        query = """
            INSERT INTO videos (user_id, video_url, thumbnail_url, caption, tags, duration)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING *
        """
        row = await self._fetchone(query, (
            data["user_id"],
            data["video_url"],
            data.get("thumbnail_url"),
            data.get("caption"),
            list(data.get("tags") or []),
            data["duration"],
        ))
        logger.info("Created video %d for user %d", row["id"], row["user_id"])
        return row

    async def list_videos(self, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        # LIMIT NULL means no limit in PostgreSQL
        return await self._fetchall(
            "SELECT * FROM videos ORDER BY created_at DESC, id DESC LIMIT %s OFFSET %s",
            (limit, offset),
        )

    async def list_user_videos(self, user_id: int) -> List[Dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM videos WHERE user_id = %s ORDER BY created_at DESC, id DESC",
            (user_id,),
        )

    async def search_videos(self, query: str) -> List[Dict[str, Any]]:
        if not query:
            return []
        pattern = _like_pattern(query)
        return await self._fetchall(
            """
            SELECT * FROM videos
            WHERE caption ILIKE %s
               OR EXISTS (SELECT 1 FROM unnest(tags) AS tag WHERE tag ILIKE %s)
            ORDER BY created_at DESC, id DESC
            """,
            (pattern, pattern),
        )

    async def increment_video_views(self, video_id: int) -> None:
        await self._execute("UPDATE videos SET views = views + 1 WHERE id = %s", (video_id,))

    async def count_videos(self, user_id: int) -> int:
        return await self._count("SELECT COUNT(*) AS count FROM videos WHERE user_id = %s", (user_id,))

    # --- Likes ---
    async def add_like(self, user_id: int, video_id: int) -> Dict[str, Any]:
        row = await self._fetchone(
            """
            INSERT INTO likes (user_id, video_id) VALUES (%s, %s)
            ON CONFLICT (user_id, video_id) DO NOTHING
            RETURNING *
            """,
            (user_id, video_id),
        )
        if row is None:
            row = await self._fetchone(
                "SELECT * FROM likes WHERE user_id = %s AND video_id = %s", (user_id, video_id)
            )
        return row

    async def remove_like(self, user_id: int, video_id: int) -> bool:
        deleted = await self._execute(
            "DELETE FROM likes WHERE user_id = %s AND video_id = %s", (user_id, video_id)
        )
        return deleted > 0

    async def has_like(self, user_id: int, video_id: int) -> bool:
        row = await self._fetchone(
            "SELECT 1 FROM likes WHERE user_id = %s AND video_id = %s", (user_id, video_id)
        )
        return row is not None

    async def count_likes(self, video_id: int) -> int:
        return await self._count("SELECT COUNT(*) AS count FROM likes WHERE video_id = %s", (video_id,))

    # --- Comments ---
    async def add_comment(self, user_id: int, video_id: int, content: str) -> Dict[str, Any]:
        return await self._fetchone(
            "INSERT INTO comments (user_id, video_id, content) VALUES (%s, %s, %s) RETURNING *",
            (user_id, video_id, content),
        )

    async def list_comments(self, video_id: int) -> List[Dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM comments WHERE video_id = %s ORDER BY created_at DESC, id DESC",
            (video_id,),
        )

    async def count_comments(self, video_id: int) -> int:
        return await self._count("SELECT COUNT(*) AS count FROM comments WHERE video_id = %s", (video_id,))

    # --- Follows ---
    async def add_follow(self, follower_id: int, followed_id: int) -> Dict[str, Any]:
        row = await self._fetchone(
            """
            INSERT INTO follows (follower_id, followed_id) VALUES (%s, %s)
            ON CONFLICT (follower_id, followed_id) DO NOTHING
            RETURNING *
            """,
            (follower_id, followed_id),
        )
        if row is None:
            row = await self._fetchone(
                "SELECT * FROM follows WHERE follower_id = %s AND followed_id = %s",
                (follower_id, followed_id),
            )
        return row

    async def remove_follow(self, follower_id: int, followed_id: int) -> bool:
        deleted = await self._execute(
            "DELETE FROM follows WHERE follower_id = %s AND followed_id = %s",
            (follower_id, followed_id),
        )
        return deleted > 0

    async def has_follow(self, follower_id: int, followed_id: int) -> bool:
        row = await self._fetchone(
            "SELECT 1 FROM follows WHERE follower_id = %s AND followed_id = %s",
            (follower_id, followed_id),
        )
        return row is not None

    async def count_followers(self, user_id: int) -> int:
        return await self._count("SELECT COUNT(*) AS count FROM follows WHERE followed_id = %s", (user_id,))

    async def count_following(self, user_id: int) -> int:
        return await self._count("SELECT COUNT(*) AS count FROM follows WHERE follower_id = %s", (user_id,))
