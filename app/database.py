# database.py
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

import psycopg
from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)


class DatabaseManager:
    def __init__(self, conninfo: str, min_size: int = 1, max_size: int = 10):
        self.conninfo = conninfo
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[AsyncConnectionPool] = None

    async def create_pool(self) -> AsyncConnectionPool:
        """Create a connection pool to PostgreSQL using psycopg (async)"""
        if self.pool is not None:
            return self.pool

        try:
            # open=False avoids the implicit open warning; open it explicitly
            self.pool = AsyncConnectionPool(
                conninfo=self.conninfo,
                min_size=self.min_size,
                max_size=self.max_size,
                open=False,
            )
            await self.pool.open()
            logger.info("Database connection pool created (min=%d, max=%d)", self.min_size, self.max_size)
            return self.pool
        except Exception:
            logger.exception("Failed to create database pool")
            raise

    async def close_pool(self) -> None:
        """Close the connection pool"""
        if self.pool:
            await self.pool.close()
            logger.info("Database connection pool closed")
            self.pool = None

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Get a database connection from the pool"""
        if not self.pool:
            await self.create_pool()

        async with self.pool.connection() as conn:
            yield conn


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        username TEXT NOT NULL,
        password TEXT NOT NULL,
        display_name TEXT,
        bio TEXT,
        profile_picture TEXT,
        website TEXT
    );
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_username_lower ON users (lower(username));",
    """
    CREATE TABLE IF NOT EXISTS videos (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        video_url TEXT NOT NULL,
        thumbnail_url TEXT,
        caption TEXT,
        tags TEXT[] NOT NULL DEFAULT '{}',
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        views INTEGER NOT NULL DEFAULT 0,
        duration INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS likes (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        video_id INTEGER NOT NULL REFERENCES videos(id) ON DELETE CASCADE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (user_id, video_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS comments (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        video_id INTEGER NOT NULL REFERENCES videos(id) ON DELETE CASCADE,
        content TEXT NOT NULL CHECK (length(content) > 0),
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS follows (
        id SERIAL PRIMARY KEY,
        follower_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        followed_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (follower_id, followed_id),
        CHECK (follower_id <> followed_id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_videos_user_id ON videos(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_videos_created_at ON videos(created_at DESC, id DESC);",
    "CREATE INDEX IF NOT EXISTS idx_likes_video_id ON likes(video_id);",
    "CREATE INDEX IF NOT EXISTS idx_comments_video_id ON comments(video_id);",
    "CREATE INDEX IF NOT EXISTS idx_follows_followed_id ON follows(followed_id);",
]


def duration_constraint(max_video_duration: int) -> List[str]:
    """Statements (re)applying the upload length bound to the videos table"""
    return [
        "ALTER TABLE videos DROP CONSTRAINT IF EXISTS videos_duration_check;",
        "ALTER TABLE videos ADD CONSTRAINT videos_duration_check "
        f"CHECK (duration >= 0 AND duration <= {int(max_video_duration)}) NOT VALID;",
    ]


async def create_tables(db: DatabaseManager, max_video_duration: int = 60) -> None:
    """Create all necessary tables and indexes"""
    async with db.get_connection() as conn:
        for statement in SCHEMA + duration_constraint(max_video_duration):
            await conn.execute(statement)
        await conn.commit()
    logger.info("Database tables created/verified successfully")
