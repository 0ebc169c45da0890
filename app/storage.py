# storage.py
"""Entity store contract and the in-memory adapter.

Records cross this boundary as plain dicts keyed by column name, the same
shape ``psycopg``'s ``dict_row`` hands back, so both adapters are
interchangeable behind :class:`Storage`.
"""
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.errors import ConflictError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

USER_FIELDS = ("username", "password", "display_name", "bio", "profile_picture", "website")
UPDATABLE_USER_FIELDS = ("username", "display_name", "bio", "profile_picture", "website")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Storage(ABC):
    """Persistence contract for users, videos, likes, comments and follows."""

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    # --- Users ---
    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[Record]: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[Record]:
        """Case-insensitive lookup."""

    @abstractmethod
    async def create_user(self, data: Record) -> Record:
        """Insert a user, raising ConflictError when the username is taken."""

    @abstractmethod
    async def update_user(self, user_id: int, updates: Record) -> Optional[Record]:
        """Apply a partial update. Keys outside UPDATABLE_USER_FIELDS are ignored."""

    @abstractmethod
    async def search_users(self, query: str) -> List[Record]: ...

    # --- Videos ---
    @abstractmethod
    async def get_video(self, video_id: int) -> Optional[Record]: ...

    @abstractmethod
    async def create_video(self, data: Record) -> Record: ...

    @abstractmethod
    async def list_videos(self, limit: Optional[int] = None, offset: int = 0) -> List[Record]:
        """Newest first, ties broken by id descending."""

    @abstractmethod
    async def list_user_videos(self, user_id: int) -> List[Record]: ...

    @abstractmethod
    async def search_videos(self, query: str) -> List[Record]:
        """Substring match on caption or any tag, newest first."""

    @abstractmethod
    async def increment_video_views(self, video_id: int) -> None: ...

    @abstractmethod
    async def count_videos(self, user_id: int) -> int: ...

    # --- Likes ---
    @abstractmethod
    async def add_like(self, user_id: int, video_id: int) -> Record:
        """Insert if absent, otherwise return the existing row."""

    @abstractmethod
    async def remove_like(self, user_id: int, video_id: int) -> bool: ...

    @abstractmethod
    async def has_like(self, user_id: int, video_id: int) -> bool: ...

    @abstractmethod
    async def count_likes(self, video_id: int) -> int: ...

    # --- Comments ---
    @abstractmethod
    async def add_comment(self, user_id: int, video_id: int, content: str) -> Record: ...

    @abstractmethod
    async def list_comments(self, video_id: int) -> List[Record]: ...

    @abstractmethod
    async def count_comments(self, video_id: int) -> int: ...

    # --- Follows ---
    @abstractmethod
    async def add_follow(self, follower_id: int, followed_id: int) -> Record:
        """Insert if absent, otherwise return the existing row."""

    @abstractmethod
    async def remove_follow(self, follower_id: int, followed_id: int) -> bool: ...

    @abstractmethod
    async def has_follow(self, follower_id: int, followed_id: int) -> bool: ...

    @abstractmethod
    async def count_followers(self, user_id: int) -> int: ...

    @abstractmethod
    async def count_following(self, user_id: int) -> int: ...


def _newest_first(rows: List[Record]) -> List[Record]:
    return sorted(rows, key=lambda r: (r["created_at"], r["id"]), reverse=True)


class MemoryStorage(Storage):
    """Dict-backed store. Each instance owns its own tables and id counters."""

    def __init__(self, seed: bool = False):
        self.users: Dict[int, Record] = {}
        self.videos: Dict[int, Record] = {}
        self.likes: Dict[int, Record] = {}
        self.comments: Dict[int, Record] = {}
        self.follows: Dict[int, Record] = {}
        self._ids = {name: itertools.count(1) for name in ("users", "videos", "likes", "comments", "follows")}
        self._seed = seed

    async def open(self) -> None:
        if self._seed and not self.users:
            await self.seed_sample_data()

    async def seed_sample_data(self) -> None:
        from app.security import get_password_hash

        samples = [
            ("dancequeen", "Dance Queen", "Creating fun dance videos and lifestyle content"),
            ("skateguy", "Skate Guy", "Skate or Die. Living life one trick at a time"),
            ("chefmaria", "Chef Maria", "Quick recipes for busy people"),
        ]
        for username, display_name, bio in samples:
            await self.create_user({
                "username": username,
                "password": get_password_hash("password123"),
                "display_name": display_name,
                "bio": bio,
            })
        logger.info("Seeded %d sample users", len(samples))

    def _next_id(self, table: str) -> int:
        return next(self._ids[table])

    # --- Users ---
    async def get_user(self, user_id: int) -> Optional[Record]:
        user = self.users.get(user_id)
        return dict(user) if user else None

    async def get_user_by_username(self, username: str) -> Optional[Record]:
        wanted = username.lower()
        for user in self.users.values():
            if user["username"].lower() == wanted:
                return dict(user)
        return None

    async def create_user(self, data: Record) -> Record:
        if await self.get_user_by_username(data["username"]):
            raise ConflictError("Username already taken")
        user = {field: data.get(field) for field in USER_FIELDS}
        user["id"] = self._next_id("users")
        self.users[user["id"]] = user
        logger.info("Created user %s (%d)", user["username"], user["id"])
        return dict(user)

    async def update_user(self, user_id: int, updates: Record) -> Optional[Record]:
        user = self.users.get(user_id)
        if user is None:
            return None
        changes = {k: v for k, v in updates.items() if k in UPDATABLE_USER_FIELDS}
        new_name = changes.get("username")
        if new_name is not None:
            clash = await self.get_user_by_username(new_name)
            if clash and clash["id"] != user_id:
                raise ConflictError("Username already taken")
        user.update(changes)
        return dict(user)

    async def search_users(self, query: str) -> List[Record]:
        if not query:
            return []
        needle = query.lower()
        return [
            dict(user)
            for user in self.users.values()
            if needle in user["username"].lower()
            or (user.get("display_name") and needle in user["display_name"].lower())
        ]

    # --- Videos ---
    async def get_video(self, video_id: int) -> Optional[Record]:
        video = self.videos.get(video_id)
        return dict(video) if video else None

    async def create_video(self, data: Record) -> Record:
        video = {
            "id": self._next_id("videos"),
            "user_id": data["user_id"],
            "video_url": data["video_url"],
            "thumbnail_url": data.get("thumbnail_url"),
            "caption": data.get("caption"),
            "tags": list(data.get("tags") or []),
            "duration": data["duration"],
            "views": 0,
            "created_at": utcnow(),
        }
        self.videos[video["id"]] = video
        logger.info("Created video %d for user %d", video["id"], video["user_id"])
        return dict(video)

    async def list_videos(self, limit: Optional[int] = None, offset: int = 0) -> List[Record]:
        rows = _newest_first(list(self.videos.values()))
        end = None if limit is None else offset + limit
        return [dict(v) for v in rows[offset:end]]

    async def list_user_videos(self, user_id: int) -> List[Record]:
        rows = [v for v in self.videos.values() if v["user_id"] == user_id]
        return [dict(v) for v in _newest_first(rows)]

    async def search_videos(self, query: str) -> List[Record]:
        if not query:
            return []
        needle = query.lower()

        def matches(video: Record) -> bool:
            if video.get("caption") and needle in video["caption"].lower():
                return True
            return any(needle in tag.lower() for tag in video.get("tags") or [])

        return [dict(v) for v in _newest_first([v for v in self.videos.values() if matches(v)])]

    async def increment_video_views(self, video_id: int) -> None:
        video = self.videos.get(video_id)
        if video is not None:
            video["views"] += 1

    async def count_videos(self, user_id: int) -> int:
        return sum(1 for v in self.videos.values() if v["user_id"] == user_id)

    # --- Likes ---
    def _find_like(self, user_id: int, video_id: int) -> Optional[Record]:
        for like in self.likes.values():
            if like["user_id"] == user_id and like["video_id"] == video_id:
                return like
        return None

    async def add_like(self, user_id: int, video_id: int) -> Record:
        # no await between the lookup and the insert, so this cannot interleave
        existing = self._find_like(user_id, video_id)
        if existing:
            return dict(existing)
        like = {"id": self._next_id("likes"), "user_id": user_id, "video_id": video_id, "created_at": utcnow()}
        self.likes[like["id"]] = like
        return dict(like)

    async def remove_like(self, user_id: int, video_id: int) -> bool:
        like = self._find_like(user_id, video_id)
        if like is None:
            return False
        del self.likes[like["id"]]
        return True

    async def has_like(self, user_id: int, video_id: int) -> bool:
        return self._find_like(user_id, video_id) is not None

    async def count_likes(self, video_id: int) -> int:
        return sum(1 for like in self.likes.values() if like["video_id"] == video_id)

    # --- Comments ---
    async def add_comment(self, user_id: int, video_id: int, content: str) -> Record:
        comment = {
            "id": self._next_id("comments"),
            "user_id": user_id,
            "video_id": video_id,
            "content": content,
            "created_at": utcnow(),
        }
        self.comments[comment["id"]] = comment
        return dict(comment)

    async def list_comments(self, video_id: int) -> List[Record]:
        rows = [c for c in self.comments.values() if c["video_id"] == video_id]
        return [dict(c) for c in _newest_first(rows)]

    async def count_comments(self, video_id: int) -> int:
        return sum(1 for c in self.comments.values() if c["video_id"] == video_id)

    # --- Follows ---
    def _find_follow(self, follower_id: int, followed_id: int) -> Optional[Record]:
        for follow in self.follows.values():
            if follow["follower_id"] == follower_id and follow["followed_id"] == followed_id:
                return follow
        return None

    async def add_follow(self, follower_id: int, followed_id: int) -> Record:
        existing = self._find_follow(follower_id, followed_id)
        if existing:
            return dict(existing)
        follow = {
            "id": self._next_id("follows"),
            "follower_id": follower_id,
            "followed_id": followed_id,
            "created_at": utcnow(),
        }
        self.follows[follow["id"]] = follow
        return dict(follow)

    async def remove_follow(self, follower_id: int, followed_id: int) -> bool:
        follow = self._find_follow(follower_id, followed_id)
        if follow is None:
            return False
        del self.follows[follow["id"]]
        return True

    async def has_follow(self, follower_id: int, followed_id: int) -> bool:
        return self._find_follow(follower_id, followed_id) is not None

    async def count_followers(self, user_id: int) -> int:
        return sum(1 for f in self.follows.values() if f["followed_id"] == user_id)

    async def count_following(self, user_id: int) -> int:
        return sum(1 for f in self.follows.values() if f["follower_id"] == user_id)
