# feed.py
"""Read-side aggregation and write-side operations over a :class:`Storage`.

Every derived view (like/comment counts, follower stats, per-viewer flags) is
recomputed from the store on each call; nothing here is cached.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from app import schemas
from app.errors import AuthenticationError, NotFoundError, ValidationError
from app.security import get_password_hash, verify_password
from app.storage import Storage
from app.tags import parse_tags

logger = logging.getLogger(__name__)

MAX_VIDEO_DURATION = 60


class FeedService:
    def __init__(self, storage: Storage, max_video_duration: int = MAX_VIDEO_DURATION):
        self.storage = storage
        self.max_video_duration = max_video_duration

    # --- Accounts ---
    async def register(self, data: schemas.UserCreate) -> schemas.User:
        record = data.model_dump()
        record["password"] = get_password_hash(data.password)
        user = await self.storage.create_user(record)
        return schemas.User(**user)

    async def authenticate(self, username: str, password: str) -> schemas.User:
        if not username or not password:
            raise ValidationError("Username and password required")
        user = await self.storage.get_user_by_username(username)
        if user is None or not verify_password(password, user["password"]):
            raise AuthenticationError("Invalid credentials")
        return schemas.User(**user)

    # --- Users ---
    async def find_user(self, user_id: int) -> Optional[schemas.User]:
        user = await self.storage.get_user(user_id)
        return schemas.User(**user) if user else None

    async def get_user(self, user_id: int) -> schemas.User:
        user = await self.find_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update_user(self, user_id: int, updates: Dict[str, Any]) -> schemas.User:
        updates = {k: v for k, v in updates.items() if k != "password"}
        # username can be changed but never cleared
        if updates.get("username", "") is None:
            del updates["username"]
        user = await self.storage.update_user(user_id, updates)
        if user is None:
            raise NotFoundError("User not found")
        logger.info("Updated profile of user %d (%s)", user_id, ", ".join(sorted(updates)) or "no fields")
        return schemas.User(**user)

    async def search_users(self, query: Optional[str]) -> List[schemas.User]:
        query = (query or "").strip()
        if not query:
            return []
        return [schemas.User(**u) for u in await self.storage.search_users(query)]

    async def get_user_with_stats(self, user_id: int, viewer_id: Optional[int] = None) -> schemas.UserWithStats:
        user = await self.storage.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")

        is_following = None
        if viewer_id is not None:
            is_following = await self.storage.has_follow(viewer_id, user_id)

        return schemas.UserWithStats(
            **user,
            video_count=await self.storage.count_videos(user_id),
            follower_count=await self.storage.count_followers(user_id),
            following_count=await self.storage.count_following(user_id),
            is_following=is_following,
        )

    # --- Videos ---
    async def _with_details(self, video: Dict[str, Any], viewer_id: Optional[int]) -> Optional[schemas.VideoWithUser]:
        owner = await self.storage.get_user(video["user_id"])
        if owner is None:
            logger.warning("Video %d references missing user %d", video["id"], video["user_id"])
            return None

        is_liked = None
        if viewer_id is not None:
            is_liked = await self.storage.has_like(viewer_id, video["id"])

        return schemas.VideoWithUser(
            **video,
            user=schemas.User(**owner),
            like_count=await self.storage.count_likes(video["id"]),
            comment_count=await self.storage.count_comments(video["id"]),
            is_liked=is_liked,
        )

    async def _many_with_details(self, videos: Iterable[Dict[str, Any]], viewer_id: Optional[int]) -> List[schemas.VideoWithUser]:
        details = [await self._with_details(video, viewer_id) for video in videos]
        return [d for d in details if d is not None]

    async def get_video_with_details(self, video_id: int, viewer_id: Optional[int] = None) -> Optional[schemas.VideoWithUser]:
        video = await self.storage.get_video(video_id)
        if video is None:
            return None
        return await self._with_details(video, viewer_id)

    async def get_feed_videos(self, limit: int = 10, offset: int = 0, viewer_id: Optional[int] = None) -> List[schemas.VideoWithUser]:
        if limit < 0 or offset < 0:
            raise ValidationError("limit and offset must not be negative")
        videos = await self.storage.list_videos(limit=limit, offset=offset)
        return await self._many_with_details(videos, viewer_id)

    async def get_user_videos(self, user_id: int, viewer_id: Optional[int] = None) -> List[schemas.VideoWithUser]:
        videos = await self.storage.list_user_videos(user_id)
        return await self._many_with_details(videos, viewer_id)

    async def search_videos(self, query: Optional[str], viewer_id: Optional[int] = None) -> List[schemas.VideoWithUser]:
        query = (query or "").strip()
        if not query:
            return []
        videos = await self.storage.search_videos(query)
        return await self._many_with_details(videos, viewer_id)

    def check_duration(self, duration: Optional[int]) -> None:
        if duration is None or duration < 0:
            raise ValidationError("Video duration must be a non-negative number of seconds")
        if duration > self.max_video_duration:
            raise ValidationError(f"Videos must be {self.max_video_duration} seconds or less")

    async def create_video(
        self,
        owner_id: int,
        video_url: str,
        duration: int,
        thumbnail_url: Optional[str] = None,
        caption: Optional[str] = None,
        tags: Union[str, Iterable[str], None] = None,
    ) -> schemas.VideoWithUser:
        self.check_duration(duration)
        if not video_url:
            raise ValidationError("No video file uploaded")
        if await self.storage.get_user(owner_id) is None:
            raise NotFoundError("User not found")

        video = await self.storage.create_video({
            "user_id": owner_id,
            "video_url": video_url,
            "thumbnail_url": thumbnail_url or None,
            "caption": caption or None,
            "tags": parse_tags(tags),
            "duration": duration,
        })
        return await self._with_details(video, owner_id)

    async def increment_video_views(self, video_id: int) -> None:
        await self.storage.increment_video_views(video_id)

    # --- Likes ---
    async def _require_video(self, video_id: int) -> Dict[str, Any]:
        video = await self.storage.get_video(video_id)
        if video is None:
            raise NotFoundError("Video not found")
        return video

    async def like_video(self, user_id: int, video_id: int) -> Tuple[schemas.Like, int]:
        await self._require_video(video_id)
        like = await self.storage.add_like(user_id, video_id)
        return schemas.Like(**like), await self.storage.count_likes(video_id)

    async def unlike_video(self, user_id: int, video_id: int) -> int:
        removed = await self.storage.remove_like(user_id, video_id)
        if removed:
            logger.debug("User %d unliked video %d", user_id, video_id)
        return await self.storage.count_likes(video_id)

    # --- Follows ---
    async def follow_user(self, follower_id: int, followed_id: int) -> schemas.Follow:
        if follower_id == followed_id:
            raise ValidationError("Cannot follow yourself")
        if await self.storage.get_user(followed_id) is None:
            raise NotFoundError("User not found")
        follow = await self.storage.add_follow(follower_id, followed_id)
        return schemas.Follow(**follow)

    async def unfollow_user(self, follower_id: int, followed_id: int) -> None:
        await self.storage.remove_follow(follower_id, followed_id)

    # --- Comments ---
    async def _comment_with_user(self, comment: Dict[str, Any]) -> Optional[schemas.CommentWithUser]:
        author = await self.storage.get_user(comment["user_id"])
        if author is None:
            return None
        return schemas.CommentWithUser(**comment, user=schemas.User(**author))

    async def get_comments(self, video_id: int) -> List[schemas.CommentWithUser]:
        comments = [await self._comment_with_user(c) for c in await self.storage.list_comments(video_id)]
        return [c for c in comments if c is not None]

    async def create_comment(self, user_id: int, video_id: int, content: Optional[str]) -> schemas.CommentWithUser:
        if not content or not content.strip():
            raise ValidationError("Comment content must not be empty")
        await self._require_video(video_id)
        comment = await self.storage.add_comment(user_id, video_id, content)
        return await self._comment_with_user(comment)
