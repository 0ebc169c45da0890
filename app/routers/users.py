# routers/users.py
from typing import List, Optional

from fastapi import APIRouter, Depends

from app import schemas
from app.auth_utils import ensure_self, get_feed_service, get_viewer, require_viewer
from app.feed import FeedService

router = APIRouter()


def _viewer_id(viewer: Optional[schemas.User]) -> Optional[int]:
    return viewer.id if viewer else None


@router.get("/search", response_model=List[schemas.User])
async def search_users(q: str = "", feed: FeedService = Depends(get_feed_service)):
    """Case-insensitive match on username or display name. An empty query matches nothing."""
    return await feed.search_users(q)


@router.get("/{user_id}", response_model=schemas.UserWithStats)
async def get_user_profile(
    user_id: int,
    feed: FeedService = Depends(get_feed_service),
    viewer: Optional[schemas.User] = Depends(get_viewer),
):
    return await feed.get_user_with_stats(user_id, _viewer_id(viewer))


@router.patch("/{user_id}", response_model=schemas.User)
async def update_user_profile(
    user_id: int,
    updates: schemas.UserUpdate,
    feed: FeedService = Depends(get_feed_service),
    current_user: schemas.User = Depends(require_viewer),
):
    ensure_self(current_user, user_id)
    return await feed.update_user(user_id, updates.model_dump(exclude_unset=True))


@router.get("/{user_id}/videos", response_model=List[schemas.VideoWithUser])
async def list_user_videos(
    user_id: int,
    feed: FeedService = Depends(get_feed_service),
    viewer: Optional[schemas.User] = Depends(get_viewer),
):
    return await feed.get_user_videos(user_id, _viewer_id(viewer))


@router.post("/{user_id}/follow", response_model=schemas.Message)
async def follow_user(
    user_id: int,
    feed: FeedService = Depends(get_feed_service),
    current_user: schemas.User = Depends(require_viewer),
):
    await feed.follow_user(current_user.id, user_id)
    return {"message": "Successfully followed user"}


@router.delete("/{user_id}/follow", response_model=schemas.Message)
async def unfollow_user(
    user_id: int,
    feed: FeedService = Depends(get_feed_service),
    current_user: schemas.User = Depends(require_viewer),
):
    await feed.unfollow_user(current_user.id, user_id)
    return {"message": "Successfully unfollowed user"}
