# routers/videos.py
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from app import schemas
from app.auth_utils import get_blob_sink, get_feed_service, get_viewer, require_viewer
from app.blob_storage import BlobSink
from app.errors import NotFoundError, ValidationError
from app.feed import FeedService

router = APIRouter()


def _viewer_id(viewer: Optional[schemas.User]) -> Optional[int]:
    return viewer.id if viewer else None


@router.post("", response_model=schemas.VideoWithUser, status_code=status.HTTP_201_CREATED)
async def upload_video(
    video: Optional[UploadFile] = File(None),
    caption: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    duration: int = Form(0),
    thumbnail_url: Optional[str] = Form(None),
    current_user: schemas.User = Depends(require_viewer),
    feed: FeedService = Depends(get_feed_service),
    sink: BlobSink = Depends(get_blob_sink),
):
    """Upload a short clip (video/* only, 60 seconds max) with its caption and tags."""
    if video is None:
        raise ValidationError("No video file uploaded")
    # reject before anything is written to the sink
    feed.check_duration(duration)

    video_url = await sink.save(video, file_type="video")
    return await feed.create_video(
        owner_id=current_user.id,
        video_url=video_url,
        duration=duration,
        thumbnail_url=thumbnail_url,
        caption=caption,
        tags=tags,
    )


@router.get("/feed", response_model=List[schemas.VideoWithUser])
async def get_feed(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    feed: FeedService = Depends(get_feed_service),
    viewer: Optional[schemas.User] = Depends(get_viewer),
):
    """Newest videos first, paginated with limit/offset."""
    return await feed.get_feed_videos(limit, offset, _viewer_id(viewer))


@router.get("/search", response_model=List[schemas.VideoWithUser])
async def search_videos(
    q: str = "",
    feed: FeedService = Depends(get_feed_service),
    viewer: Optional[schemas.User] = Depends(get_viewer),
):
    return await feed.search_videos(q, _viewer_id(viewer))


@router.get("/{video_id}", response_model=schemas.VideoWithUser)
async def get_video(
    video_id: int,
    feed: FeedService = Depends(get_feed_service),
    viewer: Optional[schemas.User] = Depends(get_viewer),
):
    """Fetch a single video and count the view."""
    video = await feed.get_video_with_details(video_id, _viewer_id(viewer))
    if video is None:
        raise NotFoundError("Video not found")
    await feed.increment_video_views(video_id)
    return video


@router.post("/{video_id}/like", response_model=schemas.LikeResult)
async def like_video(
    video_id: int,
    feed: FeedService = Depends(get_feed_service),
    current_user: schemas.User = Depends(require_viewer),
):
    _, like_count = await feed.like_video(current_user.id, video_id)
    return {"message": "Successfully liked video", "like_count": like_count}


@router.delete("/{video_id}/like", response_model=schemas.LikeResult)
async def unlike_video(
    video_id: int,
    feed: FeedService = Depends(get_feed_service),
    current_user: schemas.User = Depends(require_viewer),
):
    like_count = await feed.unlike_video(current_user.id, video_id)
    return {"message": "Successfully unliked video", "like_count": like_count}


@router.get("/{video_id}/comments", response_model=List[schemas.CommentWithUser])
async def list_comments_for_video(video_id: int, feed: FeedService = Depends(get_feed_service)):
    return await feed.get_comments(video_id)


@router.post("/{video_id}/comments", response_model=schemas.CommentWithUser, status_code=status.HTTP_201_CREATED)
async def add_comment_to_video(
    video_id: int,
    comment: schemas.CommentCreate,
    feed: FeedService = Depends(get_feed_service),
    current_user: schemas.User = Depends(require_viewer),
):
    return await feed.create_comment(current_user.id, video_id, comment.content)
