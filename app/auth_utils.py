# auth_utils.py
import logging
from typing import Optional

from fastapi import Depends, Header, Request

from app.blob_storage import BlobSink
from app.config import Settings
from app.errors import AuthenticationError, AuthorizationError
from app.feed import FeedService
from app.schemas import User
from app.security import decode_access_token

logger = logging.getLogger(__name__)


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_feed_service(request: Request) -> FeedService:
    return request.app.state.feed


def get_blob_sink(request: Request) -> BlobSink:
    return request.app.state.sink


def viewer_id_from_headers(
    authorization: Optional[str], x_user_id: Optional[str], settings: Settings
) -> Optional[int]:
    """Bearer token wins over X-User-Id; anything malformed yields None."""
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return decode_access_token(token.strip(), settings)
        return None
    if x_user_id:
        try:
            return int(x_user_id)
        except ValueError:
            return None
    return None


async def get_viewer(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings_dep),
    feed: FeedService = Depends(get_feed_service),
) -> Optional[User]:
    """Resolve the acting user. Anything unresolvable means an anonymous viewer."""
    viewer_id = viewer_id_from_headers(authorization, x_user_id, settings)
    if viewer_id is None:
        return None
    viewer = await feed.find_user(viewer_id)
    if viewer is None:
        logger.debug("Viewer header referenced unknown user %s", viewer_id)
    return viewer


async def require_viewer(viewer: Optional[User] = Depends(get_viewer)) -> User:
    if viewer is None:
        raise AuthenticationError("Unauthorized")
    return viewer


def ensure_self(viewer: User, user_id: int) -> None:
    """Only the profile owner may act on it"""
    if viewer.id != user_id:
        raise AuthorizationError("Unauthorized")
