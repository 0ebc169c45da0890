# routers/auth.py
from fastapi import APIRouter, Depends, status

from app import schemas
from app.auth_utils import get_feed_service, get_settings_dep, require_viewer
from app.config import Settings
from app.feed import FeedService
from app.security import create_access_token

router = APIRouter()


@router.post("/register", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
async def register_user(
    user: schemas.UserCreate,
    feed: FeedService = Depends(get_feed_service),
):
    # ConflictError from the store becomes a 400 "Username already taken"
    return await feed.register(user)


@router.post("/login", response_model=schemas.LoginResult)
async def login(
    credentials: schemas.LoginRequest,
    feed: FeedService = Depends(get_feed_service),
    settings: Settings = Depends(get_settings_dep),
):
    user = await feed.authenticate(credentials.username, credentials.password)
    return schemas.LoginResult(user=user, access_token=create_access_token(user.id, settings))


@router.get("/me", response_model=schemas.User)
async def read_users_me(current_user: schemas.User = Depends(require_viewer)):
    return current_user
