from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .auth_utils import decode_access_token
from .config import Settings
from .database import get_db
from .errors import Unauthenticated
from .models.user import User
from .services.ai_vision import AIVisionClient
from .services.blob_store import LocalBlobStore

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    """Decode JWT and fetch the current, active user."""
    if not token:
        raise Unauthenticated("Access denied. No token provided.")

    payload = decode_access_token(token, settings)
    if payload is None:
        raise Unauthenticated("Invalid or expired token")

    user = db.query(User).filter(User.id == payload.get("user_id")).first()
    if not user or not user.is_active:
        raise Unauthenticated("Invalid token or user deactivated.")
    return user


def get_blob_store(settings: Settings = Depends(get_settings)) -> LocalBlobStore:
    return LocalBlobStore(settings.UPLOAD_PATH, settings.MAX_FILE_SIZE)


def get_ai_vision_client(settings: Settings = Depends(get_settings)) -> AIVisionClient:
    return AIVisionClient(settings.AI_VISION_URL, settings.AI_VISION_TIMEOUT)
