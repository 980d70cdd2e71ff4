import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth_utils import create_access_token, hash_password, verify_password
from ..config import Settings
from ..database import get_db
from ..dependencies import get_current_user, get_settings
from ..errors import Conflict, Unauthenticated, ValidationFailed
from ..models.common import envelope
from ..models.user import (
    AuthResult,
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    User,
    UserOut,
    UserRole,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def issue_token(user: User, settings: Settings) -> str:
    return create_access_token(
        {"user_id": user.id, "email": user.email, "role": user.role.value},
        settings,
    )


# -------------------------------------------------------
#  LOGIN
# -------------------------------------------------------
@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    """Authenticate user and issue JWT token."""
    user = db.query(User).filter(User.email == payload.email).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise Unauthenticated("Invalid email or password")
    if not user.is_active:
        raise Unauthenticated("Account is deactivated")

    logger.info(f"User {user.id} logged in")
    result = AuthResult(user=UserOut.model_validate(user), token=issue_token(user, settings))
    return envelope("Login successful", result)


# -------------------------------------------------------
# REGISTER
# -------------------------------------------------------
@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    """Register a new citizen account."""
    if db.query(User).filter(User.email == payload.email).first():
        raise Conflict("Email already registered")
    if db.query(User).filter(User.username == payload.username).first():
        raise Conflict("Username already taken")

    user = User(
        email=payload.email,
        username=payload.username,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        role=UserRole.USER,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"Registered user {user.id} ({user.email})")
    result = AuthResult(user=UserOut.model_validate(user), token=issue_token(user, settings))
    return envelope("User registered successfully", result)


# -------------------------------------------------------
# PROFILE
# -------------------------------------------------------
@router.get("/profile")
def get_profile(current_user: User = Depends(get_current_user)):
    return envelope("Profile retrieved successfully", {"user": UserOut.model_validate(current_user)})


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    for name, value in payload.model_dump(exclude_unset=True).items():
        if value is None and name != "phone":
            continue
        setattr(current_user, name, value)
    db.commit()
    db.refresh(current_user)
    return envelope("Profile updated successfully", {"user": UserOut.model_validate(current_user)})


@router.put("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(payload.current_password, current_user.password_hash):
        raise ValidationFailed("Current password is incorrect")

    current_user.password_hash = hash_password(payload.new_password)
    db.commit()
    logger.info(f"User {current_user.id} changed password")
    return envelope("Password changed successfully")
