import logging
from typing import Dict

from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth_utils import hash_password
from ..database import get_db
from ..dependencies import get_current_user
from ..errors import Conflict, NotFound, ValidationFailed
from ..lifecycle import OPEN_STATUSES
from ..models.common import envelope
from ..models.models import Comment, Issue, Photo
from ..models.user import (
    AssigneeOut,
    IssueCounts,
    User,
    UserCreateRequest,
    UserOut,
    UserUpdateRequest,
    UserWithCounts,
)
from ..policy import STAFF_ROLES, Action, Resource, authorize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


def count_by(db: Session, column, *criteria) -> Dict[int, int]:
    rows = db.query(column, func.count(Issue.id)).filter(column.isnot(None), *criteria).group_by(column).all()
    return {user_id: count for user_id, count in rows}


def with_counts(user: User, created: Dict[int, int], assigned: Dict[int, int]) -> UserWithCounts:
    out = UserWithCounts.model_validate(user)
    out.counts = IssueCounts(created_issues=created.get(user.id, 0), assigned_issues=assigned.get(user.id, 0))
    return out


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFound("User not found")
    return user


@router.get("")
def list_users(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """All users with their created/assigned issue counts (staff only)."""
    authorize(current_user, Resource.USER, Action.LIST)
    users = db.query(User).order_by(User.role.asc(), User.last_name.asc()).all()
    created = count_by(db, Issue.created_by_id)
    assigned = count_by(db, Issue.assigned_to_id)
    return envelope(
        "Users retrieved successfully",
        {"users": [with_counts(user, created, assigned) for user in users]},
    )


@router.get("/supervisors")
def list_assignees(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Active staff who can be assigned issues, with their open workload."""
    authorize(current_user, Resource.ASSIGNEE, Action.LIST)
    staff = (
        db.query(User)
        .filter(User.role.in_(STAFF_ROLES), User.is_active.is_(True))
        .order_by(User.role.asc(), User.last_name.asc())
        .all()
    )
    open_counts = count_by(db, Issue.assigned_to_id, Issue.status.in_(OPEN_STATUSES))
    supervisors = []
    for user in staff:
        out = AssigneeOut.model_validate(user)
        out.open_assigned_issues = open_counts.get(user.id, 0)
        supervisors.append(out)
    return envelope("Supervisors retrieved successfully", {"supervisors": supervisors})


@router.get("/{user_id}")
def get_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    authorize(current_user, Resource.USER, Action.READ, is_owner=user_id == current_user.id)
    user = get_user_or_404(db, user_id)
    created = count_by(db, Issue.created_by_id, Issue.created_by_id == user.id)
    assigned = count_by(db, Issue.assigned_to_id, Issue.assigned_to_id == user.id)
    return envelope("User retrieved successfully", {"user": with_counts(user, created, assigned)})


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.USER, Action.CREATE, message="Access denied. Admin only feature.")
    existing = db.query(User).filter((User.email == payload.email) | (User.username == payload.username)).first()
    if existing:
        raise Conflict("Email already registered" if existing.email == payload.email else "Username already taken")

    user = User(
        email=payload.email,
        username=payload.username,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        role=payload.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"User {user.id} ({user.role.value}) created by admin {current_user.id}")
    return envelope("User created successfully", {"user": UserOut.model_validate(user)})


@router.put("/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.USER, Action.UPDATE, message="Access denied. Admin only feature.")
    user = get_user_or_404(db, user_id)

    for name, value in payload.model_dump(exclude_unset=True).items():
        # phone is the only nullable column here
        if value is None and name != "phone":
            continue
        setattr(user, name, value)
    db.commit()
    db.refresh(user)
    return envelope("User updated successfully", {"user": UserOut.model_validate(user)})


@router.delete("/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """
    Remove a user.

    Users referenced as issue creator, photo uploader or comment author are
    only deactivated; anyone else is deleted after their assignments are
    cleared.
    """
    authorize(current_user, Resource.USER, Action.DELETE, message="Access denied. Admin only feature.")
    if user_id == current_user.id:
        raise ValidationFailed("Cannot delete your own account")
    user = get_user_or_404(db, user_id)

    has_history = (
        db.query(Issue.id).filter(Issue.created_by_id == user.id).first()
        or db.query(Photo.id).filter(Photo.uploaded_by_id == user.id).first()
        or db.query(Comment.id).filter(Comment.user_id == user.id).first()
    )
    if has_history:
        user.is_active = False
        db.commit()
        logger.info(f"User {user.id} deactivated instead of deleted")
        return envelope("User account deactivated successfully (user has created issues)")

    db.query(Issue).filter(Issue.assigned_to_id == user.id).update(
        {Issue.assigned_to_id: None}, synchronize_session=False
    )
    db.delete(user)
    db.commit()
    logger.info(f"User {user_id} deleted")
    return envelope("User deleted successfully")
