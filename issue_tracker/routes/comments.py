import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session, selectinload

from ..database import get_db
from ..dependencies import get_current_user
from ..errors import NotFound
from ..models.common import envelope
from ..models.issue import CommentCreate, CommentOut
from ..models.models import Comment, Issue
from ..models.user import User, UserRole
from ..policy import Action, Resource, authorize, ensure_can_view_issue, filter_changes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/issues", tags=["Comments"])


def visible_issue(db: Session, issue_id: int, user: User) -> Issue:
    issue = db.query(Issue).filter(Issue.id == issue_id).first()
    if issue is None:
        raise NotFound("Issue not found")
    ensure_can_view_issue(user, issue)
    return issue


@router.post("/{issue_id}/comments", status_code=status.HTTP_201_CREATED)
def add_comment(
    issue_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Add a comment; only staff can mark it internal."""
    authorize(current_user, Resource.COMMENT, Action.CREATE)
    issue = visible_issue(db, issue_id, current_user)

    fields, _ = filter_changes(current_user.role, Resource.COMMENT, payload.model_dump())
    comment = Comment(
        issue_id=issue.id,
        user_id=current_user.id,
        text=fields["text"],
        is_internal=bool(fields.get("is_internal", False)),
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)

    logger.info(f"Comment {comment.id} added to issue {issue.id} by user {current_user.id}")
    return envelope("Comment added successfully", {"comment": CommentOut.model_validate(comment)})


@router.get("/{issue_id}/comments")
def list_comments(
    issue_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.COMMENT, Action.LIST)
    issue = visible_issue(db, issue_id, current_user)

    query = db.query(Comment).options(selectinload(Comment.author)).filter(Comment.issue_id == issue.id)
    if current_user.role == UserRole.USER:
        query = query.filter(Comment.is_internal.is_(False))
    comments = query.order_by(Comment.created_at.desc(), Comment.id.desc()).all()
    return envelope(
        "Comments retrieved successfully",
        {"comments": [CommentOut.model_validate(comment) for comment in comments]},
    )
