import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, selectinload

from .. import lifecycle
from ..config import Settings
from ..database import get_db
from ..dependencies import get_blob_store, get_current_user, get_settings
from ..errors import Forbidden, NotFound, ValidationFailed
from ..models.common import envelope, utcnow
from ..models.issue import IssueCreate, IssueDetail, IssueOut, IssueUpdate
from ..models.models import Category, Comment, Issue, IssueStatus, Subcategory
from ..models.user import User, UserRole
from ..policy import (
    Action,
    Resource,
    authorize,
    authorize_issue_update,
    ensure_can_view_issue,
    filter_changes,
)
from ..services.blob_store import LocalBlobStore
from ..services.issue_query import DEFAULT_PAGE_SIZE, IssueFilters, build_issue_query, issue_filters, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/issues", tags=["Issues"])

# Columns that are NOT NULL; a patch may omit them but never null them
NON_NULLABLE_FIELDS = frozenset({"title", "description", "address", "status", "priority", "is_emergency", "category_id"})


def load_issue(db: Session, issue_id: int) -> Issue:
    issue = (
        db.query(Issue)
        .options(
            selectinload(Issue.category),
            selectinload(Issue.subcategory),
            selectinload(Issue.created_by),
            selectinload(Issue.assigned_to),
            selectinload(Issue.photos),
            selectinload(Issue.comments).selectinload(Comment.author),
        )
        .filter(Issue.id == issue_id)
        .first()
    )
    if issue is None:
        raise NotFound("Issue not found")
    return issue


def active_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id, Category.is_active.is_(True)).first()
    if category is None:
        raise ValidationFailed("Invalid category")
    return category


def subcategory_of(db: Session, subcategory_id: int, category_id: int) -> Subcategory:
    subcategory = (
        db.query(Subcategory)
        .filter(
            Subcategory.id == subcategory_id,
            Subcategory.category_id == category_id,
            Subcategory.is_active.is_(True),
        )
        .first()
    )
    if subcategory is None:
        raise ValidationFailed("Invalid subcategory")
    return subcategory


def staff_assignee(db: Session, user_id: int) -> User:
    assignee = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    if assignee is None or assignee.role == UserRole.USER:
        raise ValidationFailed("Invalid assignee")
    return assignee


def reference_exists(db: Session):
    return lambda reference: db.query(Issue.id).filter(Issue.reference_number == reference).first() is not None


def detail_for(issue: Issue, user: User) -> IssueDetail:
    detail = IssueDetail.model_validate(issue)
    if user.role == UserRole.USER:
        detail.comments = [comment for comment in detail.comments if not comment.is_internal]
    return detail


# -------------------------------------------------------
# CREATE
# -------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
def create_issue(
    payload: IssueCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.ISSUE, Action.CREATE)
    category = active_category(db, payload.category_id)
    subcategory = subcategory_of(db, payload.subcategory_id, category.id) if payload.subcategory_id else None

    now = utcnow()
    issue = Issue(
        title=payload.title,
        description=payload.description,
        address=payload.address,
        latitude=payload.latitude,
        longitude=payload.longitude,
        category_id=category.id,
        subcategory_id=subcategory.id if subcategory else None,
        status=IssueStatus.PENDING,
        priority=lifecycle.effective_priority(payload.priority, payload.is_emergency),
        is_emergency=payload.is_emergency,
        created_by_id=current_user.id,
        reference_number=lifecycle.generate_reference_number(settings.REFERENCE_PREFIX, reference_exists(db), now),
        created_at=now,
        updated_at=now,
    )
    if subcategory is not None and subcategory.estimated_days:
        issue.estimated_completion_date = now + timedelta(days=subcategory.estimated_days)

    db.add(issue)
    db.commit()

    logger.info(f"Issue {issue.reference_number} created by user {current_user.id}")
    issue = load_issue(db, issue.id)
    return envelope("Issue created successfully", {"issue": IssueOut.model_validate(issue)})


# -------------------------------------------------------
# LIST
# -------------------------------------------------------
@router.get("")
def list_issues(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    filters: IssueFilters = Depends(issue_filters),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.ISSUE, Action.LIST)
    issues, pagination = paginate(build_issue_query(db, current_user, filters), page, limit)
    return envelope(
        "Issues retrieved successfully",
        {"issues": [IssueOut.model_validate(issue) for issue in issues]},
        pagination,
    )


# -------------------------------------------------------
# READ
# -------------------------------------------------------
@router.get("/{issue_id}")
def get_issue(
    issue_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    issue = load_issue(db, issue_id)
    authorize(current_user, Resource.ISSUE, Action.READ)
    ensure_can_view_issue(current_user, issue)
    return envelope("Issue retrieved successfully", {"issue": detail_for(issue, current_user)})


# -------------------------------------------------------
# UPDATE
# -------------------------------------------------------
@router.put("/{issue_id}")
def update_issue(
    issue_id: int,
    payload: IssueUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    issue = load_issue(db, issue_id)
    decision = authorize_issue_update(current_user, issue, payload.changes())
    if not decision.allowed:
        raise Forbidden()

    changes, dropped = filter_changes(current_user.role, Resource.ISSUE, payload.changes())
    if dropped:
        logger.info(f"Issue {issue.id}: ignored fields {sorted(dropped)} for role {current_user.role.value}")

    nulled = sorted(name for name in NON_NULLABLE_FIELDS if name in changes and changes[name] is None)
    if nulled:
        raise ValidationFailed(errors=[{"field": name, "message": "Field cannot be null"} for name in nulled])

    category_id = changes.get("category_id", issue.category_id)
    if "category_id" in changes and category_id != issue.category_id:
        active_category(db, category_id)
        # A subcategory of the previous category no longer applies
        if "subcategory_id" not in changes and issue.subcategory is not None and issue.subcategory.category_id != category_id:
            changes["subcategory_id"] = None
    if changes.get("subcategory_id") is not None:
        subcategory_of(db, changes["subcategory_id"], category_id)
    if changes.get("assigned_to_id") is not None:
        staff_assignee(db, changes["assigned_to_id"])

    lifecycle.apply_changes(issue, changes)
    db.commit()

    issue = load_issue(db, issue.id)
    return envelope("Issue updated successfully", {"issue": IssueOut.model_validate(issue)})


# -------------------------------------------------------
# DELETE
# -------------------------------------------------------
@router.delete("/{issue_id}")
def delete_issue(
    issue_id: int,
    db: Session = Depends(get_db),
    store: LocalBlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user),
):
    issue = load_issue(db, issue_id)
    authorize(current_user, Resource.ISSUE, Action.DELETE, is_owner=issue.created_by_id == current_user.id)

    paths = [photo.path for photo in issue.photos]
    reference = issue.reference_number
    db.delete(issue)
    db.commit()

    store.delete_many(paths)
    logger.info(f"Issue {reference} deleted by user {current_user.id}")
    return envelope("Issue deleted successfully")
