"""
Issue listing: role visibility AND caller filters, ordering, pagination.
"""

from datetime import datetime, time, timezone
from typing import List, Optional, Tuple

from fastapi import Query, Request
from pydantic import BaseModel, Field
from sqlalchemy import and_, or_, true
from sqlalchemy.orm import Query as OrmQuery, Session, selectinload

from ..errors import ValidationFailed
from ..models.common import Pagination
from ..models.models import Issue, IssuePriority, IssueStatus
from ..models.user import User
from ..policy import Visibility, visibility_for

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class IssueFilters(BaseModel):
    status: List[IssueStatus] = Field(default_factory=list)
    priority: List[IssuePriority] = Field(default_factory=list)
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    created_by_id: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    is_emergency: Optional[bool] = None
    search: Optional[str] = None


def parse_date_bound(raw: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO date or datetime into naive UTC.

    A bare date used as an upper bound covers that whole day.
    """
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationFailed(f"Invalid date: {raw}")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    if end_of_day and len(raw) == 10:
        value = datetime.combine(value.date(), time.max)
    return value


def _multi(request: Request, name: str) -> List[str]:
    # Accept both ?status=A&status=B and ?status[]=A&status[]=B
    values = request.query_params.getlist(name) + request.query_params.getlist(f"{name}[]")
    result: List[str] = []
    for value in values:
        result.extend(part.strip() for part in value.split(",") if part.strip())
    return result


def _enum_list(enum_cls, raw: List[str], name: str):
    try:
        return [enum_cls(value.upper()) for value in raw]
    except ValueError:
        raise ValidationFailed(
            f"Invalid {name}",
            errors=[{"field": name, "message": f"Allowed values: {', '.join(e.value for e in enum_cls)}"}],
        )


def issue_filters(
    request: Request,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    subcategory_id: Optional[int] = Query(None, alias="subcategoryId"),
    assigned_to_id: Optional[int] = Query(None, alias="assignedToId"),
    created_by_id: Optional[int] = Query(None, alias="createdById"),
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    is_emergency: Optional[bool] = Query(None, alias="isEmergency"),
    search: Optional[str] = Query(None),
) -> IssueFilters:
    """FastAPI dependency collecting the listing/export filters from the query string."""
    return IssueFilters(
        status=_enum_list(IssueStatus, _multi(request, "status"), "status"),
        priority=_enum_list(IssuePriority, _multi(request, "priority"), "priority"),
        category_id=category_id,
        subcategory_id=subcategory_id,
        assigned_to_id=assigned_to_id,
        created_by_id=created_by_id,
        date_from=parse_date_bound(date_from),
        date_to=parse_date_bound(date_to, end_of_day=True),
        is_emergency=is_emergency,
        search=search.strip() if search and search.strip() else None,
    )


def escape_like(term: str) -> str:
    """Make % and _ in user input match literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def visibility_clause(user: User):
    scope = visibility_for(user.role)
    if scope is Visibility.OWN:
        return Issue.created_by_id == user.id
    if scope is Visibility.ASSIGNED_OR_OPEN:
        return or_(
            Issue.assigned_to_id == user.id,
            Issue.assigned_to_id.is_(None),
            Issue.created_by_id == user.id,
        )
    return true()


def filter_clauses(user: User, filters: IssueFilters) -> list:
    clauses = [visibility_clause(user)]

    if filters.status:
        clauses.append(Issue.status.in_(filters.status))
    if filters.priority:
        clauses.append(Issue.priority.in_(filters.priority))
    if filters.category_id is not None:
        clauses.append(Issue.category_id == filters.category_id)
    if filters.subcategory_id is not None:
        clauses.append(Issue.subcategory_id == filters.subcategory_id)
    # Assignee and creator filters are a staff tool; citizens are already scoped to their own issues
    if user.is_staff and filters.assigned_to_id is not None:
        clauses.append(Issue.assigned_to_id == filters.assigned_to_id)
    if user.is_staff and filters.created_by_id is not None:
        clauses.append(Issue.created_by_id == filters.created_by_id)
    if filters.date_from is not None:
        clauses.append(Issue.created_at >= filters.date_from)
    if filters.date_to is not None:
        clauses.append(Issue.created_at <= filters.date_to)
    if filters.is_emergency is not None:
        clauses.append(Issue.is_emergency.is_(filters.is_emergency))
    if filters.search:
        pattern = f"%{escape_like(filters.search)}%"
        clauses.append(
            or_(
                Issue.title.ilike(pattern, escape="\\"),
                Issue.description.ilike(pattern, escape="\\"),
                Issue.address.ilike(pattern, escape="\\"),
                Issue.reference_number.ilike(pattern, escape="\\"),
            )
        )
    return clauses


def build_issue_query(db: Session, user: User, filters: IssueFilters) -> OrmQuery:
    return (
        db.query(Issue)
        .filter(and_(*filter_clauses(user, filters)))
        .options(
            selectinload(Issue.category),
            selectinload(Issue.subcategory),
            selectinload(Issue.created_by),
            selectinload(Issue.assigned_to),
            selectinload(Issue.photos),
            selectinload(Issue.comments),
        )
        .order_by(Issue.is_emergency.desc(), Issue.created_at.desc(), Issue.id.asc())
    )


def paginate(query: OrmQuery, page: int, limit: int) -> Tuple[list, Pagination]:
    if page < 1:
        raise ValidationFailed("Page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationFailed(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, Pagination.build(page=page, limit=limit, total=total)
