import logging
from datetime import datetime, timedelta
from typing import List, Tuple

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import lifecycle
from ..database import get_db
from ..dependencies import get_current_user
from ..labels import month_label
from ..models.common import envelope, utcnow
from ..models.issue import IssueMetrics, IssueOut
from ..models.models import Category, Issue, IssueStatus
from ..models.user import User
from ..policy import Action, Resource, authorize, ensure_can_view_issue
from ..services.issue_query import visibility_clause
from .issues import load_issue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["Statistics"])

TREND_MONTHS = 6
RECENT_DAYS = 30


def month_windows(now: datetime, months: int) -> List[Tuple[int, int, datetime, datetime]]:
    """(year, month, start, end) for the last `months` calendar months, oldest first."""
    windows = []
    for back in range(months - 1, -1, -1):
        index = now.year * 12 + (now.month - 1) - back
        year, month = divmod(index, 12)
        start = datetime(year, month + 1, 1)
        next_year, next_month = divmod(index + 1, 12)
        end = datetime(next_year, next_month + 1, 1)
        windows.append((year, month + 1, start, end))
    return windows


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Aggregate counts over the issues the caller may see."""
    authorize(current_user, Resource.STATS, Action.READ)
    now = utcnow()
    scope = visibility_clause(current_user)

    def scoped():
        return db.query(Issue).filter(scope)

    status_rows = db.query(Issue.status, func.count(Issue.id)).filter(scope).group_by(Issue.status).all()
    priority_rows = db.query(Issue.priority, func.count(Issue.id)).filter(scope).group_by(Issue.priority).all()
    category_rows = (
        db.query(Category.id, Category.name, Category.name_en, Category.color, func.count(Issue.id))
        .join(Issue, Issue.category_id == Category.id)
        .filter(scope)
        .group_by(Category.id, Category.name, Category.name_en, Category.color)
        .order_by(func.count(Issue.id).desc())
        .all()
    )

    completion_stats = None
    if current_user.is_staff:
        month_start = datetime(now.year, now.month, 1)
        completion_stats = {
            "completedThisMonth": scoped()
            .filter(Issue.status == IssueStatus.COMPLETED, Issue.completed_at >= month_start)
            .count(),
            "totalPendingAndInProgress": scoped().filter(Issue.status.in_(lifecycle.OPEN_STATUSES)).count(),
        }

    monthly_trend = [
        {
            "month": month_label(year, month),
            "count": scoped().filter(Issue.created_at >= start, Issue.created_at < end).count(),
        }
        for year, month, start, end in month_windows(now, TREND_MONTHS)
    ]

    stats = {
        "totalIssues": scoped().count(),
        "emergencyIssues": scoped().filter(Issue.is_emergency.is_(True)).count(),
        "recentIssuesCount": scoped().filter(Issue.created_at >= now - timedelta(days=RECENT_DAYS)).count(),
        "statusStats": [{"status": status, "count": count} for status, count in status_rows],
        "priorityStats": [{"priority": priority, "count": count} for priority, count in priority_rows],
        "categoryStats": [
            {
                "categoryId": category_id,
                "categoryName": name,
                "categoryNameEn": name_en,
                "color": color,
                "count": count,
            }
            for category_id, name, name_en, color, count in category_rows
        ],
        "completionStats": completion_stats,
        "monthlyTrend": monthly_trend,
    }
    return envelope("Dashboard statistics retrieved successfully", {"stats": stats})


@router.get("/issues/{issue_id}")
def issue_stats(issue_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    authorize(current_user, Resource.STATS, Action.READ)
    issue = load_issue(db, issue_id)
    ensure_can_view_issue(current_user, issue)

    metrics = IssueMetrics(**lifecycle.issue_metrics(issue))
    return envelope(
        "Issue statistics retrieved successfully",
        {"issue": IssueOut.model_validate(issue), "metrics": metrics},
    )
