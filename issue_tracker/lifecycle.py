"""
Issue lifecycle rules.

Status may move between any of the five values (staff decide), but two side
effects are enforced on every write:

- completed_at is stamped when status enters COMPLETED and cleared when it
  leaves COMPLETED, so it is non-null exactly while the issue is completed.
- is_emergency forces priority to EMERGENCY.

Overdue state is derived on read from the subcategory's estimated_days.
"""

import logging
import secrets
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from .models.common import utcnow
from .models.models import Issue, IssuePriority, IssueStatus

logger = logging.getLogger(__name__)

OPEN_STATUSES = frozenset({IssueStatus.PENDING, IssueStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset({IssueStatus.COMPLETED, IssueStatus.REJECTED, IssueStatus.CANCELLED})

REFERENCE_ATTEMPTS = 5


def effective_priority(priority: Optional[IssuePriority], is_emergency: bool) -> IssuePriority:
    if is_emergency:
        return IssuePriority.EMERGENCY
    return priority or IssuePriority.MEDIUM


def transition_status(issue: Issue, new_status: IssueStatus, now: Optional[datetime] = None) -> None:
    """Set issue.status and keep completed_at consistent with it."""
    previous = issue.status
    issue.status = new_status
    if new_status == IssueStatus.COMPLETED:
        if previous != IssueStatus.COMPLETED:
            issue.completed_at = now or utcnow()
    elif issue.completed_at is not None:
        issue.completed_at = None
    if previous != new_status:
        logger.info(f"Issue {issue.reference_number}: {_value(previous)} -> {new_status.value}")


def apply_changes(issue: Issue, changes: Mapping[str, Any], now: Optional[datetime] = None) -> Issue:
    """
    Apply an already permission-filtered patch to an issue.

    Plain fields are copied as-is (explicit None included); status goes
    through transition_status; priority is re-derived afterwards so the
    emergency rule holds for the resulting state.
    """
    for name, value in changes.items():
        if name == "status":
            continue
        setattr(issue, name, value)

    if "status" in changes and changes["status"] is not None:
        transition_status(issue, IssueStatus(changes["status"]), now)

    if issue.is_emergency:
        issue.priority = IssuePriority.EMERGENCY
    return issue


def days_between(start: datetime, end: datetime) -> int:
    return (end - start).days


def issue_metrics(issue: Issue, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    days_since_created = days_between(issue.created_at, now)
    days_to_complete = days_between(issue.created_at, issue.completed_at) if issue.completed_at else None
    estimated_days = issue.subcategory.estimated_days if issue.subcategory is not None else None
    return {
        "days_since_created": days_since_created,
        "days_to_complete": days_to_complete,
        "estimated_days": estimated_days,
        "is_overdue": is_overdue(issue, now),
        "photo_count": issue.photo_count,
        "comment_count": issue.comment_count,
    }


def is_overdue(issue: Issue, now: Optional[datetime] = None) -> bool:
    if issue.status not in OPEN_STATUSES:
        return False
    estimated_days = issue.subcategory.estimated_days if issue.subcategory is not None else None
    if not estimated_days:
        return False
    return days_between(issue.created_at, now or utcnow()) > estimated_days


def generate_reference_number(
    prefix: str,
    exists: Callable[[str], bool],
    now: Optional[datetime] = None,
) -> str:
    """
    Build a reference like GLY-20260119143005-3FA9C1.

    `exists` is asked about each candidate; a collision with a live issue
    triggers a fresh random suffix. Deleted issues are not consulted: their
    references carry an earlier timestamp, so a clash needs a delete and a
    create in the same second with the same 24-bit suffix.
    """
    now = now or utcnow()
    for _ in range(REFERENCE_ATTEMPTS):
        candidate = f"{prefix}-{now:%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"
        if not exists(candidate):
            return candidate
        logger.warning(f"Reference number collision on {candidate}, retrying")
    raise RuntimeError("Could not generate a unique reference number")


def _value(status) -> str:
    return status.value if isinstance(status, IssueStatus) else str(status)
