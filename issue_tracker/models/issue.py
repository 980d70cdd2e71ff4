from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from .category import CategorySummary, SubcategorySummary
from .common import RequestModel, ResponseModel
from .models import IssuePriority, IssueStatus
from .user import UserBrief, UserRole, UserSummary


# -------- Requests --------
class IssueCreate(RequestModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=10)
    address: str = Field(..., min_length=1, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    category_id: int
    subcategory_id: Optional[int] = None
    priority: IssuePriority = IssuePriority.MEDIUM
    is_emergency: bool = False


class IssueUpdate(RequestModel):
    """
    Partial update of an issue.

    Only keys present in the request body are part of the patch, so a key
    sent as null (e.g. "assignedToId": null to unassign) is distinguishable
    from a key that was left out.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=10)
    address: Optional[str] = Field(None, min_length=1, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    status: Optional[IssueStatus] = None
    priority: Optional[IssuePriority] = None
    is_emergency: Optional[bool] = None
    assigned_to_id: Optional[int] = None

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly present in the patch, including explicit nulls."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class CommentCreate(RequestModel):
    text: str = Field(..., min_length=1)
    is_internal: bool = False


class PhotoDescriptionUpdate(RequestModel):
    description: Optional[str] = None


# -------- Responses --------
class CommentAuthor(UserBrief):
    role: UserRole


class CommentOut(ResponseModel):
    id: int
    issue_id: int
    text: str
    is_internal: bool
    created_at: datetime
    author: CommentAuthor


class PhotoOut(ResponseModel):
    id: int
    issue_id: int
    filename: str
    original_name: str
    mime_type: str
    size: int
    description: Optional[str] = None
    created_at: datetime
    uploaded_by: Optional[UserBrief] = None


class PhotoSummary(ResponseModel):
    id: int
    filename: str
    original_name: str
    description: Optional[str] = None


class IssueOut(ResponseModel):
    id: int
    reference_number: str
    title: str
    description: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: IssueStatus
    priority: IssuePriority
    is_emergency: bool
    estimated_completion_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    category_id: int
    subcategory_id: Optional[int] = None
    created_by_id: int
    assigned_to_id: Optional[int] = None
    category: CategorySummary
    subcategory: Optional[SubcategorySummary] = None
    created_by: UserSummary
    assigned_to: Optional[UserSummary] = None
    photos: List[PhotoSummary] = Field(default_factory=list)
    comment_count: int = 0


class IssueDetail(IssueOut):
    photos: List[PhotoOut] = Field(default_factory=list)
    comments: List[CommentOut] = Field(default_factory=list)


class IssueMetrics(ResponseModel):
    days_since_created: int
    days_to_complete: Optional[int] = None
    estimated_days: Optional[int] = None
    is_overdue: bool
    photo_count: int = 0
    comment_count: int = 0
