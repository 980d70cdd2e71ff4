import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Response, UploadFile
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import lifecycle
from ..config import Settings
from ..database import get_db
from ..dependencies import get_current_user, get_settings
from ..errors import ValidationFailed
from ..models.common import envelope, utcnow
from ..models.models import Category, Issue, IssuePriority, IssueStatus
from ..models.user import User
from ..policy import Action, Resource, authorize
from ..services.excel_codec import (
    XLSX_MEDIA_TYPE,
    ImportRow,
    InvalidWorkbook,
    export_issues,
    import_issues,
)
from ..services.issue_query import IssueFilters, build_issue_query, issue_filters
from .issues import reference_exists

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/excel", tags=["Excel"])


@router.get("/export")
def export_excel(
    filters: IssueFilters = Depends(issue_filters),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Download every visible issue matching the filters as .xlsx."""
    authorize(current_user, Resource.EXCEL, Action.EXPORT, message="Access denied. Staff only feature.")
    issues = build_issue_query(db, current_user, filters).all()
    content = export_issues(issues)

    filename = f"myGlyfada_Issues_Export_{utcnow():%Y-%m-%d}.xlsx"
    logger.info(f"User {current_user.id} exported {len(issues)} issues")
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import")
def import_excel(
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(get_current_user),
):
    """Create one issue per worksheet row; each row succeeds or fails on its own."""
    authorize(current_user, Resource.EXCEL, Action.IMPORT, message="Access denied. Admin only feature.")
    if file is None or not file.filename:
        raise ValidationFailed("No Excel file uploaded")
    content = file.file.read()

    def resolve_category(name: str) -> Optional[int]:
        category = (
            db.query(Category)
            .filter(Category.is_active.is_(True), or_(Category.name == name, Category.name_en == name))
            .first()
        )
        return category.id if category else None

    def create_issue(row: ImportRow, category_id: int) -> None:
        now = utcnow()
        issue = Issue(
            title=row.title,
            description=row.description,
            address=row.address,
            category_id=category_id,
            status=IssueStatus.PENDING,
            priority=IssuePriority.MEDIUM,
            is_emergency=False,
            created_by_id=current_user.id,
            reference_number=lifecycle.generate_reference_number(
                f"{settings.REFERENCE_PREFIX}-IMP", reference_exists(db), now
            ),
            created_at=now,
            updated_at=now,
        )
        db.add(issue)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise

    try:
        report = import_issues(content, resolve_category, create_issue)
    except InvalidWorkbook as e:
        logger.info(f"Rejected import file {file.filename}: {e}")
        raise ValidationFailed("Invalid Excel file format")

    logger.info(f"Import by user {current_user.id}: {report.successful} created, {report.failed} failed")
    return envelope("Import completed", report.to_dict())
