import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..config import Settings
from ..database import get_db
from ..dependencies import get_blob_store, get_current_user, get_settings
from ..errors import NotFound, ValidationFailed
from ..models.common import envelope
from ..models.issue import PhotoDescriptionUpdate, PhotoOut
from ..models.models import Issue, Photo
from ..models.user import User
from ..policy import Action, Resource, authorize, ensure_can_view_issue, owns_photo
from ..services.blob_store import FileTooLarge, LocalBlobStore, StoredBlob

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/photos", tags=["Photos"])


def get_photo_or_404(db: Session, photo_id: int) -> Photo:
    photo = db.query(Photo).filter(Photo.id == photo_id).first()
    if photo is None:
        raise NotFound("Photo not found")
    return photo


@router.post("/issues/{issue_id}", status_code=status.HTTP_201_CREATED)
def upload_photos(
    issue_id: int,
    photos: Optional[List[UploadFile]] = File(None),
    description: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    store: LocalBlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user),
):
    """
    Attach a batch of images to an issue.

    The whole batch is rejected if it would push the issue past
    MAX_PHOTOS_PER_ISSUE; any blob already written for the request is removed.
    """
    issue = db.query(Issue).filter(Issue.id == issue_id).first()
    if issue is None:
        raise NotFound("Issue not found")
    authorize(current_user, Resource.PHOTO, Action.CREATE)
    ensure_can_view_issue(current_user, issue)

    files = [upload for upload in photos or [] if upload.filename]
    if not files:
        raise ValidationFailed("No files uploaded")
    if len(files) > settings.MAX_FILES_PER_REQUEST:
        raise ValidationFailed(f"Maximum {settings.MAX_FILES_PER_REQUEST} files per upload")
    for upload in files:
        if not store.is_allowed_image(upload):
            raise ValidationFailed("Only image files are allowed")

    current_count = db.query(Photo).filter(Photo.issue_id == issue.id).count()
    if current_count + len(files) > settings.MAX_PHOTOS_PER_ISSUE:
        raise ValidationFailed(
            f"Maximum {settings.MAX_PHOTOS_PER_ISSUE} photos allowed per issue. Current: {current_count}"
        )

    stored: List[StoredBlob] = []
    try:
        for upload in files:
            stored.append(store.save(upload))
        records = [
            Photo(
                issue_id=issue.id,
                uploaded_by_id=current_user.id,
                filename=blob.filename,
                original_name=blob.original_name,
                mime_type=blob.mime_type,
                size=blob.size,
                path=blob.path,
                description=description or None,
            )
            for blob in stored
        ]
        db.add_all(records)
        db.commit()
    except FileTooLarge as e:
        db.rollback()
        store.delete_many(blob.path for blob in stored)
        raise ValidationFailed(f"File too large: {e}. Maximum size is {settings.MAX_FILE_SIZE} bytes")
    except Exception:
        db.rollback()
        store.delete_many(blob.path for blob in stored)
        raise

    for record in records:
        db.refresh(record)
    logger.info(f"{len(records)} photo(s) uploaded to issue {issue.id} by user {current_user.id}")
    return envelope(
        f"{len(records)} photo(s) uploaded successfully",
        {"photos": [PhotoOut.model_validate(record) for record in records]},
    )


@router.get("/{photo_id}")
def get_photo(
    photo_id: int,
    db: Session = Depends(get_db),
    store: LocalBlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user),
):
    photo = get_photo_or_404(db, photo_id)
    authorize(current_user, Resource.PHOTO, Action.READ)
    ensure_can_view_issue(current_user, photo.issue)

    if not store.exists(photo.path):
        raise NotFound("Photo file not found")
    return FileResponse(
        photo.path,
        media_type=photo.mime_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )


@router.put("/{photo_id}/description")
def update_photo_description(
    photo_id: int,
    payload: PhotoDescriptionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    photo = get_photo_or_404(db, photo_id)
    authorize(current_user, Resource.PHOTO, Action.UPDATE, is_owner=owns_photo(current_user, photo))

    photo.description = payload.description
    db.commit()
    db.refresh(photo)
    return envelope("Photo description updated successfully", {"photo": PhotoOut.model_validate(photo)})


@router.delete("/{photo_id}")
def delete_photo(
    photo_id: int,
    db: Session = Depends(get_db),
    store: LocalBlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user),
):
    photo = get_photo_or_404(db, photo_id)
    authorize(current_user, Resource.PHOTO, Action.DELETE, is_owner=owns_photo(current_user, photo))

    path = photo.path
    db.delete(photo)
    db.commit()
    store.delete(path)

    logger.info(f"Photo {photo_id} deleted by user {current_user.id}")
    return envelope("Photo deleted successfully")
