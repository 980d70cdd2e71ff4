import json
import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from ..config import Settings
from ..dependencies import get_ai_vision_client, get_current_user, get_settings
from ..errors import ValidationFailed
from ..models.common import envelope
from ..models.user import User
from ..policy import Action, Resource, authorize
from ..services.ai_vision import AIVisionClient
from ..services.blob_store import FileTooLarge, LocalBlobStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai-vision", tags=["AI Vision"])

DETECTION_DIR = "ai-detections"
MAX_DETECTION_IMAGE_SIZE = 10 * 1024 * 1024


@router.get("/detections")
def list_detections(
    limit: int = Query(50, ge=1, le=200),
    client: AIVisionClient = Depends(get_ai_vision_client),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.AI_VISION, Action.LIST)
    return envelope("Detections retrieved successfully", {"detections": client.recent_detections(limit)})


@router.post("/detections")
def save_detection(
    analysis_result: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
    client: AIVisionClient = Depends(get_ai_vision_client),
    current_user: User = Depends(get_current_user),
):
    """
    Record a detection produced by the vision service.

    The optional image is kept under UPLOAD_PATH/ai-detections. The record is
    forwarded to the service for storage; if that fails the locally built
    record is returned instead.
    """
    authorize(current_user, Resource.AI_VISION, Action.CREATE)
    if not analysis_result:
        raise ValidationFailed("Analysis result is required")
    try:
        result = json.loads(analysis_result)
    except ValueError:
        raise ValidationFailed("Analysis result must be valid JSON")
    if not isinstance(result, dict):
        raise ValidationFailed("Analysis result must be a JSON object")

    image_url = result.get("image_path")
    if image is not None and image.filename:
        store = LocalBlobStore(os.path.join(settings.UPLOAD_PATH, DETECTION_DIR), MAX_DETECTION_IMAGE_SIZE)
        if not store.is_allowed_image(image):
            raise ValidationFailed("Only image files are allowed")
        try:
            blob = store.save(image, prefix="ai")
        except FileTooLarge:
            raise ValidationFailed("Image too large")
        image_url = f"/uploads/{DETECTION_DIR}/{blob.filename}"

    detections = result.get("detections") or [{}]
    detection = detections[0] if isinstance(detections[0], dict) else {}

    saved = client.save_detection(
        {
            "detection_id": result.get("id"),
            "image_path": image_url,
            "sign_type": detection.get("class_name") or "unknown",
            "damage_type": detection.get("damage_type") or "ok",
            "severity": detection.get("severity") or "LOW",
            "confidence": detection.get("confidence") or 0,
            "timestamp": result.get("timestamp"),
        }
    )
    if saved is not None:
        return envelope("Detection saved successfully", saved)

    logger.info(f"Detection {result.get('id')} recorded locally only")
    return envelope(
        "Detection recorded",
        {
            "id": result.get("id"),
            "image_url": image_url,
            "sign_type": detection.get("class_name"),
            "damage_type": detection.get("damage_type"),
            "severity": detection.get("severity"),
            "timestamp": result.get("timestamp"),
        },
    )


@router.get("/stats")
def detection_stats(
    client: AIVisionClient = Depends(get_ai_vision_client),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.AI_VISION, Action.READ)
    return envelope("AI detection statistics retrieved successfully", client.stats())
