"""Admin key/value store for runtime options."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_current_user
from ..errors import NotFound
from ..models.common import envelope
from ..models.models import Setting
from ..models.setting import SettingOut, SettingUpsert
from ..models.user import User
from ..policy import Action, Resource, authorize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["Settings"])


def get_setting_or_404(db: Session, key: str) -> Setting:
    setting = db.query(Setting).filter(Setting.key == key).first()
    if setting is None:
        raise NotFound("Setting not found")
    return setting


@router.get("")
def list_settings(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    authorize(current_user, Resource.SETTING, Action.LIST)
    settings = db.query(Setting).order_by(Setting.key).all()
    return envelope(
        "Settings retrieved successfully",
        {"settings": [SettingOut.model_validate(setting) for setting in settings]},
    )


@router.get("/{key}")
def get_setting(key: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    authorize(current_user, Resource.SETTING, Action.READ)
    setting = get_setting_or_404(db, key)
    return envelope("Setting retrieved successfully", {"setting": SettingOut.model_validate(setting)})


@router.put("/{key}")
def put_setting(
    key: str,
    payload: SettingUpsert,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create the key or overwrite its value."""
    authorize(current_user, Resource.SETTING, Action.UPDATE)
    setting = db.query(Setting).filter(Setting.key == key).first()
    if setting is None:
        setting = Setting(key=key, value=payload.value, description=payload.description)
        db.add(setting)
    else:
        setting.value = payload.value
        if "description" in payload.model_fields_set:
            setting.description = payload.description
    db.commit()
    db.refresh(setting)

    logger.info(f"Setting {key} updated by admin {current_user.id}")
    return envelope("Setting saved successfully", {"setting": SettingOut.model_validate(setting)})


@router.delete("/{key}")
def delete_setting(key: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    authorize(current_user, Resource.SETTING, Action.DELETE)
    setting = get_setting_or_404(db, key)
    db.delete(setting)
    db.commit()
    return envelope("Setting deleted successfully")
