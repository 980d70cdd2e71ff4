from datetime import datetime
from typing import Optional

from .common import RequestModel, ResponseModel


class SettingUpsert(RequestModel):
    value: str
    description: Optional[str] = None


class SettingOut(ResponseModel):
    id: int
    key: str
    value: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime
