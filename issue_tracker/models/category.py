from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .common import RequestModel, ResponseModel

COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


# -------- Requests --------
class CategoryCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    name_en: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    color: str = Field(..., pattern=COLOR_PATTERN)
    icon: Optional[str] = Field(None, max_length=50)


class CategoryUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    name_en: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)
    icon: Optional[str] = Field(None, max_length=50)


class SubcategoryCreate(CategoryCreate):
    category_id: int
    estimated_days: Optional[int] = Field(None, gt=0)


class SubcategoryUpdate(CategoryUpdate):
    estimated_days: Optional[int] = Field(None, gt=0)


# -------- Responses --------
class SubcategorySummary(ResponseModel):
    id: int
    name: str
    name_en: Optional[str] = None
    color: str
    icon: Optional[str] = None
    estimated_days: Optional[int] = None


class SubcategoryOut(SubcategorySummary):
    category_id: int
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CategorySummary(ResponseModel):
    id: int
    name: str
    name_en: Optional[str] = None
    color: str
    icon: Optional[str] = None


class CategoryOut(CategorySummary):
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    subcategories: List[SubcategoryOut] = Field(default_factory=list, validation_alias="active_subcategories")
