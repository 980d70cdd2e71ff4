"""
Categories and subcategories (reference data).

Reads are open to any authenticated user; writes are admin-only. Deletes
are soft and refused while issues still reference the row.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session, selectinload

from ..database import get_db
from ..dependencies import get_current_user
from ..errors import Conflict, NotFound
from ..models.category import (
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    SubcategoryCreate,
    SubcategoryOut,
    SubcategoryUpdate,
)
from ..models.common import envelope
from ..models.models import Category, Issue, Subcategory
from ..models.user import User
from ..policy import Action, Resource, authorize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["Categories"])


def get_active_category(db: Session, category_id: int) -> Category:
    category = (
        db.query(Category)
        .options(selectinload(Category.active_subcategories))
        .filter(Category.id == category_id, Category.is_active.is_(True))
        .first()
    )
    if category is None:
        raise NotFound("Category not found")
    return category


def get_active_subcategory(db: Session, subcategory_id: int) -> Subcategory:
    subcategory = (
        db.query(Subcategory)
        .filter(Subcategory.id == subcategory_id, Subcategory.is_active.is_(True))
        .first()
    )
    if subcategory is None:
        raise NotFound("Subcategory not found")
    return subcategory


def patch_of(payload) -> dict:
    # name and color are NOT NULL; a null in the body leaves them unchanged
    return {
        name: value
        for name, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or name not in ("name", "color")
    }


def ensure_unique_category_name(db: Session, name: str, exclude_id: int = None) -> None:
    query = db.query(Category.id).filter(Category.name == name, Category.is_active.is_(True))
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise Conflict("Category with this name already exists")


def ensure_unique_subcategory_name(db: Session, category_id: int, name: str, exclude_id: int = None) -> None:
    query = db.query(Subcategory.id).filter(
        Subcategory.category_id == category_id,
        Subcategory.name == name,
        Subcategory.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(Subcategory.id != exclude_id)
    if query.first():
        raise Conflict("Subcategory with this name already exists in this category")


# -------------------------------------------------------
# SUBCATEGORIES (declared before /{category_id})
# -------------------------------------------------------
@router.post("/subcategories", status_code=status.HTTP_201_CREATED)
def create_subcategory(
    payload: SubcategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.CATEGORY, Action.CREATE)
    category = get_active_category(db, payload.category_id)
    ensure_unique_subcategory_name(db, category.id, payload.name)

    subcategory = Subcategory(**payload.model_dump())
    db.add(subcategory)
    db.commit()
    db.refresh(subcategory)

    logger.info(f"Subcategory {subcategory.id} created in category {category.id}")
    return envelope("Subcategory created successfully", {"subcategory": SubcategoryOut.model_validate(subcategory)})


@router.put("/subcategories/{subcategory_id}")
def update_subcategory(
    subcategory_id: int,
    payload: SubcategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.CATEGORY, Action.UPDATE)
    subcategory = get_active_subcategory(db, subcategory_id)

    changes = patch_of(payload)
    if changes.get("name") and changes["name"] != subcategory.name:
        ensure_unique_subcategory_name(db, subcategory.category_id, changes["name"], exclude_id=subcategory.id)
    for name, value in changes.items():
        setattr(subcategory, name, value)
    db.commit()
    db.refresh(subcategory)
    return envelope("Subcategory updated successfully", {"subcategory": SubcategoryOut.model_validate(subcategory)})


@router.delete("/subcategories/{subcategory_id}")
def delete_subcategory(
    subcategory_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.CATEGORY, Action.DELETE)
    subcategory = get_active_subcategory(db, subcategory_id)

    if db.query(Issue.id).filter(Issue.subcategory_id == subcategory.id).first():
        raise Conflict("Cannot delete subcategory with existing issues")

    subcategory.is_active = False
    db.commit()
    logger.info(f"Subcategory {subcategory.id} deactivated")
    return envelope("Subcategory deleted successfully")


# -------------------------------------------------------
# CATEGORIES
# -------------------------------------------------------
@router.get("")
def list_categories(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    authorize(current_user, Resource.CATEGORY, Action.LIST)
    categories = (
        db.query(Category)
        .options(selectinload(Category.active_subcategories))
        .filter(Category.is_active.is_(True))
        .order_by(Category.name)
        .all()
    )
    return envelope(
        "Categories retrieved successfully",
        {"categories": [CategoryOut.model_validate(category) for category in categories]},
    )


@router.get("/{category_id}")
def get_category(category_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    authorize(current_user, Resource.CATEGORY, Action.READ)
    category = get_active_category(db, category_id)
    return envelope("Category retrieved successfully", {"category": CategoryOut.model_validate(category)})


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.CATEGORY, Action.CREATE)
    ensure_unique_category_name(db, payload.name)

    category = Category(**payload.model_dump())
    db.add(category)
    db.commit()
    db.refresh(category)

    logger.info(f"Category {category.id} ({category.name}) created")
    return envelope("Category created successfully", {"category": CategoryOut.model_validate(category)})


@router.put("/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.CATEGORY, Action.UPDATE)
    category = get_active_category(db, category_id)

    changes = patch_of(payload)
    if changes.get("name") and changes["name"] != category.name:
        ensure_unique_category_name(db, changes["name"], exclude_id=category.id)
    for name, value in changes.items():
        setattr(category, name, value)
    db.commit()
    db.refresh(category)
    return envelope("Category updated successfully", {"category": CategoryOut.model_validate(category)})


@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    authorize(current_user, Resource.CATEGORY, Action.DELETE)
    category = get_active_category(db, category_id)

    issue_count = db.query(Issue).filter(Issue.category_id == category.id).count()
    if issue_count > 0:
        raise Conflict("Cannot delete category with existing issues")

    category.is_active = False
    for subcategory in category.subcategories:
        subcategory.is_active = False
    db.commit()

    logger.info(f"Category {category.id} and its subcategories deactivated")
    return envelope("Category deleted successfully")
