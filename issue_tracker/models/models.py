# models.py
from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    and_,
)
from sqlalchemy.orm import relationship

from ..database import Base
from .common import utcnow
from .user import User  # noqa: F401  (registers the users table for the FKs below)


class IssueStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class IssuePriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EMERGENCY = "EMERGENCY"


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    name_en = Column(String(100))
    description = Column(Text)
    color = Column(String(7), nullable=False)
    icon = Column(String(50))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    subcategories = relationship("Subcategory", back_populates="category", cascade="all, delete-orphan")
    active_subcategories = relationship(
        "Subcategory",
        primaryjoin=lambda: and_(Category.id == Subcategory.category_id, Subcategory.is_active.is_(True)),
        order_by=lambda: Subcategory.name,
        viewonly=True,
    )
    issues = relationship("Issue", back_populates="category")


class Subcategory(Base):
    __tablename__ = "subcategories"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    name_en = Column(String(100))
    description = Column(Text)
    color = Column(String(7), nullable=False)
    icon = Column(String(50))
    estimated_days = Column(Integer)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    category = relationship("Category", back_populates="subcategories")
    issues = relationship("Issue", back_populates="subcategory")


class Issue(Base):
    __tablename__ = "issues"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    address = Column(String(255), nullable=False)
    latitude = Column(Float)
    longitude = Column(Float)
    status = Column(SAEnum(IssueStatus, name="issue_status"), nullable=False, default=IssueStatus.PENDING)
    priority = Column(SAEnum(IssuePriority, name="issue_priority"), nullable=False, default=IssuePriority.MEDIUM)
    is_emergency = Column(Boolean, nullable=False, default=False)
    reference_number = Column(String(64), unique=True, nullable=False, index=True)
    estimated_completion_date = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    category_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id", ondelete="SET NULL"))
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    assigned_to_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))

    category = relationship("Category", back_populates="issues")
    subcategory = relationship("Subcategory", back_populates="issues")
    created_by = relationship("User", back_populates="created_issues", foreign_keys=[created_by_id])
    assigned_to = relationship("User", back_populates="assigned_issues", foreign_keys=[assigned_to_id])
    photos = relationship("Photo", back_populates="issue", cascade="all, delete-orphan", order_by="Photo.id")
    comments = relationship(
        "Comment", back_populates="issue", cascade="all, delete-orphan", order_by="Comment.created_at.desc()"
    )

    @property
    def photo_count(self) -> int:
        return len(self.photos)

    @property
    def comment_count(self) -> int:
        return len(self.comments)


class Photo(Base):
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, index=True)
    issue_id = Column(Integer, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False)
    uploaded_by_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)
    path = Column(String(1024), nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    issue = relationship("Issue", back_populates="photos")
    uploaded_by = relationship("User")


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    issue_id = Column(Integer, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    text = Column(Text, nullable=False)
    is_internal = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    issue = relationship("Issue", back_populates="comments")
    author = relationship("User")


class Setting(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
