from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SAEnum
from sqlalchemy.orm import relationship
from ..database import Base
from .common import RequestModel, ResponseModel, utcnow
from pydantic import EmailStr, Field
from typing import Optional
from datetime import datetime
from enum import Enum


# -------- Enums --------
class UserRole(str, Enum):
    ADMIN = "ADMIN"
    SUPERVISOR = "SUPERVISOR"
    OFFICE = "OFFICE"
    USER = "USER"


# -------------------------------
# SQLAlchemy ORM Model
# -------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50))
    role = Column(SAEnum(UserRole, name="user_role"), nullable=False, default=UserRole.USER)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    created_issues = relationship("Issue", back_populates="created_by", foreign_keys="Issue.created_by_id")
    assigned_issues = relationship("Issue", back_populates="assigned_to", foreign_keys="Issue.assigned_to_id")

    @property
    def is_staff(self) -> bool:
        return self.role != UserRole.USER


# -------------------------------
# Pydantic Schemas (for FastAPI)
# -------------------------------

# -------- Requests --------
class RegisterRequest(RequestModel):
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None


class LoginRequest(RequestModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class ProfileUpdateRequest(RequestModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None


class ChangePasswordRequest(RequestModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class UserCreateRequest(RegisterRequest):
    role: UserRole = UserRole.USER


class UserUpdateRequest(RequestModel):
    """Admin-side partial update; only fields present in the body are applied."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


# -------- Responses --------
class UserBrief(ResponseModel):
    id: int
    first_name: str
    last_name: str


class UserSummary(UserBrief):
    email: EmailStr


class UserOut(ResponseModel):
    id: int
    email: EmailStr
    username: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime


class IssueCounts(ResponseModel):
    created_issues: int = 0
    assigned_issues: int = 0


class UserWithCounts(UserOut):
    counts: IssueCounts = Field(default_factory=IssueCounts)


class AssigneeOut(ResponseModel):
    id: int
    first_name: str
    last_name: str
    email: EmailStr
    role: UserRole
    open_assigned_issues: int = 0


class AuthResult(ResponseModel):
    user: UserOut
    token: str
