import itertools

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from issue_tracker.auth_utils import hash_password
from issue_tracker.config import Settings
from issue_tracker.database import Base, get_db
from issue_tracker.main import create_app
from issue_tracker.models.models import Category, Issue, IssuePriority, IssueStatus, Subcategory
from issue_tracker.models.user import User, UserRole
from issue_tracker.routes.auth import issue_token


# -------------------------------------------------------
# Test Database Setup
# -------------------------------------------------------
# Use in-memory SQLite for fast, isolated tests
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "password123"
# Hash once; bcrypt is deliberately slow
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)

_counter = itertools.count(1)


# -------------------------------------------------------
# Fixtures
# -------------------------------------------------------
@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=SQLALCHEMY_DATABASE_URL,
        JWT_SECRET="test-secret",
        UPLOAD_PATH=str(tmp_path / "uploads"),
        MAX_FILE_SIZE=1024,
        MAX_FILES_PER_REQUEST=5,
        MAX_PHOTOS_PER_ISSUE=3,
        AI_VISION_URL="http://ai-vision.test",
        AI_VISION_TIMEOUT=0.5,
    )


@pytest.fixture
def db_session():
    """Session used by the test itself for setup and assertions."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        # Drop tables to ensure clean slate for next test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def app(settings, db_session):
    app = create_app(settings)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


# -------------------------------------------------------
# Factories
# -------------------------------------------------------
@pytest.fixture
def make_user(db_session):
    def _make(role=UserRole.USER, is_active=True, **fields):
        n = next(_counter)
        user = User(
            email=fields.pop("email", f"user{n}@example.com"),
            username=fields.pop("username", f"user{n}"),
            password_hash=TEST_PASSWORD_HASH,
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", f"User{n}"),
            role=role,
            is_active=is_active,
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers(settings):
    def _headers(user):
        return {"Authorization": f"Bearer {issue_token(user, settings)}"}

    return _headers


@pytest.fixture
def make_category(db_session):
    def _make(name=None, subcategories=(), **fields):
        n = next(_counter)
        category = Category(
            name=name or f"Category {n}",
            name_en=fields.pop("name_en", f"Category EN {n}"),
            color=fields.pop("color", "#FF0000"),
            **fields,
        )
        for sub_name, estimated_days in subcategories:
            category.subcategories.append(Subcategory(name=sub_name, color="#00FF00", estimated_days=estimated_days))
        db_session.add(category)
        db_session.commit()
        db_session.refresh(category)
        return category

    return _make


@pytest.fixture
def make_issue(db_session):
    def _make(created_by, category, **fields):
        n = next(_counter)
        is_emergency = fields.pop("is_emergency", False)
        priority = fields.pop("priority", IssuePriority.MEDIUM)
        issue = Issue(
            title=fields.pop("title", f"Issue {n}"),
            description=fields.pop("description", "A broken street light near the square"),
            address=fields.pop("address", "Leoforos Vouliagmenis 1"),
            category_id=category.id,
            created_by_id=created_by.id,
            status=fields.pop("status", IssueStatus.PENDING),
            priority=IssuePriority.EMERGENCY if is_emergency else priority,
            is_emergency=is_emergency,
            reference_number=fields.pop("reference_number", f"GLY-TEST-{n:06d}"),
            **fields,
        )
        db_session.add(issue)
        db_session.commit()
        db_session.refresh(issue)
        return issue

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, email="admin@example.com", username="admin")


@pytest.fixture
def citizen(make_user):
    return make_user(UserRole.USER, email="citizen@example.com", username="citizen")


@pytest.fixture
def category(make_category):
    return make_category(name="Ηλεκτροφωτισμός", name_en="Lighting", subcategories=[("Λάμπες", 5)])


@pytest.fixture
def password():
    return TEST_PASSWORD
