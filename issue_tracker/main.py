import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.orm import Session

from .config import Settings
from .database import Base, build_engine, build_session_factory, get_db
from .errors import register_exception_handlers
from .models import models  # noqa: F401  (registers every table on Base.metadata)
from .models.common import envelope, utcnow
from .routes import ai_vision, auth, categories, comments, excel, issues, photos, stats, users
from .routes import settings as settings_routes
from .routes.ai_vision import DETECTION_DIR

logger = logging.getLogger(__name__)

ROUTERS = [
    auth.router,
    issues.router,
    comments.router,
    categories.router,
    users.router,
    photos.router,
    stats.router,
    excel.router,
    settings_routes.router,
    ai_vision.router,
]


# -------------------------------------------------------
# FastAPI App Setup
# -------------------------------------------------------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application around one Settings instance.

    The engine, session factory and settings live on app.state; request
    handlers reach them through dependencies rather than module globals.
    """
    settings = settings or Settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Before app startup
        Base.metadata.create_all(bind=engine)
        os.makedirs(os.path.join(settings.UPLOAD_PATH, DETECTION_DIR), exist_ok=True)
        logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started")
        yield
        engine.dispose()

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    # Enable CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    for router in ROUTERS:
        app.include_router(router)

    # Detection images are public; issue photos stay behind /api/photos
    app.mount(
        f"/uploads/{DETECTION_DIR}",
        StaticFiles(directory=os.path.join(settings.UPLOAD_PATH, DETECTION_DIR), check_dir=False),
        name="ai-detections",
    )

    register_meta_routes(app)
    return app


def register_meta_routes(app: FastAPI) -> None:
    settings: Settings = app.state.settings

    # -------------------------------------------------------
    # Root Endpoint
    # -------------------------------------------------------
    @app.get("/", tags=["Meta"])
    def root():
        return envelope(f"{settings.APP_NAME} is running.")

    @app.get("/api", tags=["Meta"])
    def api_index():
        """Short directory of the API surface."""
        return envelope(
            f"{settings.APP_NAME} API",
            {
                "version": settings.APP_VERSION,
                "endpoints": {
                    "auth": "/api/auth",
                    "issues": "/api/issues",
                    "categories": "/api/categories",
                    "photos": "/api/photos",
                    "stats": "/api/stats",
                    "excel": "/api/excel",
                    "users": "/api/users",
                    "settings": "/api/settings",
                    "aiVision": "/api/ai-vision",
                },
                "userRoles": {
                    "USER": "Citizen - can create and view own issues",
                    "SUPERVISOR": "Can view assigned or unassigned issues and update them",
                    "OFFICE": "Can view and manage all issues",
                    "ADMIN": "Full access including users and categories",
                },
            },
        )

    # -------------------------------------------------------
    #  Health Check Endpoints
    # -------------------------------------------------------
    @app.get("/health", tags=["Health"])
    def health():
        return envelope(
            "Server is healthy",
            {"status": "ok", "timestamp": utcnow(), "version": settings.APP_VERSION},
        )

    @app.get("/health/live", tags=["Health"])
    def liveness_check():
        """Liveness probe - confirms app process is alive."""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["Health"])
    def readiness_check(db: Session = Depends(get_db)):
        """Readiness probe - verifies DB connectivity."""
        try:
            db.execute(text("SELECT 1"))
            return {"status": "ready"}
        except Exception as e:
            logger.warning(f"Readiness check failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Database not ready: {e}",
            )


app = create_app()
