from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

# --- Declare Base for ORM Models ---
# models/user.py and models/models.py import this Base to define classes
Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the SQLAlchemy engine for the configured database."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # SQLite connections are shared across FastAPI's worker threads
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


# --- FastAPI Dependency for Database Session ---
def get_db(request: Request):
    """
    Dependency that provides a database session for each request.
    Ensures the session is properly closed after use.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
