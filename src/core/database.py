"""Database connection and session management.

This module handles the database connection using SQLAlchemy and wires the
process-wide change feed to the session factory.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATA_DIR, DATABASE_URL
from core.change_feed import ChangeFeed, track_changes
from models.base import Base
# Import models to ensure they are registered with Base.metadata
import models  # noqa: F401
from models.access_request import AccessRequestModel
from models.class_student import ClassStudentModel
from models.notification import NotificationModel

SQLALCHEMY_DATABASE_URL = DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    kwargs = {"connect_args": {"check_same_thread": False}}
    # In-memory databases live on a single connection shared by all threads
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    else:
        # Ensure data directory exists
        DATA_DIR.mkdir(parents=True, exist_ok=True)
    return kwargs


engine = create_engine(SQLALCHEMY_DATABASE_URL, **_engine_kwargs(SQLALCHEMY_DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Rows whose changes are pushed to realtime subscribers
for _model in (AccessRequestModel, ClassStudentModel, NotificationModel):
    track_changes(_model)

change_feed = ChangeFeed()
change_feed.bind(SessionLocal)


def init_db():
    Base.metadata.create_all(bind=engine)


# Initialize DB (create tables if not exist)
init_db()


def get_db():
    """Dependency for getting a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
