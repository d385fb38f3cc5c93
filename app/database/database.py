from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

sync_engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
    echo=settings.DEBUG and settings.ENVIRONMENT == "development"
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

Base = declarative_base()


def get_db():
    """Yield a database session and always close it."""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def get_cooperative_query(session, model, cooperative_id):
    """Query scoped to a single cooperative when the model carries cooperative_id."""
    if cooperative_id is not None and hasattr(model, 'cooperative_id'):
        return session.query(model).filter(model.cooperative_id == cooperative_id)
    return session.query(model)
