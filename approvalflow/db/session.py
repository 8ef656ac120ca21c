from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from approvalflow.core.config import get_settings
from approvalflow.core.errors import ConcurrentUpdateError

settings = get_settings()

connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def flush(db: Session) -> None:
    """Flush pending changes, reporting version conflicts as ConcurrentUpdateError."""
    try:
        db.flush()
    except StaleDataError as e:
        raise ConcurrentUpdateError(
            "The record was modified by another request; reload and retry"
        ) from e
