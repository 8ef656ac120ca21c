from functools import lru_cache
from typing import Generator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from approvalflow.core.config import get_settings
from approvalflow.core.security import Principal, decode_access_token
from approvalflow.core.workflow.service import WorkflowService
from approvalflow.db.session import SessionLocal
from approvalflow.services.workflow_engine import WorkflowEngineClient, get_engine_client

# Tokens come from the external auth service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_db() -> Generator:
    """Database session dependency. Uncommitted work is rolled back on close."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_principal(
    request: Request,
    token: str = Depends(oauth2_scheme),
) -> Principal:
    """Get the authenticated principal from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    principal = decode_access_token(token)
    if principal is None:
        raise credentials_exception

    request.state.principal = principal
    return principal


@lru_cache
def get_engine() -> WorkflowEngineClient:
    """Process-wide engine adapter (holds the HTTP connection pool)."""
    return get_engine_client(get_settings())


def get_workflow_service(
    db: Session = Depends(get_db),
    engine: WorkflowEngineClient = Depends(get_engine),
) -> WorkflowService:
    return WorkflowService(db, engine=engine)
