"""Request principal and bearer-token handling.

Tokens are issued by the external auth service; this module only verifies
them and turns their claims into a request-scoped ``Principal``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
import uuid

from jose import JWTError, jwt

from approvalflow.core.config import get_settings
from approvalflow.core.rbac.roles import Role, get_role_permissions


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, passed explicitly into every core operation."""

    username: str
    role: Role

    @property
    def permissions(self) -> list[str]:
        return get_role_permissions(self.role)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def create_access_token(
    username: str,
    role: Role,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed JWT for a username/role pair (development and tests)."""
    settings = get_settings()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": username,
        "role": Role(role).value,
        "exp": expire,
        "jti": str(uuid.uuid4()),
        "type": "access",
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Principal]:
    """Decode and validate a JWT. Returns the principal if valid."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    username = payload.get("sub")
    role = payload.get("role")
    if not username or not role:
        return None

    try:
        return Principal(username=username, role=Role(str(role).upper()))
    except ValueError:
        return None
