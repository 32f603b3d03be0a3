# app/api/deps.py

from dataclasses import dataclass
from typing import AsyncGenerator, Optional
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.exceptions import ClearanceError
from app.core.security import decode_token
from app.models.enums import ActorRole


# ------------------------------------------------------------
# HTTP Bearer Authentication
# ------------------------------------------------------------
bearer_scheme = HTTPBearer(auto_error=True)


@dataclass(frozen=True)
class Principal:
    """The caller, as described by the identity provider's token."""
    id: UUID
    role: ActorRole
    name: Optional[str] = None
    email: Optional[str] = None


# ------------------------------------------------------------
# DB Session
# ------------------------------------------------------------
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


# ------------------------------------------------------------
# Get current caller from JWT
# ------------------------------------------------------------
async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Principal:

    try:
        payload = decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Could not validate credentials")

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or not role:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token payload")

    try:
        return Principal(
            id=UUID(str(subject)),
            role=ActorRole(str(role).strip().lower()),
            name=payload.get("name"),
            email=payload.get("email"),
        )
    except ValueError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token payload")


# ------------------------------------------------------------
# Workflow errors -> HTTP
# ------------------------------------------------------------
def to_http_error(exc: ClearanceError) -> HTTPException:
    if exc.status_code >= 500:
        logger.error(f"Clearance error: {exc.message}")
    else:
        logger.warning(f"Clearance request refused [{exc.error_code}]: {exc.message}")

    detail = {"error_code": exc.error_code, "message": exc.message}
    missing = getattr(exc, "missing", None)
    if missing:
        detail["missing"] = missing
    return HTTPException(status_code=exc.status_code, detail=detail)
