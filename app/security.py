# FILE: app/security.py
# ==============================================================================
# Bearer-token verification. Sessions are issued by the identity provider as
# HS256 JWTs; we only verify them and resolve the caller into an Identity that
# is passed explicitly into every operation.
# ==============================================================================
import hmac
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, models
from .database import get_db
from .errors import AuthenticationError, AuthorizationError

JWT_AUDIENCE = "authenticated"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: Optional[str]
    email: Optional[str] = None
    roles: FrozenSet[models.AppRole] = field(default_factory=frozenset)
    is_service: bool = False

    @property
    def is_admin(self) -> bool:
        return self.is_service or models.AppRole.ADMIN in self.roles


SERVICE_IDENTITY = Identity(user_id=None, is_service=True)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            config.SUPABASE_JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
        )
    except JWTError as e:
        raise AuthenticationError(f"Invalid or expired token: {e}")


async def load_roles(db: AsyncSession, user_id: str) -> FrozenSet[models.AppRole]:
    result = await db.execute(
        select(models.UserRoleAssignment.role).where(models.UserRoleAssignment.user_id == user_id)
    )
    return frozenset(result.scalars().all())


def is_service_token(token: str) -> bool:
    key = config.SUPABASE_SERVICE_ROLE_KEY
    return bool(key) and hmac.compare_digest(token.encode(), key.encode())


async def resolve_identity(token: str, db: AsyncSession) -> Identity:
    if is_service_token(token):
        return SERVICE_IDENTITY
    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no subject")
    roles = await load_roles(db, user_id)
    return Identity(user_id=user_id, email=payload.get("email"), roles=roles)


# --- FastAPI dependencies ---

async def get_optional_identity(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[Identity]:
    if not creds or creds.scheme.lower() != "bearer" or not creds.credentials:
        return None
    return await resolve_identity(creds.credentials, db)


async def get_identity(
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> Identity:
    if identity is None:
        raise AuthenticationError("No authorization header provided")
    return identity


async def require_service_role(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_service:
        logging.warning(f"AUTH: user {identity.user_id} attempted a service-role call")
        raise AuthorizationError("Service role required")
    return identity


# --- Plain checks used inside operations ---

def ensure_user(identity: Optional[Identity]) -> Identity:
    if identity is None or not identity.user_id:
        raise AuthenticationError("User not authenticated")
    return identity


def ensure_admin(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise AuthenticationError("User not authenticated")
    if not identity.is_admin:
        logging.info(f"AUTH: user {identity.user_id} attempted admin action without admin role")
        raise AuthorizationError("Forbidden: Admin access required")
    return identity
