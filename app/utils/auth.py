"""
Authentication utilities - JWT decoding and access scoping.

Identity itself is issued elsewhere; this service only verifies bearer tokens
whose ``sub`` is the user id and whose ``role`` is USER or ADMIN.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Dict
from jose import JWTError, jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.config.settings import settings

logger = logging.getLogger(__name__)

ADMIN_ROLE = "ADMIN"

# JWT Bearer token
security = HTTPBearer()


@dataclass(frozen=True)
class AccessScope:
    """Which records a caller may see: every record, or one owner's records"""
    owner_id: Optional[str] = None

    @property
    def is_all(self) -> bool:
        return self.owner_id is None

    def allows(self, owner_id) -> bool:
        return self.is_all or str(owner_id) == self.owner_id

    def apply(self, filter_query: Dict, field: str = "user_id") -> Dict:
        """Restrict a Mongo filter to this scope"""
        if not self.is_all:
            filter_query[field] = self.owner_id
        return filter_query


ALL_RECORDS = AccessScope()


def scope_for(current_user: Dict) -> AccessScope:
    """Admins see everything, everyone else only their own records"""
    if is_admin(current_user):
        return ALL_RECORDS
    return AccessScope(owner_id=current_user["_id"])


def is_admin(current_user: Dict) -> bool:
    return (current_user.get("role") or "").upper() == ADMIN_ROLE


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt

def decode_access_token(token: str) -> Dict:
    """Decode and verify a JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError as e:
        logger.warning("JWT verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Dict:
    """Get current authenticated user from JWT token"""
    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        logger.warning("Rejected token without subject")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )
    return {**payload, "_id": str(user_id), "role": (payload.get("role") or "USER").upper()}

async def require_admin(current_user: Dict = Depends(get_current_user)) -> Dict:
    """Dependency to require admin access"""
    if not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can perform this action"
        )
    return current_user
