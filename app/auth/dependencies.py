from typing import Dict, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from app.auth.schemas import CurrentUser
from app.auth.security import decode_access_token


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth")


def current_user_from_token(token: str) -> Optional[CurrentUser]:
    """Build the actor from token claims. Identity is owned by the auth service; the claims are trusted as issued."""
    try:
        payload = decode_access_token(token)
    except JWTError:
        return None

    user_id_str = payload.get("user_id") or payload.get("sub")
    tenant_id_str = payload.get("tenant_id")
    role_name = payload.get("role")
    if not user_id_str or not tenant_id_str or not role_name:
        return None

    try:
        user_id = UUID(str(user_id_str))
        tenant_id = UUID(str(tenant_id_str))
    except ValueError:
        return None

    permissions: Dict[str, Dict[str, bool]] = payload.get("permissions") or {}
    if not isinstance(permissions, dict):
        permissions = {}

    return CurrentUser(
        id=user_id,
        tenant_id=tenant_id,
        role=role_name,
        name=payload.get("name") or "Unknown",
        permissions=permissions,
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
) -> CurrentUser:
    """Resolve the authenticated actor and their permissions from the access token."""
    user = current_user_from_token(token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
