import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from .config import get_settings
from .database import get_db
from . import models, crud


security_logger = logging.getLogger("security")

# Tokens are issued by the identity provider; this service only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/token")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign an access token the same way the identity provider does (tooling and tests)."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc), "type": "access"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

def create_token_for_user(user: models.User, expires_delta: Optional[timedelta] = None) -> str:
    return create_access_token(
        {"sub": user.email, "user_id": user.id, "role": user.role.value},
        expires_delta=expires_delta,
    )

def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])

        if payload.get("type") != token_type:
            return None

        return payload
    except JWTError:
        return None

# Dependencies for FastAPI
async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> models.User:
    """Resolve the authenticated caller from the bearer token"""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_token(token, "access")
    if not payload:
        security_logger.warning(f"Rejected token for path: {request.url.path}")
        raise credentials_exception

    user_id = payload.get("user_id")
    if not payload.get("sub") or not user_id:
        raise credentials_exception

    user = crud.get_user(db, user_id=user_id)
    if not user:
        raise credentials_exception

    if not user.is_active:
        security_logger.warning(f"Inactive user {user_id} attempted access to {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user

def require_role(*allowed_roles: str):
    """Decorator factory for role-based access control"""
    def role_dependency(current_user: models.User = Depends(get_current_user)) -> models.User:
        if current_user.role.value not in allowed_roles:
            security_logger.info(f"User {current_user.id} ({current_user.role.value}) denied; requires {allowed_roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}"
            )
        return current_user

    return role_dependency

# Specific role dependencies
require_patient = require_role("PATIENT")
require_doctor = require_role("DOCTOR")
require_clinic_admin = require_role("CLINIC_ADMIN")
require_admin = require_role("ADMIN")

def get_current_doctor(
    current_user: models.User = Depends(require_doctor),
    db: Session = Depends(get_db)
) -> models.Doctor:
    """The Doctor profile of the authenticated DOCTOR user."""
    doctor = crud.get_doctor_by_user_id(db, current_user.id)
    if not doctor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor profile not found for this user"
        )
    return doctor
