# app/core/auth/dependencies.py
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import List, Optional

from app.core.auth.service import AuthService

security = HTTPBearer()

ADMIN = "admin"
AGENT = "agent"
CUSTOMER = "customer"

class CurrentUser(BaseModel):
    """Caller identity as asserted by the auth service token"""
    id: int
    role: str
    city: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN

class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """Current caller from the bearer token"""
    
    payload = AuthService.verify_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Invalid or expired token")
    
    user_id = payload.get("user_id")
    role = payload.get("role")
    if user_id is None or role is None:
        raise AuthenticationError("Invalid token payload")
    
    return CurrentUser(
        id=int(user_id),
        role=role,
        city=payload.get("city"),
        name=payload.get("name")
    )

def require_roles(allowed_roles: List[str]):
    """Factory for a dependency that only lets the given roles through"""
    def role_checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                f"Role '{current_user.role}' not allowed. Allowed roles: {allowed_roles}"
            )
        return current_user
    return role_checker

def get_admin_user(current_user: CurrentUser = Depends(require_roles([ADMIN]))):
    """Hub operator"""
    return current_user

def get_agent_user(current_user: CurrentUser = Depends(require_roles([AGENT]))):
    """Field agent"""
    return current_user

def resolve_city(current_user: CurrentUser, city: Optional[str]) -> str:
    """City a view is scoped to: the explicit query value or the operator's own hub"""
    resolved = city or current_user.city
    if not resolved:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A city is required for this view")
    return resolved
