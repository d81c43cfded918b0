# app/core/auth/service.py
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from app.config.settings import settings

REQUIRED_CLAIMS = ("user_id", "role")

class AuthService:
    """Verifies bearer tokens issued by the external auth service"""
    
    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create a signed token (used by tooling and tests; production tokens come from the auth service)"""
        to_encode = data.copy()
        
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
        
        to_encode.update({"exp": expire})

        for claim in REQUIRED_CLAIMS:
            if claim not in to_encode:
                raise ValueError(f"{claim} is required in the token")

        return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    
    @staticmethod
    def verify_token(token: str) -> Optional[dict]:
        """Verify and decode a token, None when invalid or expired"""
        try:
            payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
            return payload
        except JWTError:
            return None
