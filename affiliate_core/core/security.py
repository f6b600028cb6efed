from datetime import datetime, timedelta
from typing import Optional, Any, Dict
from jose import jwt
from ..config import settings


def create_access_token(
    subject: str,
    role: str,
    partner_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    expire = datetime.utcnow() + expires_delta
    payload: Dict[str, Any] = {"sub": subject, "role": role, "exp": expire}
    if partner_id:
        payload["partner_id"] = partner_id
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
