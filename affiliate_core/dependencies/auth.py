"""
Authentication dependencies for role-based access control.

One gate for every admin and partner-portal route: a Bearer JWT carrying a
`role` claim (admin | partner) and, for partners, a `partner_id` claim.
"""
from dataclasses import dataclass
from typing import Optional
from fastapi import HTTPException, status, Request
from jose import jwt, JWTError

from ..core.security import decode_access_token


@dataclass
class Principal:
    subject: str
    role: str
    partner_id: Optional[str] = None


def get_current_principal(request: Request) -> Principal:
    """
    Decode the Bearer token from the Authorization header.

    Raises:
        HTTPException 401: If token is missing, invalid, expired or has no role
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header"
        )

    token = auth_header[7:]  # Remove "Bearer " prefix

    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired"
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    role = payload.get("role")
    if not role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no role"
        )
    principal = Principal(subject=str(payload.get("sub", "")), role=role, partner_id=payload.get("partner_id"))
    request.state.partner_id = principal.partner_id
    return principal


def require_role(required_role: str):
    """
    Dependency factory to require a specific role. Admin passes every check.

    Usage:
        @router.get("/endpoint")
        def endpoint(principal: Principal = Depends(require_role("partner"))):
            ...
    """
    def role_checker(request: Request) -> Principal:
        principal = get_current_principal(request)

        if principal.role == "admin":
            return principal

        if principal.role != required_role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{required_role}' required"
            )

        if required_role == "partner" and not principal.partner_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Token is not bound to a partner"
            )

        return principal

    return role_checker


require_admin = require_role("admin")
require_partner = require_role("partner")
