"""Small parsing helpers shared by the affiliate routers."""
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request

from ..core.errors import ValidationError


def parse_iso_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    """ISO-8601 string -> naive UTC datetime. None passes through."""
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value!r}, expected ISO-8601")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None
