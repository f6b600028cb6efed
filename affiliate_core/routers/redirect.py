"""
Short link redirect.

GET /go/{short_code} records the click and 302s to the partner destination
with UTM parameters and the click id appended. Unknown or expired codes are
a 404; a click that could not be stored still redirects.
"""
import secrets

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..services.click_recorder import RequestMetadata, track_redirect
from ._helpers import client_ip

router = APIRouter(tags=["redirect"])

SESSION_COOKIE = "aff_session"


@router.get("/go/{short_code}")
async def follow_short_link(short_code: str, request: Request, db: Session = Depends(get_db)):
    session_id = request.cookies.get(SESSION_COOKIE) or secrets.token_hex(16)
    metadata = RequestMetadata(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
        country_code=request.headers.get("cf-ipcountry") or request.headers.get("x-country-code"),
        session_id=session_id,
    )
    result = track_redirect(db, short_code, metadata)
    request.state.partner_id = result.partner_id

    response = RedirectResponse(url=result.location, status_code=302)
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        max_age=settings.session_cookie_days * 24 * 3600,
        httponly=True,
        samesite="lax",
    )
    return response
