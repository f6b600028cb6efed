"""
Conversion postbacks from partner systems.

POST takes a JSON or form body and answers JSON. GET takes query parameters
and answers a 1x1 GIF so it can be dropped into a thank-you page as a pixel.
Both go through the same processing; only the response shape differs.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.postback import TRACKING_PIXEL, PostbackRequest, parse_body, process_postback

router = APIRouter(prefix="/v1/affiliate", tags=["affiliate-postback"])

PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _claimed_partner(request: Request):
    return request.headers.get("x-partner-id") or request.query_params.get("partner_id")


@router.post("/postback")
async def postback_post(request: Request, db: Session = Depends(get_db)):
    raw = await request.body()
    outcome = process_postback(db, PostbackRequest(
        method="POST",
        endpoint=request.url.path,
        raw_payload=raw,
        payload=parse_body(raw),
        partner_id=_claimed_partner(request),
        signature=request.headers.get("x-signature"),
    ))
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.get("/postback")
async def postback_pixel(request: Request, db: Session = Depends(get_db)):
    outcome = process_postback(db, PostbackRequest(
        method="GET",
        endpoint=request.url.path,
        raw_payload=request.url.query.encode("utf-8"),
        payload=dict(request.query_params),
        partner_id=_claimed_partner(request),
        signature=request.headers.get("x-signature"),
    ))
    if outcome.ok:
        return Response(content=TRACKING_PIXEL, media_type="image/gif", headers=PIXEL_HEADERS)
    return JSONResponse(
        status_code=outcome.status_code,
        content={"error": outcome.body.get("error"), "message": outcome.body.get("message")},
    )
