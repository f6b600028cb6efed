"""Admin: tracking links, their clicks and per-link stats."""
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..dependencies.auth import Principal, require_admin
from ..models import Link
from ..schemas.affiliate import click_to_dict, link_to_dict
from ..services.analytics import link_stats
from ..services.catalog import delete_link
from ..services.click_recorder import list_clicks
from ..services.link_registry import create_link, get_link, update_link
from ._helpers import parse_iso_datetime

router = APIRouter(prefix="/v1/admin/affiliate", tags=["affiliate-admin"])


# --- Request/Response Schemas ---

class CreateLinkRequest(BaseModel):
    partner_id: str
    product_id: Optional[str] = None
    campaign_id: Optional[str] = None
    custom_url: Optional[str] = None
    name: Optional[str] = None
    expires_at: Optional[str] = None  # ISO format
    custom_params: Optional[Dict[str, str]] = None


class UpdateLinkRequest(BaseModel):
    name: Optional[str] = None
    status: Optional[str] = None
    expires_at: Optional[str] = None
    destination_url: Optional[str] = None


# --- Endpoints ---

@router.post("/links")
async def create_tracking_link(
    req: CreateLinkRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    link, short_url = create_link(
        db,
        partner_id=req.partner_id,
        product_id=req.product_id,
        campaign_id=req.campaign_id,
        custom_url=req.custom_url,
        name=req.name,
        expires_at=parse_iso_datetime(req.expires_at, "expires_at"),
        custom_params=req.custom_params,
    )
    return {"link": link_to_dict(link, short_url)}


@router.get("/links")
async def list_links(
    partner_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    query = db.query(Link)
    if partner_id:
        query = query.filter(Link.partner_id == partner_id)
    if status:
        query = query.filter(Link.status == status)
    links = query.order_by(Link.created_at.desc()).offset(offset).limit(limit).all()
    return {"links": [link_to_dict(link) for link in links], "count": len(links)}


@router.get("/links/{link_id}")
async def get_tracking_link(
    link_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return {"link": link_to_dict(get_link(db, link_id))}


@router.put("/links/{link_id}")
async def update_tracking_link(
    link_id: str,
    req: UpdateLinkRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    link = update_link(
        db,
        link_id,
        name=req.name,
        status=req.status,
        expires_at=parse_iso_datetime(req.expires_at, "expires_at"),
        destination_url=req.destination_url,
    )
    return {"link": link_to_dict(link)}


@router.delete("/links/{link_id}")
async def delete_tracking_link(
    link_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return delete_link(db, link_id)


@router.get("/links/{link_id}/stats")
async def get_link_stats(
    link_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return link_stats(db, link_id)


@router.get("/links/{link_id}/clicks")
async def get_link_clicks(
    link_id: str,
    include_bots: bool = Query(True),
    limit: int = Query(100, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    get_link(db, link_id)
    clicks = list_clicks(db, link_id=link_id, include_bots=include_bots, limit=limit, offset=offset)
    return {"clicks": [click_to_dict(c) for c in clicks], "count": len(clicks)}
