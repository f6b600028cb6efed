"""
Partner portal.

Read-only views scoped to the partner bound to the caller's token, plus link
creation for that partner. Admin tokens must pass ?partner_id= explicitly.
"""
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..dependencies.auth import Principal, require_partner
from ..models import Link
from ..schemas.affiliate import conversion_to_dict, link_to_dict, partner_to_dict, payout_to_dict
from ..services.analytics import partner_stats
from ..services.catalog import PartnerService
from ..services.conversions import ConversionService
from ..services.link_registry import create_link
from ..services.payout_service import PayoutService

router = APIRouter(prefix="/v1/partner", tags=["affiliate-partner"])


class PartnerLinkRequest(BaseModel):
    product_id: Optional[str] = None
    campaign_id: Optional[str] = None
    custom_url: Optional[str] = None
    name: Optional[str] = None
    custom_params: Optional[Dict[str, str]] = None


def _scoped_partner_id(principal: Principal, partner_id: Optional[str]) -> str:
    if principal.role == "admin":
        if not partner_id:
            raise HTTPException(status_code=400, detail="partner_id is required for admin tokens")
        return partner_id
    return principal.partner_id


@router.get("/me")
async def get_my_partner(
    partner_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_partner),
):
    partner = PartnerService.get_partner(db, _scoped_partner_id(principal, partner_id))
    return {"partner": partner_to_dict(partner)}


@router.get("/links")
async def list_my_links(
    partner_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_partner),
):
    scoped = _scoped_partner_id(principal, partner_id)
    links = db.query(Link).filter(Link.partner_id == scoped).order_by(Link.created_at.desc()).all()
    return {"links": [link_to_dict(link) for link in links], "count": len(links)}


@router.post("/links")
async def create_my_link(
    req: PartnerLinkRequest,
    partner_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_partner),
):
    link, short_url = create_link(
        db,
        partner_id=_scoped_partner_id(principal, partner_id),
        product_id=req.product_id,
        campaign_id=req.campaign_id,
        custom_url=req.custom_url,
        name=req.name,
        custom_params=req.custom_params,
    )
    return {"link": link_to_dict(link, short_url)}


@router.get("/conversions")
async def list_my_conversions(
    partner_id: Optional[str] = Query(None),
    conversion_status: Optional[str] = Query(None),
    limit: int = Query(50, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_partner),
):
    conversions = ConversionService.list_conversions(
        db,
        partner_id=_scoped_partner_id(principal, partner_id),
        conversion_status=conversion_status,
        limit=limit,
        offset=offset,
    )
    return {"conversions": [conversion_to_dict(c) for c in conversions], "count": len(conversions)}


@router.get("/balance")
async def get_my_balance(
    partner_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_partner),
):
    return PayoutService.partner_balance(db, _scoped_partner_id(principal, partner_id))


@router.get("/payouts")
async def list_my_payouts(
    partner_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_partner),
):
    payouts = PayoutService.list_payouts(db, partner_id=_scoped_partner_id(principal, partner_id))
    return {"payouts": [payout_to_dict(p) for p in payouts], "count": len(payouts)}


@router.get("/stats")
async def get_my_stats(
    period: str = Query("30d"),
    partner_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_partner),
):
    return partner_stats(db, _scoped_partner_id(principal, partner_id), period=period)
