"""Admin: campaign CRUD and lifecycle transitions."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..dependencies.auth import Principal, require_admin
from ..schemas.affiliate import campaign_to_dict
from ..services.campaign_service import CampaignService
from ._helpers import parse_iso_datetime

router = APIRouter(prefix="/v1/admin/affiliate/campaigns", tags=["affiliate-admin"])


# --- Request/Response Schemas ---

class CreateCampaignRequest(BaseModel):
    name: str
    start_date: str  # ISO format
    end_date: Optional[str] = None
    description: Optional[str] = None
    partner_id: Optional[str] = None
    product_id: Optional[str] = None
    bonus_commission_rate: Optional[float] = None
    discount_code: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    schedule: bool = False


class UpdateCampaignRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    bonus_commission_rate: Optional[float] = None
    discount_code: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None


# --- Endpoints ---

@router.post("/")
async def create_campaign(
    req: CreateCampaignRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    """Create a new campaign (draft status unless schedule=true)."""
    fields = req.model_dump()
    fields["start_date"] = parse_iso_datetime(req.start_date, "start_date")
    fields["end_date"] = parse_iso_datetime(req.end_date, "end_date")
    campaign = CampaignService.create_campaign(db, **fields)
    return {"campaign": campaign_to_dict(campaign)}


@router.get("/")
async def list_campaigns(
    partner_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    campaigns = CampaignService.list_campaigns(db, partner_id=partner_id, status=status, limit=limit, offset=offset)
    return {"campaigns": [campaign_to_dict(c) for c in campaigns], "count": len(campaigns)}


@router.get("/{campaign_id}")
async def get_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return {"campaign": campaign_to_dict(CampaignService.get_campaign(db, campaign_id))}


@router.put("/{campaign_id}")
async def update_campaign(
    campaign_id: str,
    req: UpdateCampaignRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    updates = req.model_dump(exclude_unset=True)
    for key in ("start_date", "end_date"):
        if key in updates:
            updates[key] = parse_iso_datetime(updates[key], key)
    campaign = CampaignService.update_campaign(db, campaign_id, **updates)
    return {"campaign": campaign_to_dict(campaign)}


@router.post("/{campaign_id}/schedule")
async def schedule_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return {"campaign": campaign_to_dict(CampaignService.schedule_campaign(db, campaign_id))}


@router.post("/{campaign_id}/activate")
async def activate_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return {"campaign": campaign_to_dict(CampaignService.activate_campaign(db, campaign_id))}


@router.post("/{campaign_id}/complete")
async def complete_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return {"campaign": campaign_to_dict(CampaignService.complete_campaign(db, campaign_id))}


@router.post("/{campaign_id}/cancel")
async def cancel_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return {"campaign": campaign_to_dict(CampaignService.cancel_campaign(db, campaign_id))}
