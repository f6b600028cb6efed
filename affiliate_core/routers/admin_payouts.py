"""
Admin: partner payouts.

A payout batches approved, unpaid conversions. Creating one moves them to
processing; completing moves them to paid; cancelling puts them back.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..dependencies.auth import Principal, require_admin
from ..models import Conversion
from ..schemas.affiliate import conversion_to_dict, payout_to_dict
from ..services.payout_service import PayoutService

router = APIRouter(prefix="/v1/admin/affiliate/payouts", tags=["affiliate-admin"])


# --- Request/Response Schemas ---

class CreatePayoutRequest(BaseModel):
    partner_id: str
    conversion_ids: Optional[List[str]] = None
    notes: Optional[str] = None
    enforce_threshold: bool = False


class CompletePayoutRequest(BaseModel):
    transaction_reference: Optional[str] = None


class CancelPayoutRequest(BaseModel):
    reason: Optional[str] = None


# --- Endpoints ---

@router.post("/")
async def create_payout(
    req: CreatePayoutRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    payout = PayoutService.create_payout(
        db,
        req.partner_id,
        conversion_ids=req.conversion_ids,
        notes=req.notes,
        enforce_threshold=req.enforce_threshold,
    )
    return {"payout": payout_to_dict(payout)}


@router.get("/")
async def list_payouts(
    partner_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    payouts = PayoutService.list_payouts(db, partner_id=partner_id, status=status, limit=limit, offset=offset)
    return {"payouts": [payout_to_dict(p) for p in payouts], "count": len(payouts)}


@router.get("/{payout_id}")
async def get_payout(
    payout_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    payout = PayoutService.get_payout(db, payout_id)
    conversions = db.query(Conversion).filter(Conversion.payout_id == payout_id).all()
    return {
        "payout": payout_to_dict(payout),
        "conversions": [conversion_to_dict(c) for c in conversions],
    }


@router.post("/{payout_id}/complete")
async def complete_payout(
    payout_id: str,
    req: CompletePayoutRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    payout = PayoutService.complete_payout(db, payout_id, transaction_reference=req.transaction_reference)
    return {"payout": payout_to_dict(payout)}


@router.post("/{payout_id}/cancel")
async def cancel_payout(
    payout_id: str,
    req: CancelPayoutRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    payout = PayoutService.cancel_payout(db, payout_id, reason=req.reason)
    return {"payout": payout_to_dict(payout)}


@router.post("/{payout_id}/process")
async def process_payout(
    payout_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    """Send the transfer through the partner's payout method (Stripe or manual)."""
    return PayoutService.process_payout(db, payout_id)
