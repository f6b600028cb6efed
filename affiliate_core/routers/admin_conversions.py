"""
Admin: conversion review.

Manual conversions go through the same attribution and dedupe path as
partner postbacks, so recording the same order twice returns the first row.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.errors import InvalidAmountError
from ..db import get_db
from ..dependencies.auth import Principal, require_admin
from ..schemas.affiliate import conversion_to_dict
from ..services.commission import to_cents
from ..services.conversions import ConversionService
from ._helpers import parse_iso_datetime

router = APIRouter(prefix="/v1/admin/affiliate/conversions", tags=["affiliate-admin"])


# --- Request/Response Schemas ---

class ManualConversionRequest(BaseModel):
    partner_id: str
    order_id: str
    amount: Optional[str] = None  # major units, e.g. "149.99"
    currency: str = "USD"
    product_id: Optional[str] = None
    click_id: Optional[str] = None
    conversion_type: str = "sale"
    occurred_at: Optional[str] = None  # ISO format
    notes: Optional[str] = None


class ReviewRequest(BaseModel):
    notes: Optional[str] = None


class ReverseRequest(BaseModel):
    reason: Optional[str] = None


# --- Endpoints ---

@router.get("/")
async def list_conversions(
    partner_id: Optional[str] = Query(None),
    conversion_status: Optional[str] = Query(None),
    payout_status: Optional[str] = Query(None),
    limit: int = Query(50, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    conversions = ConversionService.list_conversions(
        db,
        partner_id=partner_id,
        conversion_status=conversion_status,
        payout_status=payout_status,
        limit=limit,
        offset=offset,
    )
    return {"conversions": [conversion_to_dict(c) for c in conversions], "count": len(conversions)}


@router.get("/totals")
async def get_commission_totals(
    partner_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return ConversionService.commission_totals(db, partner_id=partner_id)


@router.post("/manual")
async def record_manual_conversion(
    req: ManualConversionRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    amount_cents = to_cents(req.amount) if req.amount is not None else None
    if amount_cents is not None and amount_cents <= 0:
        raise InvalidAmountError("amount must be positive")
    result = ConversionService.record_manual_conversion(
        db,
        partner_id=req.partner_id,
        order_id=req.order_id,
        amount_cents=amount_cents,
        currency=req.currency,
        product_id=req.product_id,
        click_id=req.click_id,
        conversion_type=req.conversion_type,
        occurred_at=parse_iso_datetime(req.occurred_at, "occurred_at"),
        notes=req.notes,
    )
    return {"conversion": conversion_to_dict(result.conversion), "created": result.created}


@router.get("/{conversion_id}")
async def get_conversion(
    conversion_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return {"conversion": conversion_to_dict(ConversionService.get_conversion(db, conversion_id))}


@router.post("/{conversion_id}/approve")
async def approve_conversion(
    conversion_id: str,
    req: ReviewRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    conversion = ConversionService.approve_conversion(db, conversion_id, notes=req.notes)
    return {"conversion": conversion_to_dict(conversion)}


@router.post("/{conversion_id}/reject")
async def reject_conversion(
    conversion_id: str,
    req: ReviewRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    conversion = ConversionService.reject_conversion(db, conversion_id, notes=req.notes)
    return {"conversion": conversion_to_dict(conversion)}


@router.post("/{conversion_id}/reverse")
async def reverse_conversion(
    conversion_id: str,
    req: ReverseRequest,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    conversion = ConversionService.reverse_conversion(db, conversion_id, reason=req.reason)
    return {"conversion": conversion_to_dict(conversion)}
