"""
Conversion review: admin approval, rejection, reversal and manual entry.

Status machine: pending -> approved | rejected; pending/approved -> reversed
(refunds). A conversion already batched into a payout (processing) or paid
cannot be reversed.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.errors import ConflictError, NotFoundError
from ..models import Conversion
from ..utils.log import log_affiliate_event
from .attribution import AttributionResult, ConversionSignal, attribute_conversion

logger = logging.getLogger(__name__)


class ConversionService:
    """Admin-side conversion lifecycle."""

    @staticmethod
    def get_conversion(db: Session, conversion_id: str, for_update: bool = False) -> Conversion:
        query = db.query(Conversion).filter(Conversion.id == conversion_id)
        if for_update:
            query = query.with_for_update()
        conversion = query.first()
        if not conversion:
            raise NotFoundError(f"Conversion {conversion_id} not found")
        return conversion

    @staticmethod
    def _append_note(conversion: Conversion, note: Optional[str]) -> None:
        if note:
            conversion.notes = f"{conversion.notes}\n{note}" if conversion.notes else note

    @staticmethod
    def approve_conversion(db: Session, conversion_id: str, notes: Optional[str] = None) -> Conversion:
        conversion = ConversionService.get_conversion(db, conversion_id, for_update=True)
        if conversion.conversion_status != "pending":
            raise ConflictError(f"Cannot approve conversion in '{conversion.conversion_status}' status")
        conversion.conversion_status = "approved"
        conversion.approved_at = datetime.utcnow()
        ConversionService._append_note(conversion, notes)
        db.commit()
        db.refresh(conversion)
        log_affiliate_event(logger, "conversion_approved", ok=True,
                            partner_id=conversion.partner_id, ref=conversion.id)
        return conversion

    @staticmethod
    def reject_conversion(db: Session, conversion_id: str, notes: Optional[str] = None) -> Conversion:
        conversion = ConversionService.get_conversion(db, conversion_id, for_update=True)
        if conversion.conversion_status != "pending":
            raise ConflictError(f"Cannot reject conversion in '{conversion.conversion_status}' status")
        conversion.conversion_status = "rejected"
        ConversionService._append_note(conversion, notes)
        db.commit()
        db.refresh(conversion)
        log_affiliate_event(logger, "conversion_rejected", ok=True,
                            partner_id=conversion.partner_id, ref=conversion.id)
        return conversion

    @staticmethod
    def reverse_conversion(db: Session, conversion_id: str, reason: Optional[str] = None) -> Conversion:
        conversion = ConversionService.get_conversion(db, conversion_id, for_update=True)
        if conversion.payout_status in ("processing", "paid"):
            raise ConflictError(f"Cannot reverse a conversion that is {conversion.payout_status}")
        if conversion.conversion_status not in ("pending", "approved"):
            raise ConflictError(f"Cannot reverse conversion in '{conversion.conversion_status}' status")
        conversion.conversion_status = "reversed"
        ConversionService._append_note(conversion, reason or "Reversed")
        db.commit()
        db.refresh(conversion)
        log_affiliate_event(logger, "conversion_reversed", ok=True,
                            partner_id=conversion.partner_id, ref=conversion.id, extra={"reason": reason})
        return conversion

    @staticmethod
    def record_manual_conversion(
        db: Session,
        *,
        partner_id: str,
        order_id: str,
        amount_cents: Optional[int] = None,
        currency: str = "USD",
        product_id: Optional[str] = None,
        click_id: Optional[str] = None,
        conversion_type: str = "sale",
        occurred_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> AttributionResult:
        """Admin-entered conversion. Goes through the same attribution and dedupe path as postbacks."""
        signal = ConversionSignal(
            order_id=order_id,
            amount_cents=amount_cents,
            currency=currency,
            click_id=click_id,
            partner_id=partner_id,
            product_id=product_id,
            conversion_type=conversion_type,
            occurred_at=occurred_at,
            validation_method="manual",
            notes=notes,
            metadata={"source": "manual"},
        )
        return attribute_conversion(db, signal)

    @staticmethod
    def list_conversions(
        db: Session,
        partner_id: Optional[str] = None,
        conversion_status: Optional[str] = None,
        payout_status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Conversion]:
        query = db.query(Conversion)
        if partner_id:
            query = query.filter(Conversion.partner_id == partner_id)
        if conversion_status:
            query = query.filter(Conversion.conversion_status == conversion_status)
        if payout_status:
            query = query.filter(Conversion.payout_status == payout_status)
        return query.order_by(Conversion.converted_at.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def commission_totals(db: Session, partner_id: Optional[str] = None) -> Dict[str, Any]:
        """Commission in cents grouped by review state and payout state."""
        query = db.query(
            Conversion.conversion_status,
            Conversion.payout_status,
            func.count(Conversion.id),
            func.coalesce(func.sum(Conversion.commission_cents), 0),
        )
        if partner_id:
            query = query.filter(Conversion.partner_id == partner_id)
        rows = query.group_by(Conversion.conversion_status, Conversion.payout_status).all()

        totals = {
            "pending_review_cents": 0,
            "approved_unpaid_cents": 0,
            "processing_cents": 0,
            "paid_cents": 0,
            "conversions": 0,
        }
        for conversion_status, payout_status, count, cents in rows:
            totals["conversions"] += count
            if conversion_status == "pending":
                totals["pending_review_cents"] += cents
            elif conversion_status == "approved":
                if payout_status == "unpaid":
                    totals["approved_unpaid_cents"] += cents
                elif payout_status == "processing":
                    totals["processing_cents"] += cents
                elif payout_status == "paid":
                    totals["paid_cents"] += cents
        return totals
