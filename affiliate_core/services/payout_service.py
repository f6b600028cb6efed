"""
Payout Batcher - groups approved, unpaid conversions into partner payouts.

States:
  conversion payout_status: unpaid -> processing -> paid, or processing -> unpaid on cancel
  payout status:            pending -> completed | failed

Every transition is one DB transaction. The payout total always equals the
sum of commission over the conversions currently linked to it.

Stripe transfers run in mock mode unless STRIPE_SECRET_KEY is set and
ENABLE_STRIPE_PAYOUTS=true.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import stripe
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import (
    ConflictError,
    NoEligibleConversionsError,
    NotFoundError,
    PayoutProcessingError,
)
from ..middleware.metrics import payouts_total
from ..models import Conversion, Partner, Payout
from ..utils.log import log_affiliate_event

logger = logging.getLogger(__name__)


def _is_mock_mode() -> bool:
    """Check if we should run in mock mode"""
    return not settings.enable_stripe_payouts or not settings.stripe_secret_key


class PayoutService:
    """Service for batching and settling partner payouts"""

    @staticmethod
    def get_payout(db: Session, payout_id: str, for_update: bool = False) -> Payout:
        query = db.query(Payout).filter(Payout.id == payout_id)
        if for_update:
            query = query.with_for_update()
        payout = query.first()
        if not payout:
            raise NotFoundError(f"Payout {payout_id} not found")
        return payout

    @staticmethod
    def create_payout(
        db: Session,
        partner_id: str,
        conversion_ids: Optional[List[str]] = None,
        notes: Optional[str] = None,
        enforce_threshold: bool = False,
    ) -> Payout:
        """
        Batch the partner's approved+unpaid conversions (optionally a subset)
        into a pending payout. All selected conversions move to processing or
        none do.
        """
        partner = db.query(Partner).filter(Partner.id == partner_id).first()
        if not partner:
            raise NotFoundError(f"Partner {partner_id} not found")

        try:
            query = db.query(Conversion).filter(
                Conversion.partner_id == partner_id,
                Conversion.conversion_status == "approved",
                Conversion.payout_status == "unpaid",
            )
            if conversion_ids is not None:
                query = query.filter(Conversion.id.in_(conversion_ids))
            conversions = query.with_for_update().all()

            if not conversions:
                raise NoEligibleConversionsError(f"No eligible conversions for partner {partner_id}")

            total_cents = sum(c.commission_cents for c in conversions)
            if enforce_threshold and total_cents < partner.payout_threshold_cents:
                raise ConflictError(
                    f"Total commission {total_cents} cents below payout threshold "
                    f"{partner.payout_threshold_cents} cents"
                )

            currencies = {c.currency for c in conversions}
            if len(currencies) > 1:
                raise ConflictError(f"Conversions span multiple currencies: {sorted(currencies)}")

            payout = Payout(
                id=str(uuid.uuid4()),
                partner_id=partner_id,
                total_commission_cents=total_cents,
                total_conversions=len(conversions),
                currency=currencies.pop(),
                period_start=min(c.converted_at for c in conversions),
                period_end=max(c.converted_at for c in conversions),
                status="pending",
                payout_method=partner.payout_method,
                notes=notes,
            )
            db.add(payout)
            db.flush()

            selected_ids = [c.id for c in conversions]
            result = db.execute(
                update(Conversion)
                .where(
                    Conversion.id.in_(selected_ids),
                    Conversion.payout_status == "unpaid",
                    Conversion.conversion_status == "approved",
                )
                .values(payout_id=payout.id, payout_status="processing", updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(selected_ids):
                raise ConflictError(
                    f"Conversions changed while batching payout ({result.rowcount}/{len(selected_ids)} updated)"
                )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(payout)
        payouts_total.labels(action="created").inc()
        log_affiliate_event(
            logger, "payout_created", ok=True, partner_id=partner_id, ref=payout.id,
            extra={"total_cents": total_cents, "conversions": len(selected_ids)},
        )
        return payout

    @staticmethod
    def complete_payout(db: Session, payout_id: str, transaction_reference: Optional[str] = None) -> Payout:
        """Mark a pending payout completed and its conversions paid."""
        try:
            payout = PayoutService.get_payout(db, payout_id, for_update=True)
            if payout.status == "completed":
                raise ConflictError(f"Payout {payout_id} is already completed")
            if payout.status != "pending":
                raise ConflictError(f"Cannot complete payout in '{payout.status}' status")

            now = datetime.utcnow()
            payout.status = "completed"
            payout.payout_date = now
            if transaction_reference:
                payout.transaction_reference = transaction_reference
            db.execute(
                update(Conversion)
                .where(Conversion.payout_id == payout.id)
                .values(payout_status="paid", updated_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(payout)
        payouts_total.labels(action="completed").inc()
        log_affiliate_event(
            logger, "payout_completed", ok=True, partner_id=payout.partner_id, ref=payout.id,
            extra={"reference": transaction_reference},
        )
        return payout

    @staticmethod
    def cancel_payout(db: Session, payout_id: str, reason: Optional[str] = None) -> Payout:
        """Fail a pending payout and release its conversions back to unpaid."""
        try:
            payout = PayoutService.get_payout(db, payout_id, for_update=True)
            if payout.status != "pending":
                raise ConflictError(f"Cannot cancel payout in '{payout.status}' status")

            now = datetime.utcnow()
            payout.status = "failed"
            payout.failure_reason = reason or "Cancelled"
            db.execute(
                update(Conversion)
                .where(Conversion.payout_id == payout.id)
                .values(payout_id=None, payout_status="unpaid", updated_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(payout)
        payouts_total.labels(action="cancelled").inc()
        log_affiliate_event(
            logger, "payout_cancelled", ok=True, partner_id=payout.partner_id, ref=payout.id,
            extra={"reason": reason},
        )
        return payout

    @staticmethod
    def process_payout(db: Session, payout_id: str) -> Dict[str, Any]:
        """
        Settle a pending payout through the partner's payout method.

        Stripe partners get a Connect transfer (mock transfer id in mock mode)
        and the payout is completed. Other methods are paid out by hand and
        then completed through complete_payout.
        """
        payout = PayoutService.get_payout(db, payout_id)
        if payout.status != "pending":
            raise ConflictError(f"Cannot process payout in '{payout.status}' status")
        partner = db.query(Partner).filter(Partner.id == payout.partner_id).first()

        if payout.payout_method != "stripe":
            return {
                "payout_id": payout.id,
                "status": "requires_manual_action",
                "payout_method": payout.payout_method,
            }

        if not partner.stripe_account_id:
            raise ConflictError(f"Partner {partner.id} has no Stripe account connected")

        if _is_mock_mode():
            transfer_id = f"tr_mock_{uuid.uuid4().hex[:16]}"
            logger.info(f"[MOCK] Created mock transfer {transfer_id} for payout {payout.id}")
        else:
            try:
                transfer = stripe.Transfer.create(
                    amount=payout.total_commission_cents,
                    currency=payout.currency.lower(),
                    destination=partner.stripe_account_id,
                    metadata={"payout_id": payout.id, "partner_id": partner.id},
                    idempotency_key=f"affiliate_payout_{payout.id}",
                    api_key=settings.stripe_secret_key,
                )
                transfer_id = transfer.id
            except stripe.StripeError as e:
                payout.failure_reason = str(e)[:500]
                db.commit()
                log_affiliate_event(
                    logger, "payout_transfer_failed", ok=False, partner_id=partner.id, ref=payout.id,
                    extra={"error": str(e)},
                )
                raise PayoutProcessingError(f"Stripe transfer failed: {e}")

        payout = PayoutService.complete_payout(db, payout.id, transaction_reference=transfer_id)
        return {
            "payout_id": payout.id,
            "status": payout.status,
            "payout_method": payout.payout_method,
            "transaction_reference": transfer_id,
            "mock": _is_mock_mode(),
        }

    @staticmethod
    def list_payouts(
        db: Session,
        partner_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Payout]:
        query = db.query(Payout)
        if partner_id:
            query = query.filter(Payout.partner_id == partner_id)
        if status:
            query = query.filter(Payout.status == status)
        return query.order_by(Payout.created_at.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def partner_balance(db: Session, partner_id: str) -> Dict[str, Any]:
        partner = db.query(Partner).filter(Partner.id == partner_id).first()
        if not partner:
            raise NotFoundError(f"Partner {partner_id} not found")

        rows = (
            db.query(Conversion.payout_status, func.coalesce(func.sum(Conversion.commission_cents), 0))
            .filter(Conversion.partner_id == partner_id, Conversion.conversion_status == "approved")
            .group_by(Conversion.payout_status)
            .all()
        )
        sums = {status: int(cents) for status, cents in rows}
        unpaid = sums.get("unpaid", 0)
        return {
            "partner_id": partner_id,
            "unpaid_cents": unpaid,
            "processing_cents": sums.get("processing", 0),
            "paid_cents": sums.get("paid", 0),
            "payout_threshold_cents": partner.payout_threshold_cents,
            "threshold_reached": unpaid >= partner.payout_threshold_cents,
        }
