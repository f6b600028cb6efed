"""
Attribution Resolver - turns a conversion signal into a Conversion.

Matching priority:
  1. click_id (or sub_id) resolving to a stored Click inside its partner's
     attribution window -> that Click's partner/product/link/campaign
  2. explicit partner_id -> that partner, no click linkage
  3. otherwise UnattributableConversionError

(partner_id, order_id) is the idempotency key. A repeat returns the stored
conversion untouched; a concurrent duplicate insert loses on the unique index
and returns the winner's row.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import NotFoundError, UnattributableConversionError, ValidationError
from ..middleware.metrics import conversions_created_total
from ..models import Click, Conversion, Partner, Product
from ..utils.log import log_affiliate_event
from .commission import calculate_commission, find_bonus_campaign
from .link_registry import increment_link_conversions

logger = logging.getLogger(__name__)

CONVERSION_TYPES = ("sale", "lead", "signup", "trial", "download")


@dataclass
class ConversionSignal:
    order_id: str
    amount_cents: Optional[int] = None
    currency: str = "USD"
    click_id: Optional[str] = None
    sub_id: Optional[str] = None
    partner_id: Optional[str] = None
    product_id: Optional[str] = None
    transaction_id: Optional[str] = None
    conversion_type: str = "sale"
    occurred_at: Optional[datetime] = None
    validation_method: str = "postback"
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class AttributionResult:
    conversion: Conversion
    created: bool
    matched_click: bool = False


def find_existing_conversion(db: Session, partner_id: str, order_id: str) -> Optional[Conversion]:
    return db.query(Conversion).filter(
        Conversion.partner_id == partner_id,
        Conversion.order_id == order_id,
    ).first()


def _match_click(
    db: Session,
    signal: ConversionSignal,
    occurred_at: datetime,
) -> Tuple[Optional[Click], Optional[Partner]]:
    """Return the first click token that resolves inside its attribution window."""
    tokens = []
    for token in (signal.click_id, signal.sub_id):
        if token and token not in tokens:
            tokens.append(token)

    for token in tokens:
        click = db.query(Click).filter(Click.id == token).first()
        if not click:
            continue
        partner = db.query(Partner).filter(Partner.id == click.partner_id).first()
        if not partner:
            continue
        window_days = partner.cookie_window_days or settings.default_attribution_window_days
        age = occurred_at - click.clicked_at
        if age < timedelta(0) or age > timedelta(days=window_days):
            logger.info(f"Click {click.id} outside {window_days}d attribution window")
            continue
        return click, partner
    return None, None


def attribute_conversion(db: Session, signal: ConversionSignal) -> AttributionResult:
    """Resolve, dedupe, price and persist a conversion in one transaction."""
    order_id = (signal.order_id or "").strip()
    if not order_id:
        raise ValidationError("order_id is required", code="order_id_required")
    conversion_type = signal.conversion_type or "sale"
    if conversion_type not in CONVERSION_TYPES:
        raise ValidationError(f"Unknown conversion type: {conversion_type}")
    occurred_at = signal.occurred_at or datetime.utcnow()

    click, partner = _match_click(db, signal, occurred_at)
    if click is not None:
        if signal.partner_id and signal.partner_id != click.partner_id:
            logger.info(
                f"Click {click.id} belongs to partner {click.partner_id}, "
                f"signal named {signal.partner_id}; click wins"
            )
        product_id = click.product_id or signal.product_id
        link_id = click.link_id
        campaign_id = click.campaign_id
    elif signal.partner_id:
        partner = db.query(Partner).filter(Partner.id == signal.partner_id).first()
        if not partner:
            raise NotFoundError(f"Partner {signal.partner_id} not found")
        product_id = signal.product_id
        link_id = None
        campaign_id = None
    else:
        raise UnattributableConversionError(
            f"Conversion for order {order_id} has no matching click and no partner"
        )

    existing = find_existing_conversion(db, partner.id, order_id)
    if existing:
        log_affiliate_event(logger, "attribution_duplicate", ok=True, partner_id=partner.id, ref=existing.id,
                            extra={"order_id": order_id})
        return AttributionResult(conversion=existing, created=False, matched_click=existing.click_id is not None)

    product = None
    metadata = dict(signal.metadata or {})
    if product_id:
        product = db.query(Product).filter(Product.id == product_id, Product.partner_id == partner.id).first()
        if product is None:
            # Network-side product id we don't know; keep it for reconciliation
            metadata["external_product_id"] = product_id

    campaign = find_bonus_campaign(
        db, partner.id, product.id if product else None, campaign_id=campaign_id, now=occurred_at
    )
    breakdown = calculate_commission(partner, signal.amount_cents, product=product, campaign=campaign, now=occurred_at)

    conversion = Conversion(
        partner_id=partner.id,
        product_id=product.id if product else None,
        link_id=link_id,
        click_id=click.id if click else None,
        campaign_id=campaign_id or (campaign.id if campaign else None),
        order_id=order_id,
        transaction_id=signal.transaction_id,
        conversion_type=conversion_type,
        sale_amount_cents=signal.amount_cents,
        commission_cents=breakdown.commission_cents,
        currency=(signal.currency or "USD").upper()[:3],
        conversion_status="pending",
        payout_status="unpaid",
        validation_method=signal.validation_method,
        notes=signal.notes,
        metadata_json=dict(metadata, rate_source=breakdown.rate_source,
                           effective_rate=str(breakdown.effective_rate)),
        converted_at=occurred_at,
    )

    try:
        db.add(conversion)
        db.flush()
        if link_id:
            increment_link_conversions(db, link_id)
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = find_existing_conversion(db, partner.id, order_id)
        if winner is None:
            raise
        log_affiliate_event(logger, "attribution_race_lost", ok=True, partner_id=partner.id, ref=winner.id,
                            extra={"order_id": order_id})
        return AttributionResult(conversion=winner, created=False, matched_click=winner.click_id is not None)

    db.refresh(conversion)
    conversions_created_total.labels(validation_method=signal.validation_method).inc()
    log_affiliate_event(
        logger, "attribution_created", ok=True, partner_id=partner.id, ref=conversion.id,
        extra={
            "order_id": order_id,
            "click_id": conversion.click_id,
            "commission_cents": conversion.commission_cents,
            "rate_source": breakdown.rate_source,
        },
    )
    return AttributionResult(conversion=conversion, created=True, matched_click=click is not None)
