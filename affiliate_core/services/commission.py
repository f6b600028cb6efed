"""
Commission calculation.

Amounts are integer cents; rates are stored as floats (a percentage for
`percentage` partners, a currency amount for `flat` partners) and converted
through Decimal so that rounding is exact half-up to the cent.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import InvalidAmountError
from ..models import Campaign, Partner, Product

logger = logging.getLogger(__name__)

CENT = Decimal("1")
HUNDRED = Decimal("100")


@dataclass
class CommissionBreakdown:
    commission_type: str
    base_rate: Decimal
    product_override: Optional[Decimal]
    campaign_bonus: Optional[Decimal]
    effective_rate: Decimal
    rate_source: str  # partner, product, campaign
    commission_cents: int


def _rate(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def to_cents(amount) -> int:
    """
    Convert a currency amount (str/float/Decimal, in major units) to integer cents.

    Magnitudes above settings.max_amount_cents are rejected so the value
    always fits the integer amount columns.
    """
    try:
        value = Decimal(str(amount).strip())
        if not value.is_finite():
            raise InvalidAmountError(f"Invalid amount: {amount!r}")
        cents = int((value * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if abs(cents) > settings.max_amount_cents:
        raise InvalidAmountError(f"Amount {amount!r} exceeds the maximum supported amount")
    return cents


def cents_to_amount(cents: Optional[int]) -> Optional[float]:
    if cents is None:
        return None
    return float(Decimal(cents) / HUNDRED)


def campaign_covers(
    campaign: Campaign,
    partner_id: str,
    product_id: Optional[str],
    now: Optional[datetime] = None,
) -> bool:
    """True if the campaign is active right now and scoped to this partner/product."""
    now = now or datetime.utcnow()
    if campaign.status != "active":
        return False
    if campaign.start_date and campaign.start_date > now:
        return False
    if campaign.end_date and campaign.end_date < now:
        return False
    if campaign.partner_id and campaign.partner_id != partner_id:
        return False
    if campaign.product_id and campaign.product_id != product_id:
        return False
    return True


def find_bonus_campaign(
    db: Session,
    partner_id: str,
    product_id: Optional[str],
    campaign_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[Campaign]:
    """
    Pick the campaign whose bonus applies to a conversion.

    A campaign carried by the click's link wins; otherwise the most specific
    active campaign covering the partner/product (product-scoped before
    partner-scoped before global).
    """
    now = now or datetime.utcnow()
    if campaign_id:
        campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
        if campaign and campaign.bonus_commission_rate is not None and campaign_covers(campaign, partner_id, product_id, now):
            return campaign

    candidates = db.query(Campaign).filter(
        Campaign.status == "active",
        Campaign.bonus_commission_rate.isnot(None),
        Campaign.start_date <= now,
        or_(Campaign.end_date.is_(None), Campaign.end_date >= now),
        or_(Campaign.partner_id.is_(None), Campaign.partner_id == partner_id),
    ).all()
    covering = [c for c in candidates if campaign_covers(c, partner_id, product_id, now)]
    if not covering:
        return None
    covering.sort(key=lambda c: (c.product_id is None, c.partner_id is None, -(c.start_date.timestamp())))
    return covering[0]


def calculate_commission(
    partner: Partner,
    sale_amount_cents: Optional[int],
    product: Optional[Product] = None,
    campaign: Optional[Campaign] = None,
    now: Optional[datetime] = None,
) -> CommissionBreakdown:
    """
    Compute the commission owed for one conversion.

    Effective rate: active covering campaign bonus, else product override,
    else partner default. Percentage with no sale amount yields zero.
    """
    base_rate = _rate(partner.commission_rate) or Decimal("0")
    product_override = _rate(product.commission_override) if product is not None else None
    campaign_bonus = None
    if campaign is not None and campaign.bonus_commission_rate is not None:
        product_id = product.id if product is not None else None
        if campaign_covers(campaign, partner.id, product_id, now):
            campaign_bonus = _rate(campaign.bonus_commission_rate)

    if campaign_bonus is not None:
        effective_rate, rate_source = campaign_bonus, "campaign"
    elif product_override is not None:
        effective_rate, rate_source = product_override, "product"
    else:
        effective_rate, rate_source = base_rate, "partner"

    if partner.commission_type == "flat":
        commission = (effective_rate * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    elif sale_amount_cents is None:
        commission = Decimal("0")
    else:
        commission = (Decimal(sale_amount_cents) * effective_rate / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)

    return CommissionBreakdown(
        commission_type=partner.commission_type,
        base_rate=base_rate,
        product_override=product_override,
        campaign_bonus=campaign_bonus,
        effective_rate=effective_rate,
        rate_source=rate_source,
        commission_cents=max(int(commission), 0),
    )
