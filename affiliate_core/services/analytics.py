"""
Affiliate analytics.

Bot clicks are stored but never counted: every click aggregate in this module
starts from `human_clicks()` so the filter cannot be forgotten.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from ..core.errors import NotFoundError, ValidationError
from ..models import Click, Conversion, Link, Partner, Product
from ..utils.log import log_affiliate_event
from .commission import cents_to_amount

logger = logging.getLogger(__name__)

PERIODS = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
    "all": None,
}


def period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    if period not in PERIODS:
        raise ValidationError(f"Unknown period '{period}', expected one of {', '.join(PERIODS)}")
    delta = PERIODS[period]
    if delta is None:
        return None
    return (now or datetime.utcnow()) - delta


def human_clicks(query: Query) -> Query:
    """Restrict a query over Click to non-bot clicks."""
    return query.filter(Click.is_bot.is_(False))


def _since(query: Query, column, start: Optional[datetime]) -> Query:
    return query.filter(column >= start) if start else query


def conversion_rate(conversions: int, clicks: int) -> float:
    """Percent, two decimals. Zero clicks -> 0.0."""
    if clicks <= 0:
        return 0.0
    return round(conversions / clicks * 100, 2)


def clicks_by_day(db: Session, start: Optional[datetime], partner_id: Optional[str] = None) -> List[Dict[str, Any]]:
    day = func.date(Click.clicked_at)
    query = human_clicks(db.query(day.label("date"), func.count(Click.id)))
    query = _since(query, Click.clicked_at, start)
    if partner_id:
        query = query.filter(Click.partner_id == partner_id)
    rows = query.group_by(day).order_by(day).all()
    return [{"date": str(d), "clicks": count} for d, count in rows]


def conversions_by_day(db: Session, start: Optional[datetime], partner_id: Optional[str] = None) -> List[Dict[str, Any]]:
    day = func.date(Conversion.converted_at)
    query = db.query(
        day.label("date"),
        func.count(Conversion.id),
        func.coalesce(func.sum(Conversion.sale_amount_cents), 0),
        func.coalesce(func.sum(Conversion.commission_cents), 0),
    )
    query = _since(query, Conversion.converted_at, start)
    if partner_id:
        query = query.filter(Conversion.partner_id == partner_id)
    rows = query.group_by(day).order_by(day).all()
    return [
        {"date": str(d), "conversions": count, "revenue_cents": int(revenue), "commission_cents": int(commission)}
        for d, count, revenue, commission in rows
    ]


def top_partners(db: Session, start: Optional[datetime], limit: int = 10) -> List[Dict[str, Any]]:
    conv_rows = _since(
        db.query(
            Conversion.partner_id,
            func.count(Conversion.id),
            func.coalesce(func.sum(Conversion.sale_amount_cents), 0),
            func.coalesce(func.sum(Conversion.commission_cents), 0),
        ).filter(Conversion.conversion_status == "approved"),
        Conversion.converted_at, start,
    ).group_by(Conversion.partner_id).all()
    click_rows = _since(
        human_clicks(db.query(Click.partner_id, func.count(Click.id))),
        Click.clicked_at, start,
    ).group_by(Click.partner_id).all()
    clicks = dict(click_rows)

    names = dict(db.query(Partner.id, Partner.company_name).all())
    results = [
        {
            "id": partner_id,
            "name": names.get(partner_id),
            "clicks": clicks.get(partner_id, 0),
            "conversions": count,
            "revenue_cents": int(revenue),
            "commission_cents": int(commission),
        }
        for partner_id, count, revenue, commission in conv_rows
    ]
    results.sort(key=lambda r: (r["revenue_cents"], r["conversions"]), reverse=True)
    return results[:limit]


def top_products(db: Session, start: Optional[datetime], limit: int = 10) -> List[Dict[str, Any]]:
    click_rows = _since(
        human_clicks(db.query(Click.product_id, func.count(Click.id))).filter(Click.product_id.isnot(None)),
        Click.clicked_at, start,
    ).group_by(Click.product_id).all()
    conv_rows = _since(
        db.query(Conversion.product_id, func.count(Conversion.id)).filter(Conversion.product_id.isnot(None)),
        Conversion.converted_at, start,
    ).group_by(Conversion.product_id).all()
    clicks = dict(click_rows)
    conversions = dict(conv_rows)

    product_ids = set(clicks) | set(conversions)
    if not product_ids:
        return []
    products = {
        p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    results = [
        {
            "id": product_id,
            "name": products[product_id].name if product_id in products else None,
            "partner_id": products[product_id].partner_id if product_id in products else None,
            "clicks": clicks.get(product_id, 0),
            "conversions": conversions.get(product_id, 0),
        }
        for product_id in product_ids
    ]
    results.sort(key=lambda r: (r["clicks"], r["conversions"]), reverse=True)
    return results[:limit]


def affiliate_overview(db: Session, period: str = "30d", now: Optional[datetime] = None) -> Dict[str, Any]:
    """Dashboard numbers for one period."""
    start = period_start(period, now)

    total_clicks = _since(human_clicks(db.query(func.count(Click.id))), Click.clicked_at, start).scalar() or 0
    bot_clicks = _since(
        db.query(func.count(Click.id)).filter(Click.is_bot.is_(True)), Click.clicked_at, start
    ).scalar() or 0
    total_conversions = _since(db.query(func.count(Conversion.id)), Conversion.converted_at, start).scalar() or 0

    revenue_cents, commission_cents = _since(
        db.query(
            func.coalesce(func.sum(Conversion.sale_amount_cents), 0),
            func.coalesce(func.sum(Conversion.commission_cents), 0),
        ).filter(Conversion.conversion_status == "approved"),
        Conversion.converted_at, start,
    ).one()

    payout_rows = (
        db.query(Conversion.payout_status, func.coalesce(func.sum(Conversion.commission_cents), 0))
        .filter(Conversion.conversion_status == "approved")
        .group_by(Conversion.payout_status)
        .all()
    )
    payout_sums = {status: int(cents) for status, cents in payout_rows}

    recent = db.query(Conversion).order_by(Conversion.converted_at.desc()).limit(10).all()

    return {
        "period": period,
        "overview": {
            "total_clicks": total_clicks,
            "bot_clicks": bot_clicks,
            "total_conversions": total_conversions,
            "total_revenue_cents": int(revenue_cents),
            "total_commission_cents": int(commission_cents),
            "pending_commission_cents": payout_sums.get("unpaid", 0),
            "paid_commission_cents": payout_sums.get("paid", 0),
            "conversion_rate": conversion_rate(total_conversions, total_clicks),
        },
        "top_partners": top_partners(db, start),
        "top_products": top_products(db, start),
        "recent_conversions": [
            {
                "id": c.id,
                "partner_id": c.partner_id,
                "product_id": c.product_id,
                "sale_amount": cents_to_amount(c.sale_amount_cents),
                "commission_amount": cents_to_amount(c.commission_cents),
                "status": c.conversion_status,
                "converted_at": c.converted_at.isoformat(),
            }
            for c in recent
        ],
        "clicks_by_day": clicks_by_day(db, start),
        "conversions_by_day": conversions_by_day(db, start),
    }


def link_stats(db: Session, link_id: str) -> Dict[str, Any]:
    """Per-link click breakdown (human clicks only) and conversion rate."""
    link = db.query(Link).filter(Link.id == link_id).first()
    if not link:
        raise NotFoundError(f"Link {link_id} not found")

    base = human_clicks(db.query(Click)).filter(Click.link_id == link_id)
    total = base.count()

    def breakdown(column) -> Dict[str, int]:
        rows = (
            human_clicks(db.query(column, func.count(Click.id)))
            .filter(Click.link_id == link_id)
            .group_by(column)
            .all()
        )
        return {(key or "unknown"): count for key, count in rows}

    conversions = db.query(func.count(Conversion.id)).filter(Conversion.link_id == link_id).scalar() or 0
    return {
        "link_id": link_id,
        "short_code": link.short_code,
        "total_clicks": total,
        "unique_sessions": base.with_entities(func.count(func.distinct(Click.session_id))).scalar() or 0,
        "total_conversions": conversions,
        "conversion_rate": conversion_rate(conversions, total),
        "by_device": breakdown(Click.device_type),
        "by_browser": breakdown(Click.browser),
        "by_country": breakdown(Click.country_code),
    }


def partner_stats(db: Session, partner_id: str, period: str = "30d", now: Optional[datetime] = None) -> Dict[str, Any]:
    """Partner-scoped view used by the admin and the partner portal."""
    if not db.query(Partner.id).filter(Partner.id == partner_id).first():
        raise NotFoundError(f"Partner {partner_id} not found")
    start = period_start(period, now)

    clicks = _since(
        human_clicks(db.query(func.count(Click.id))).filter(Click.partner_id == partner_id),
        Click.clicked_at, start,
    ).scalar() or 0
    conversions, commission_cents = _since(
        db.query(func.count(Conversion.id), func.coalesce(func.sum(Conversion.commission_cents), 0))
        .filter(Conversion.partner_id == partner_id, Conversion.conversion_status.in_(["pending", "approved"])),
        Conversion.converted_at, start,
    ).one()

    return {
        "partner_id": partner_id,
        "period": period,
        "total_clicks": clicks,
        "total_conversions": conversions,
        "commission_cents": int(commission_cents),
        "conversion_rate": conversion_rate(conversions, clicks),
        "clicks_by_day": clicks_by_day(db, start, partner_id=partner_id),
        "conversions_by_day": conversions_by_day(db, start, partner_id=partner_id),
    }


# Month-to-date thresholds for approved conversions
REVENUE_MILESTONES_CENTS = (100_000, 500_000, 1_000_000, 2_500_000, 5_000_000, 10_000_000)
CONVERSION_MILESTONES = (10, 50, 100, 250, 500, 1000)


def _approved_totals(db: Session, start: datetime, end: Optional[datetime] = None):
    query = db.query(
        func.coalesce(func.sum(Conversion.sale_amount_cents), 0),
        func.count(Conversion.id),
    ).filter(Conversion.conversion_status == "approved", Conversion.converted_at >= start)
    if end is not None:
        query = query.filter(Conversion.converted_at < end)
    revenue_cents, conversions = query.one()
    return int(revenue_cents), int(conversions)


def _highest_crossed(thresholds, previous: int, current: int) -> Optional[int]:
    crossed = [t for t in thresholds if previous < t <= current]
    return max(crossed) if crossed else None


def check_milestones(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Detect month-to-date milestones crossed in the last 24 hours.

    Compares approved revenue and conversion counts for the current month
    against the same totals as of 24 hours ago. Only the highest threshold
    crossed per metric is reported.
    """
    now = now or datetime.utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    cutoff = now - timedelta(hours=24)

    revenue_cents, conversions = _approved_totals(db, month_start)
    if cutoff > month_start:
        prev_revenue_cents, prev_conversions = _approved_totals(db, month_start, cutoff)
    else:
        prev_revenue_cents, prev_conversions = 0, 0

    milestones = []
    revenue_hit = _highest_crossed(REVENUE_MILESTONES_CENTS, prev_revenue_cents, revenue_cents)
    if revenue_hit is not None:
        milestones.append({"type": "revenue", "value_cents": revenue_hit})
    conversions_hit = _highest_crossed(CONVERSION_MILESTONES, prev_conversions, conversions)
    if conversions_hit is not None:
        milestones.append({"type": "conversions", "value": conversions_hit})

    period = month_start.strftime("%B %Y")
    for milestone in milestones:
        log_affiliate_event(logger, "milestone_reached", ok=True, ref=period, extra=milestone)

    return {
        "period": period,
        "revenue_cents": revenue_cents,
        "conversions": conversions,
        "milestones": milestones,
    }
