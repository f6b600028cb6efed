"""
Fraud screening for clicks and conversions.

Click scoring runs at redirect time against the last hour of stored clicks;
conversion scoring runs from the fraud scan job. Scores are additive; a
click scoring at or above the block threshold is not recorded, a conversion
scoring >= 50 is recommended for blocking and >= 25 for review.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import ConflictError, NotFoundError
from ..models import BlockedIp, Click, Conversion
from ..utils.log import log_affiliate_event
from ..utils.user_agent import anonymize_ip

logger = logging.getLogger(__name__)

AUTOMATION_SIGNATURES = (
    "selenium",
    "puppeteer",
    "playwright",
    "phantomjs",
    "headless",
    "python-requests",
    "curl",
    "wget",
    "httpie",
    "postman",
)

MAX_CLICKS_PER_SESSION_PER_HOUR = 20
REVIEW_SCORE = 25
BLOCK_SCORE = 50


@dataclass
class ClickFraudCheck:
    score: int
    reasons: List[str] = field(default_factory=list)
    is_allowed: bool = True


@dataclass
class FraudScore:
    score: int
    reasons: List[str] = field(default_factory=list)
    recommendation: str = "allow"  # allow, review, block


def score_click(
    db: Session,
    ip_address: Optional[str],
    link_id: str,
    user_agent: Optional[str],
    session_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ClickFraudCheck:
    """Score a click before it is recorded. ip_address must already be anonymized."""
    now = now or datetime.utcnow()
    hour_ago = now - timedelta(hours=1)
    reasons = []
    score = 0

    if ip_address:
        ip_clicks = db.query(func.count(Click.id)).filter(
            Click.ip_address == ip_address,
            Click.clicked_at >= hour_ago,
        ).scalar() or 0
        if ip_clicks >= settings.max_clicks_per_ip_per_hour:
            reasons.append("IP rate limit exceeded")
            score += 40
        elif ip_clicks >= settings.max_clicks_per_ip_per_hour / 2:
            reasons.append("High click volume from IP")
            score += 20

    if session_id:
        session_clicks = db.query(func.count(Click.id)).filter(
            Click.session_id == session_id,
            Click.clicked_at >= hour_ago,
        ).scalar() or 0
        if session_clicks >= MAX_CLICKS_PER_SESSION_PER_HOUR:
            reasons.append("Session rate limit exceeded")
            score += 30

    link_clicks = db.query(func.count(Click.id)).filter(
        Click.link_id == link_id,
        Click.clicked_at >= hour_ago,
    ).scalar() or 0
    if link_clicks >= settings.max_clicks_per_link_per_hour:
        reasons.append("Unusual traffic spike on link")
        score += 25

    if not user_agent:
        reasons.append("Missing user agent")
        score += 25
    else:
        ua = user_agent.lower()
        if len(user_agent) < 20:
            reasons.append("Suspicious user agent (too short)")
            score += 15
        for sig in AUTOMATION_SIGNATURES:
            if sig in ua:
                reasons.append(f"Automation tool detected: {sig}")
                score += 50
                break

    return ClickFraudCheck(
        score=score,
        reasons=reasons,
        is_allowed=score < settings.click_block_score_threshold,
    )


def _recommendation(score: int) -> str:
    if score >= BLOCK_SCORE:
        return "block"
    if score >= REVIEW_SCORE:
        return "review"
    return "allow"


def score_conversion(db: Session, conversion: Conversion) -> FraudScore:
    reasons = []
    score = 0

    if not conversion.click_id:
        reasons.append("No associated click")
        score += 30
    else:
        click = db.query(Click).filter(Click.id == conversion.click_id).first()
        if click:
            days_gap = (conversion.converted_at - click.clicked_at).days
            if days_gap > settings.suspicious_conversion_gap_days:
                reasons.append(f"Long delay between click and conversion: {days_gap} days")
                score += 20
            if click.is_bot:
                reasons.append("Original click was from a bot")
                score += 40

    if (conversion.commission_cents or 0) > settings.high_value_commission_cents:
        reasons.append("High-value conversion - manual review recommended")
        score += 10

    decided = db.query(func.count(Conversion.id)).filter(
        Conversion.partner_id == conversion.partner_id,
        Conversion.conversion_status.in_(["approved", "rejected"]),
    ).scalar() or 0
    if decided > 10:
        rejected = db.query(func.count(Conversion.id)).filter(
            Conversion.partner_id == conversion.partner_id,
            Conversion.conversion_status == "rejected",
        ).scalar() or 0
        rejection_rate = rejected / decided
        if rejection_rate > settings.max_rejection_rate:
            reasons.append(f"Partner has high rejection rate: {rejection_rate * 100:.1f}%")
            score += 25

    # Same order reported under another partner
    duplicates = db.query(func.count(Conversion.id)).filter(
        Conversion.order_id == conversion.order_id,
        Conversion.id != conversion.id,
    ).scalar() or 0
    if duplicates:
        reasons.append("Duplicate order ID detected")
        score += 50

    return FraudScore(score=score, reasons=reasons, recommendation=_recommendation(score))


def partner_reputation(db: Session, partner_id: str) -> dict:
    """Approval/reversal based reputation, 100 = clean."""
    counts = dict(
        db.query(Conversion.conversion_status, func.count(Conversion.id))
        .filter(Conversion.partner_id == partner_id)
        .group_by(Conversion.conversion_status)
        .all()
    )
    total = sum(counts.values())
    approved = counts.get("approved", 0)
    rejected = counts.get("rejected", 0)
    reversed_ = counts.get("reversed", 0)
    decided = approved + rejected
    approval_rate = approved / decided if decided else 1.0

    score = 100
    flags = []
    if total > 10:
        if approval_rate < 0.8:
            score -= 30
            flags.append("Low approval rate")
        elif approval_rate < 0.9:
            score -= 15
            flags.append("Below average approval rate")
        if reversed_ / total > 0.1:
            score -= 25
            flags.append("High reversal rate")

    return {
        "partner_id": partner_id,
        "score": max(score, 0),
        "total_conversions": total,
        "approved_conversions": approved,
        "rejected_conversions": rejected,
        "reversed_conversions": reversed_,
        "approval_rate": approval_rate,
        "flags": flags,
    }


def is_ip_blocked(db: Session, ip_address: Optional[str]) -> bool:
    if not ip_address:
        return False
    candidates = {ip_address, anonymize_ip(ip_address)}
    return db.query(BlockedIp.id).filter(BlockedIp.ip_address.in_(candidates)).first() is not None


def block_ip(db: Session, ip_address: str, reason: Optional[str] = None) -> BlockedIp:
    existing = db.query(BlockedIp).filter(BlockedIp.ip_address == ip_address).first()
    if existing:
        raise ConflictError(f"IP {ip_address} is already blocked")
    blocked = BlockedIp(ip_address=ip_address, reason=reason)
    db.add(blocked)
    db.commit()
    db.refresh(blocked)
    logger.info(f"Blocked IP {ip_address}: {reason}")
    return blocked


def unblock_ip(db: Session, ip_address: str) -> None:
    blocked = db.query(BlockedIp).filter(BlockedIp.ip_address == ip_address).first()
    if not blocked:
        raise NotFoundError(f"IP {ip_address} is not blocked")
    db.delete(blocked)
    db.commit()
    logger.info(f"Unblocked IP {ip_address}")


def run_fraud_scan(db: Session, limit: int = 500) -> dict:
    """
    Score pending conversions, store the score, auto-reject those recommended
    for blocking. Returns counts per recommendation.
    """
    pending = (
        db.query(Conversion)
        .filter(Conversion.conversion_status == "pending")
        .order_by(Conversion.converted_at.asc())
        .limit(limit)
        .all()
    )
    results = {"scanned": 0, "allow": 0, "review": 0, "block": 0}
    now = datetime.utcnow()
    for conversion in pending:
        fraud = score_conversion(db, conversion)
        conversion.fraud_score = fraud.score
        results["scanned"] += 1
        results[fraud.recommendation] += 1
        if fraud.recommendation == "block":
            conversion.conversion_status = "rejected"
            note = f"Auto-rejected by fraud scan ({now.isoformat()}): {'; '.join(fraud.reasons)}"
            conversion.notes = f"{conversion.notes}\n{note}" if conversion.notes else note
            log_affiliate_event(
                logger, "fraud_reject", ok=False,
                partner_id=conversion.partner_id, ref=conversion.id,
                extra={"score": fraud.score, "reasons": fraud.reasons},
            )
    db.commit()
    logger.info(f"Fraud scan complete: {results}")
    return results
