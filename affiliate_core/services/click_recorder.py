"""
Click Recorder - turns a redirect hit into a stored Click.

The redirect must never fail because of telemetry: `track_redirect` resolves
the link (the only step allowed to fail the request) and then records the
click best-effort, logging and swallowing storage errors.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..middleware.metrics import clicks_total
from ..models import Click
from ..utils.user_agent import anonymize_ip, classify_user_agent
from .fraud import is_ip_blocked, score_click
from .link_registry import ResolvedLink, add_query_params, resolve_link

logger = logging.getLogger(__name__)

MAX_USER_AGENT_LENGTH = 500
MAX_REFERRER_LENGTH = 1000
CLICK_ID_PARAM = "click_id"


@dataclass
class RequestMetadata:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    country_code: Optional[str] = None
    session_id: Optional[str] = None


@dataclass
class RedirectResult:
    location: str
    partner_id: str
    attribution_window_days: int
    click_id: Optional[str] = None
    outcome: str = "recorded"  # recorded, bot, blocked, fraud, error


def record_click(
    db: Session,
    resolved: ResolvedLink,
    metadata: RequestMetadata,
    click_id: Optional[str] = None,
    fraud_score: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Click:
    """Persist one click. Bots are stored with is_bot set; callers decide whether to count them."""
    ua_info = classify_user_agent(metadata.user_agent)
    country = (metadata.country_code or "").strip().upper()[:2] or None
    click = Click(
        id=click_id or str(uuid.uuid4()),
        link_id=resolved.link_id,
        partner_id=resolved.partner_id,
        product_id=resolved.product_id,
        campaign_id=resolved.campaign_id,
        clicked_at=now or datetime.utcnow(),
        ip_address=anonymize_ip(metadata.ip_address),
        user_agent=metadata.user_agent[:MAX_USER_AGENT_LENGTH] if metadata.user_agent else None,
        referrer=metadata.referrer[:MAX_REFERRER_LENGTH] if metadata.referrer else None,
        country_code=country if country and country != "XX" else None,
        device_type=ua_info.device_type,
        browser=ua_info.browser,
        os=ua_info.os,
        is_bot=ua_info.is_bot,
        bot_type=ua_info.bot_type,
        fraud_score=fraud_score,
        session_id=metadata.session_id,
    )
    db.add(click)
    db.commit()
    return click


def track_redirect(db: Session, short_code: str, metadata: RequestMetadata) -> RedirectResult:
    """
    Resolve a short code and record the click.

    Raises NotFoundError/LinkExpiredError from link resolution; every other
    failure is logged and the redirect target is still returned.
    """
    resolved = resolve_link(db, short_code)
    result = RedirectResult(
        location=resolved.tracking_url,
        partner_id=resolved.partner_id,
        attribution_window_days=resolved.attribution_window_days,
    )

    try:
        if is_ip_blocked(db, metadata.ip_address):
            result.outcome = "blocked"
            return result

        ua_info = classify_user_agent(metadata.user_agent)
        fraud = score_click(
            db,
            anonymize_ip(metadata.ip_address),
            resolved.link_id,
            metadata.user_agent,
            session_id=metadata.session_id,
        )
        if not ua_info.is_bot and not fraud.is_allowed:
            result.outcome = "fraud"
            logger.info(f"Click on {short_code} not recorded, fraud score {fraud.score}: {'; '.join(fraud.reasons)}")
            return result

        click_id = str(uuid.uuid4())
        record_click(db, resolved, metadata, click_id=click_id, fraud_score=fraud.score)
        result.click_id = click_id
        result.location = add_query_params(resolved.tracking_url, {CLICK_ID_PARAM: click_id})
        result.outcome = "bot" if ua_info.is_bot else "recorded"
    except SQLAlchemyError as e:
        db.rollback()
        result.outcome = "error"
        logger.error(f"Failed to record click for {short_code}: {e}", exc_info=True)
    finally:
        clicks_total.labels(outcome=result.outcome).inc()

    return result


def list_clicks(
    db: Session,
    link_id: Optional[str] = None,
    partner_id: Optional[str] = None,
    include_bots: bool = True,
    limit: int = 100,
    offset: int = 0,
):
    """Raw click listing. Bots are included unless filtered out."""
    query = db.query(Click)
    if link_id:
        query = query.filter(Click.link_id == link_id)
    if partner_id:
        query = query.filter(Click.partner_id == partner_id)
    if not include_bots:
        query = query.filter(Click.is_bot.is_(False))
    return query.order_by(Click.clicked_at.desc()).offset(offset).limit(limit).all()
