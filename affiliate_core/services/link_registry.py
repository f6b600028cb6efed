"""
Link Registry - issues and resolves short codes for trackable links.

Short codes are drawn from `secrets` so they cannot be enumerated; uniqueness
is enforced by retrying against the persisted set (and the unique index).
"""
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlencode, urlparse, urlunparse, parse_qsl

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import (
    ConflictError,
    LinkDestinationError,
    LinkExpiredError,
    NotFoundError,
    ShortCodeExhaustedError,
)
from ..models import Campaign, Link, Partner, Product

logger = logging.getLogger(__name__)

SHORT_CODE_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class ResolvedLink:
    """Everything the redirect and the click recorder need about a link."""
    link_id: str
    short_code: str
    partner_id: str
    product_id: Optional[str]
    campaign_id: Optional[str]
    destination_url: str
    tracking_url: str
    attribution_window_days: int


def generate_short_code(length: Optional[int] = None) -> str:
    length = length or settings.short_code_length
    return "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(length))


def build_short_url(short_code: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/go/{short_code}"


def add_query_params(url: str, params: Dict[str, Optional[str]]) -> str:
    """Set query parameters on a URL, replacing existing values and skipping None."""
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in params.items():
        if value is not None:
            query[key] = value
    return urlunparse(parts._replace(query=urlencode(query)))


def build_tracking_url(
    destination_url: str,
    short_code: str,
    campaign: Optional[Campaign] = None,
    custom_params: Optional[Dict[str, str]] = None,
) -> str:
    params = {
        "utm_source": (campaign.utm_source if campaign else None) or settings.default_utm_source,
        "utm_medium": (campaign.utm_medium if campaign else None) or settings.default_utm_medium,
        "utm_campaign": campaign.utm_campaign if campaign else None,
        "ref": short_code,
    }
    if custom_params:
        params.update(custom_params)
    return add_query_params(destination_url, params)


def _validate_destination(url: str) -> str:
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise LinkDestinationError(f"Destination must be an absolute http(s) URL: {url}")
    return url.strip()


def _unique_short_code(db: Session, code_factory: Callable[[], str]) -> str:
    for attempt in range(1, settings.short_code_max_attempts + 1):
        code = code_factory()
        exists = db.query(Link.id).filter(Link.short_code == code).first()
        if not exists:
            return code
        logger.warning(f"Short code collision on attempt {attempt}: {code}")
    raise ShortCodeExhaustedError(
        f"Could not generate a unique short code after {settings.short_code_max_attempts} attempts"
    )


def create_link(
    db: Session,
    partner_id: str,
    product_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    custom_url: Optional[str] = None,
    name: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    custom_params: Optional[Dict[str, str]] = None,
    code_factory: Optional[Callable[[], str]] = None,
) -> Tuple[Link, str]:
    """
    Create a trackable link and return it with its public short URL.

    Destination is the custom URL if given, else the product's URL.
    """
    partner = db.query(Partner).filter(Partner.id == partner_id).first()
    if not partner:
        raise NotFoundError(f"Partner {partner_id} not found")
    if partner.status == "terminated":
        raise ConflictError(f"Partner {partner_id} is terminated")

    product = None
    if product_id:
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        if product.partner_id != partner.id:
            raise ConflictError(f"Product {product_id} does not belong to partner {partner_id}")

    campaign = None
    if campaign_id:
        campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
        if not campaign:
            raise NotFoundError(f"Campaign {campaign_id} not found")

    if custom_url:
        destination = _validate_destination(custom_url)
    elif product is not None and product.product_url:
        destination = _validate_destination(product.product_url)
    else:
        raise LinkDestinationError("Link needs a custom URL or a product with a URL")

    short_code = _unique_short_code(db, code_factory or generate_short_code)
    link = Link(
        short_code=short_code,
        partner_id=partner.id,
        product_id=product.id if product else None,
        campaign_id=campaign.id if campaign else None,
        name=name,
        destination_url=destination,
        tracking_url=build_tracking_url(destination, short_code, campaign, custom_params),
        status="active",
        expires_at=expires_at,
        total_conversions=0,
    )
    db.add(link)
    db.commit()
    db.refresh(link)
    logger.info(f"Created link {link.id} ({short_code}) for partner {partner.id}")
    return link, build_short_url(short_code)


def resolve_link(db: Session, short_code: str, now: Optional[datetime] = None) -> ResolvedLink:
    """Look up an active link by short code, raising NotFound/LinkExpired."""
    now = now or datetime.utcnow()
    link = db.query(Link).filter(Link.short_code == short_code).first()
    if not link:
        raise NotFoundError(f"Link {short_code} not found")
    if link.status in ("expired", "paused"):
        raise LinkExpiredError(f"Link {short_code} is {link.status}")
    if link.expires_at and link.expires_at <= now:
        raise LinkExpiredError(f"Link {short_code} expired at {link.expires_at.isoformat()}")

    partner = db.query(Partner).filter(Partner.id == link.partner_id).first()
    if not partner or partner.status != "active":
        raise LinkExpiredError(f"Partner for link {short_code} is not active")

    return ResolvedLink(
        link_id=link.id,
        short_code=link.short_code,
        partner_id=link.partner_id,
        product_id=link.product_id,
        campaign_id=link.campaign_id,
        destination_url=link.destination_url,
        tracking_url=link.tracking_url,
        attribution_window_days=partner.cookie_window_days or settings.default_attribution_window_days,
    )


def increment_link_conversions(db: Session, link_id: str) -> None:
    """Atomic counter bump; caller owns the transaction."""
    db.execute(
        update(Link)
        .where(Link.id == link_id)
        .values(total_conversions=Link.total_conversions + 1)
    )


def get_link(db: Session, link_id: str) -> Link:
    link = db.query(Link).filter(Link.id == link_id).first()
    if not link:
        raise NotFoundError(f"Link {link_id} not found")
    return link


def update_link(
    db: Session,
    link_id: str,
    name: Optional[str] = None,
    status: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    destination_url: Optional[str] = None,
) -> Link:
    """Update mutable link fields. short_code never changes."""
    link = get_link(db, link_id)
    if status is not None:
        if status not in ("active", "paused", "expired"):
            raise ConflictError(f"Invalid link status: {status}")
        link.status = status
    if name is not None:
        link.name = name
    if expires_at is not None:
        link.expires_at = expires_at
    if destination_url is not None:
        link.destination_url = _validate_destination(destination_url)
        campaign = None
        if link.campaign_id:
            campaign = db.query(Campaign).filter(Campaign.id == link.campaign_id).first()
        link.tracking_url = build_tracking_url(link.destination_url, link.short_code, campaign)
    db.commit()
    db.refresh(link)
    return link
