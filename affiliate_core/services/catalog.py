"""
Partner, product and link administration.

Records with attribution history are never hard-deleted: a partner is
terminated, a product inactivated, a link expired. Anything with unpaid
conversions cannot be removed at all.
"""
import logging
import re
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..models import Campaign, Click, Conversion, Link, Partner, Product
from ..utils.log import log_affiliate_event

logger = logging.getLogger(__name__)

PARTNER_STATUSES = ("pending", "active", "paused", "terminated")
PRODUCT_STATUSES = ("active", "inactive", "out_of_stock")
COMMISSION_TYPES = ("percentage", "flat")
PAYOUT_METHODS = ("manual", "stripe", "paypal", "bank_transfer")

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", value.lower()).strip("-")


def generate_api_secret() -> str:
    return secrets.token_hex(32)


def _unique_slug(db: Session, model, base: str) -> str:
    slug = slugify(base) or "item"
    candidate = slug
    suffix = 2
    while db.query(model.id).filter(model.slug == candidate).first():
        candidate = f"{slug}-{suffix}"
        suffix += 1
    return candidate


def _validate_rate(commission_type: str, rate: float) -> None:
    if commission_type not in COMMISSION_TYPES:
        raise ValidationError(f"Invalid commission type: {commission_type}")
    if rate is None or rate < 0:
        raise ValidationError("commission_rate must be non-negative")
    if commission_type == "percentage" and rate > 100:
        raise ValidationError("Percentage commission_rate cannot exceed 100")


def _unpaid_conversion_count(db: Session, **filters) -> int:
    query = db.query(func.count(Conversion.id)).filter(
        Conversion.payout_status.in_(["unpaid", "processing"]),
        Conversion.conversion_status.in_(["pending", "approved"]),
    )
    for column, value in filters.items():
        query = query.filter(getattr(Conversion, column) == value)
    return query.scalar() or 0


class PartnerService:

    @staticmethod
    def create_partner(
        db: Session,
        *,
        company_name: str,
        commission_rate: float,
        commission_type: str = "percentage",
        slug: Optional[str] = None,
        contact_email: Optional[str] = None,
        website_url: Optional[str] = None,
        cookie_window_days: Optional[int] = None,
        status: str = "active",
        payout_threshold_cents: Optional[int] = None,
        payout_method: str = "manual",
        stripe_account_id: Optional[str] = None,
        with_api_secret: bool = True,
    ) -> Partner:
        _validate_rate(commission_type, commission_rate)
        if status not in PARTNER_STATUSES:
            raise ValidationError(f"Invalid partner status: {status}")
        if payout_method not in PAYOUT_METHODS:
            raise ValidationError(f"Invalid payout method: {payout_method}")
        window = cookie_window_days or settings.default_attribution_window_days
        if window <= 0:
            raise ValidationError("cookie_window_days must be positive")

        if slug:
            slug = slugify(slug)
            if db.query(Partner.id).filter(Partner.slug == slug).first():
                raise ConflictError(f"Partner slug '{slug}' already exists")
        else:
            slug = _unique_slug(db, Partner, company_name)

        partner = Partner(
            company_name=company_name,
            slug=slug,
            contact_email=contact_email,
            website_url=website_url,
            commission_rate=commission_rate,
            commission_type=commission_type,
            cookie_window_days=window,
            status=status,
            payout_threshold_cents=(
                payout_threshold_cents if payout_threshold_cents is not None
                else settings.default_payout_threshold_cents
            ),
            payout_method=payout_method,
            stripe_account_id=stripe_account_id,
            api_secret=generate_api_secret() if with_api_secret else None,
        )
        db.add(partner)
        db.commit()
        db.refresh(partner)
        logger.info(f"Created partner {partner.id}: {company_name} ({slug})")
        return partner

    @staticmethod
    def get_partner(db: Session, partner_id: str) -> Partner:
        partner = db.query(Partner).filter(Partner.id == partner_id).first()
        if not partner:
            raise NotFoundError(f"Partner {partner_id} not found")
        return partner

    @staticmethod
    def list_partners(db: Session, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[Partner]:
        query = db.query(Partner)
        if status:
            query = query.filter(Partner.status == status)
        return query.order_by(Partner.created_at.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def update_partner(db: Session, partner_id: str, **kwargs) -> Partner:
        partner = PartnerService.get_partner(db, partner_id)
        allowed_fields = {
            "company_name", "contact_email", "website_url", "commission_rate", "commission_type",
            "cookie_window_days", "status", "payout_threshold_cents", "payout_method",
            "stripe_account_id", "notes",
        }
        updates = {k: v for k, v in kwargs.items() if k in allowed_fields and v is not None}

        _validate_rate(
            updates.get("commission_type", partner.commission_type),
            updates.get("commission_rate", partner.commission_rate),
        )
        if "status" in updates and updates["status"] not in PARTNER_STATUSES:
            raise ValidationError(f"Invalid partner status: {updates['status']}")
        if "payout_method" in updates and updates["payout_method"] not in PAYOUT_METHODS:
            raise ValidationError(f"Invalid payout method: {updates['payout_method']}")
        if "cookie_window_days" in updates and updates["cookie_window_days"] <= 0:
            raise ValidationError("cookie_window_days must be positive")

        for key, value in updates.items():
            setattr(partner, key, value)
        partner.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(partner)
        return partner

    @staticmethod
    def rotate_api_secret(db: Session, partner_id: str) -> Partner:
        partner = PartnerService.get_partner(db, partner_id)
        partner.api_secret = generate_api_secret()
        partner.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(partner)
        logger.info(f"Rotated API secret for partner {partner_id}")
        return partner

    @staticmethod
    def delete_partner(db: Session, partner_id: str) -> Dict[str, Any]:
        """Hard delete only without history; terminate otherwise."""
        partner = PartnerService.get_partner(db, partner_id)
        unpaid = _unpaid_conversion_count(db, partner_id=partner_id)
        if unpaid:
            raise ConflictError(f"Partner {partner_id} has {unpaid} unpaid conversions")

        has_history = (
            db.query(Conversion.id).filter(Conversion.partner_id == partner_id).first()
            or db.query(Click.id).filter(Click.partner_id == partner_id).first()
            or db.query(Link.id).filter(Link.partner_id == partner_id).first()
        )
        if has_history:
            partner.status = "terminated"
            partner.updated_at = datetime.utcnow()
            db.commit()
            logger.info(f"Terminated partner {partner_id} (has history)")
            return {"id": partner_id, "deleted": False, "status": "terminated"}

        db.query(Campaign).filter(Campaign.partner_id == partner_id).delete(synchronize_session=False)
        db.query(Product).filter(Product.partner_id == partner_id).delete(synchronize_session=False)
        db.delete(partner)
        db.commit()
        logger.info(f"Deleted partner {partner_id}")
        return {"id": partner_id, "deleted": True, "status": "deleted"}


class ProductService:

    @staticmethod
    def create_product(
        db: Session,
        *,
        partner_id: str,
        name: str,
        product_url: Optional[str] = None,
        slug: Optional[str] = None,
        category: Optional[str] = None,
        description: Optional[str] = None,
        price_cents: Optional[int] = None,
        commission_override: Optional[float] = None,
    ) -> Product:
        partner = PartnerService.get_partner(db, partner_id)
        if commission_override is not None:
            _validate_rate(partner.commission_type, commission_override)
        if slug:
            slug = slugify(slug)
            if db.query(Product.id).filter(Product.slug == slug).first():
                raise ConflictError(f"Product slug '{slug}' already exists")
        else:
            slug = _unique_slug(db, Product, f"{partner.slug}-{name}")

        product = Product(
            partner_id=partner.id,
            name=name,
            slug=slug,
            category=category,
            description=description,
            product_url=product_url,
            price_cents=price_cents,
            commission_override=commission_override,
            status="active",
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        logger.info(f"Created product {product.id}: {name} for partner {partner.id}")
        return product

    @staticmethod
    def get_product(db: Session, product_id: str) -> Product:
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    @staticmethod
    def list_products(
        db: Session,
        partner_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Product]:
        query = db.query(Product)
        if partner_id:
            query = query.filter(Product.partner_id == partner_id)
        if status:
            query = query.filter(Product.status == status)
        return query.order_by(Product.created_at.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def update_product(db: Session, product_id: str, **kwargs) -> Product:
        product = ProductService.get_product(db, product_id)
        allowed_fields = {
            "name", "category", "description", "product_url", "price_cents",
            "commission_override", "status",
        }
        updates = {k: v for k, v in kwargs.items() if k in allowed_fields and v is not None}
        if "status" in updates and updates["status"] not in PRODUCT_STATUSES:
            raise ValidationError(f"Invalid product status: {updates['status']}")
        if "commission_override" in updates:
            partner = PartnerService.get_partner(db, product.partner_id)
            _validate_rate(partner.commission_type, updates["commission_override"])
        for key, value in updates.items():
            setattr(product, key, value)
        product.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(product)
        return product

    @staticmethod
    def delete_product(db: Session, product_id: str) -> Dict[str, Any]:
        product = ProductService.get_product(db, product_id)
        unpaid = _unpaid_conversion_count(db, product_id=product_id)
        if unpaid:
            raise ConflictError(f"Product {product_id} has {unpaid} unpaid conversions")

        has_history = (
            db.query(Conversion.id).filter(Conversion.product_id == product_id).first()
            or db.query(Link.id).filter(Link.product_id == product_id).first()
        )
        if has_history:
            product.status = "inactive"
            product.updated_at = datetime.utcnow()
            db.commit()
            return {"id": product_id, "deleted": False, "status": "inactive"}

        db.delete(product)
        db.commit()
        return {"id": product_id, "deleted": True, "status": "deleted"}


def delete_link(db: Session, link_id: str) -> Dict[str, Any]:
    """Expire a link with clicks/conversions; hard delete an unused one."""
    link = db.query(Link).filter(Link.id == link_id).first()
    if not link:
        raise NotFoundError(f"Link {link_id} not found")
    unpaid = _unpaid_conversion_count(db, link_id=link_id)
    if unpaid:
        raise ConflictError(f"Link {link_id} has {unpaid} unpaid conversions")

    has_history = (
        db.query(Click.id).filter(Click.link_id == link_id).first()
        or db.query(Conversion.id).filter(Conversion.link_id == link_id).first()
    )
    if has_history:
        link.status = "expired"
        link.updated_at = datetime.utcnow()
        db.commit()
        return {"id": link_id, "deleted": False, "status": "expired"}

    db.delete(link)
    db.commit()
    return {"id": link_id, "deleted": True, "status": "deleted"}


def expire_links(db: Session, now: Optional[datetime] = None) -> int:
    """Flip active links past expires_at to expired."""
    now = now or datetime.utcnow()
    links = (
        db.query(Link)
        .filter(Link.status == "active", Link.expires_at.isnot(None), Link.expires_at <= now)
        .all()
    )
    for link in links:
        link.status = "expired"
        link.updated_at = now
    db.commit()
    if links:
        logger.info(f"Expired {len(links)} links")
    return len(links)


def check_link_health(url: str, client: Optional[httpx.Client] = None) -> int:
    """HEAD a destination URL, following redirects. Returns the final status, or 0 if unreachable."""
    try:
        if client is not None:
            response = client.head(url, follow_redirects=True)
        else:
            response = httpx.head(url, follow_redirects=True, timeout=settings.link_health_timeout_seconds)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Link health request to {url} failed: {e}")
        return 0
    return response.status_code


def run_link_health_check(
    db: Session,
    client: Optional[httpx.Client] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Probe the destinations of the busiest active links.

    A 404 expires the link; any other non-2xx/3xx result (including an
    unreachable host) pauses it so the redirect stops sending traffic there.
    """
    now = now or datetime.utcnow()
    links = (
        db.query(Link)
        .outerjoin(Click, Click.link_id == Link.id)
        .filter(Link.status == "active")
        .group_by(Link.id)
        .order_by(func.count(Click.id).desc(), Link.created_at)
        .limit(limit or settings.link_health_batch_size)
        .all()
    )

    unhealthy = []
    for link in links:
        status = check_link_health(link.destination_url, client=client)
        if 200 <= status < 400:
            continue
        link.status = "expired" if status == 404 else "paused"
        link.updated_at = now
        unhealthy.append({
            "id": link.id,
            "short_code": link.short_code,
            "url": link.destination_url,
            "status": status,
            "link_status": link.status,
        })
    db.commit()

    for entry in unhealthy:
        log_affiliate_event(logger, "link_unhealthy", ok=False, ref=entry["short_code"], extra=entry)
    logger.info(f"Checked {len(links)} links, {len(unhealthy)} unhealthy")
    return {"checked": len(links), "unhealthy": unhealthy}
