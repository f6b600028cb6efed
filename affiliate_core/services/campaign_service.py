"""
Campaign Service - lifecycle for promotional campaigns.

draft -> scheduled -> active -> completed
draft/scheduled/active -> cancelled

A campaign only affects commission while active and inside its dates, so the
scheduler jobs below keep status in step with the calendar.
"""
import logging
from datetime import datetime
from typing import Optional, List

from sqlalchemy.orm import Session

from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..models import Campaign, Partner, Product

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = ("draft", "scheduled", "active")


class CampaignService:
    """CRUD and lifecycle for campaigns."""

    @staticmethod
    def create_campaign(
        db: Session,
        *,
        name: str,
        start_date: datetime,
        end_date: Optional[datetime] = None,
        partner_id: Optional[str] = None,
        product_id: Optional[str] = None,
        bonus_commission_rate: Optional[float] = None,
        discount_code: Optional[str] = None,
        utm_source: Optional[str] = None,
        utm_medium: Optional[str] = None,
        utm_campaign: Optional[str] = None,
        description: Optional[str] = None,
        schedule: bool = False,
    ) -> Campaign:
        """Create a campaign in draft (or scheduled) status."""
        if end_date and end_date <= start_date:
            raise ValidationError("end_date must be after start_date")
        if bonus_commission_rate is not None and bonus_commission_rate < 0:
            raise ValidationError("bonus_commission_rate must be non-negative")
        if partner_id and not db.query(Partner.id).filter(Partner.id == partner_id).first():
            raise NotFoundError(f"Partner {partner_id} not found")
        if product_id:
            product = db.query(Product).filter(Product.id == product_id).first()
            if not product:
                raise NotFoundError(f"Product {product_id} not found")
            if partner_id and product.partner_id != partner_id:
                raise ConflictError(f"Product {product_id} does not belong to partner {partner_id}")

        campaign = Campaign(
            name=name,
            description=description,
            partner_id=partner_id,
            product_id=product_id,
            start_date=start_date,
            end_date=end_date,
            status="scheduled" if schedule else "draft",
            bonus_commission_rate=bonus_commission_rate,
            discount_code=discount_code,
            utm_source=utm_source,
            utm_medium=utm_medium,
            utm_campaign=utm_campaign,
        )
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        logger.info(f"Created campaign {campaign.id}: {name} (status={campaign.status})")
        return campaign

    @staticmethod
    def get_campaign(db: Session, campaign_id: str) -> Campaign:
        campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
        if not campaign:
            raise NotFoundError(f"Campaign {campaign_id} not found")
        return campaign

    @staticmethod
    def update_campaign(db: Session, campaign_id: str, **kwargs) -> Campaign:
        """Update campaign fields. Completed/cancelled campaigns are frozen."""
        campaign = CampaignService.get_campaign(db, campaign_id)
        if campaign.status not in EDITABLE_STATUSES:
            raise ConflictError(f"Cannot edit campaign in '{campaign.status}' status")

        allowed_fields = {
            "name", "description", "start_date", "end_date", "bonus_commission_rate",
            "discount_code", "utm_source", "utm_medium", "utm_campaign",
        }
        for key, value in kwargs.items():
            if key in allowed_fields and value is not None:
                setattr(campaign, key, value)

        if campaign.end_date and campaign.end_date <= campaign.start_date:
            db.rollback()
            raise ValidationError("end_date must be after start_date")

        campaign.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(campaign)
        return campaign

    @staticmethod
    def _transition(db: Session, campaign_id: str, allowed_from: tuple, to_status: str) -> Campaign:
        campaign = CampaignService.get_campaign(db, campaign_id)
        if campaign.status not in allowed_from:
            raise ConflictError(
                f"Cannot move campaign from '{campaign.status}' to '{to_status}'"
            )
        campaign.status = to_status
        campaign.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(campaign)
        logger.info(f"Campaign {campaign_id} -> {to_status}")
        return campaign

    @staticmethod
    def schedule_campaign(db: Session, campaign_id: str) -> Campaign:
        return CampaignService._transition(db, campaign_id, ("draft",), "scheduled")

    @staticmethod
    def activate_campaign(db: Session, campaign_id: str) -> Campaign:
        return CampaignService._transition(db, campaign_id, ("draft", "scheduled"), "active")

    @staticmethod
    def complete_campaign(db: Session, campaign_id: str) -> Campaign:
        return CampaignService._transition(db, campaign_id, ("active",), "completed")

    @staticmethod
    def cancel_campaign(db: Session, campaign_id: str) -> Campaign:
        return CampaignService._transition(db, campaign_id, ("draft", "scheduled", "active"), "cancelled")

    @staticmethod
    def list_campaigns(
        db: Session,
        partner_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Campaign]:
        query = db.query(Campaign)
        if partner_id:
            query = query.filter(Campaign.partner_id == partner_id)
        if status:
            query = query.filter(Campaign.status == status)
        return query.order_by(Campaign.created_at.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def get_active_campaigns(db: Session, now: Optional[datetime] = None) -> List[Campaign]:
        """Campaigns with status='active' whose date range contains now."""
        now = now or datetime.utcnow()
        return (
            db.query(Campaign)
            .filter(Campaign.status == "active", Campaign.start_date <= now)
            .filter((Campaign.end_date.is_(None)) | (Campaign.end_date >= now))
            .all()
        )

    @staticmethod
    def start_scheduled_campaigns(db: Session, now: Optional[datetime] = None) -> int:
        """Activate scheduled campaigns whose start date has arrived."""
        now = now or datetime.utcnow()
        due = (
            db.query(Campaign)
            .filter(Campaign.status == "scheduled", Campaign.start_date <= now)
            .filter((Campaign.end_date.is_(None)) | (Campaign.end_date > now))
            .all()
        )
        for campaign in due:
            campaign.status = "active"
            campaign.updated_at = now
            logger.info(f"Started scheduled campaign {campaign.id}: {campaign.name}")
        db.commit()
        return len(due)

    @staticmethod
    def complete_ended_campaigns(db: Session, now: Optional[datetime] = None) -> int:
        """Complete active campaigns past their end date."""
        now = now or datetime.utcnow()
        ended = (
            db.query(Campaign)
            .filter(
                Campaign.status.in_(["active", "scheduled"]),
                Campaign.end_date.isnot(None),
                Campaign.end_date < now,
            )
            .all()
        )
        for campaign in ended:
            campaign.status = "completed"
            campaign.updated_at = now
            logger.info(f"Completed ended campaign {campaign.id}: {campaign.name}")
        db.commit()
        return len(ended)
