"""
Campaign model.

A campaign scopes UTM tagging for its links and, while active and within its
dates, may override the commission rate for the partner/product it covers.
A null partner_id or product_id means the campaign covers all of them.
"""
from datetime import datetime
from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Text, Index
from ..db import Base
from .partner import generate_uuid


class Campaign(Base):
    __tablename__ = "affiliate_campaigns"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    partner_id = Column(String(36), ForeignKey("affiliate_partners.id"), nullable=True)
    product_id = Column(String(36), ForeignKey("affiliate_products.id"), nullable=True)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)  # null = open-ended
    status = Column(String(20), nullable=False, default="draft", index=True)
    # Statuses: draft, scheduled, active, completed, cancelled

    bonus_commission_rate = Column(Float, nullable=True)
    discount_code = Column(String(100), nullable=True)

    utm_source = Column(String(100), nullable=True)
    utm_medium = Column(String(100), nullable=True)
    utm_campaign = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_affiliate_campaigns_status_dates", "status", "start_date", "end_date"),
    )
