"""Trackable links and the click events recorded against them"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from ..db import Base
from .partner import generate_uuid


class Link(Base):
    """A short-coded redirect to a partner destination. short_code never changes."""
    __tablename__ = "affiliate_links"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    short_code = Column(String(32), nullable=False, unique=True)
    partner_id = Column(String(36), ForeignKey("affiliate_partners.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("affiliate_products.id"), nullable=True)
    campaign_id = Column(String(36), ForeignKey("affiliate_campaigns.id"), nullable=True)
    name = Column(String(255), nullable=True)
    destination_url = Column(String(2000), nullable=False)
    tracking_url = Column(String(4000), nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active, paused, expired
    expires_at = Column(DateTime, nullable=True)
    total_conversions = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)


class Click(Base):
    """Append-only click event. Bot clicks are kept for audit but never counted."""
    __tablename__ = "affiliate_clicks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    link_id = Column(String(36), ForeignKey("affiliate_links.id"), nullable=False)
    partner_id = Column(String(36), ForeignKey("affiliate_partners.id"), nullable=False)
    product_id = Column(String(36), nullable=True)
    campaign_id = Column(String(36), nullable=True)
    clicked_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    ip_address = Column(String(64), nullable=True)  # anonymized
    user_agent = Column(String(500), nullable=True)
    referrer = Column(String(1000), nullable=True)
    country_code = Column(String(2), nullable=True)
    device_type = Column(String(20), nullable=False, default="unknown")  # desktop, mobile, tablet, unknown
    browser = Column(String(50), nullable=True)
    os = Column(String(50), nullable=True)
    is_bot = Column(Boolean, nullable=False, default=False)
    bot_type = Column(String(50), nullable=True)
    fraud_score = Column(Integer, nullable=True)
    session_id = Column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_affiliate_clicks_link_clicked", "link_id", "clicked_at"),
        Index("ix_affiliate_clicks_partner_clicked", "partner_id", "clicked_at"),
        Index("ix_affiliate_clicks_ip_clicked", "ip_address", "clicked_at"),
    )
