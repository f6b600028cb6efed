"""Conversion and Payout models"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, JSON,
    Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from ..db import Base
from .partner import generate_uuid


class Conversion(Base):
    """
    An attributed sale/lead.

    (partner_id, order_id) is unique: the same partner reporting the same order
    twice must resolve to this one row.
    """
    __tablename__ = "affiliate_conversions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    partner_id = Column(String(36), ForeignKey("affiliate_partners.id"), nullable=False)
    product_id = Column(String(36), ForeignKey("affiliate_products.id"), nullable=True)
    link_id = Column(String(36), ForeignKey("affiliate_links.id"), nullable=True)
    click_id = Column(String(36), ForeignKey("affiliate_clicks.id"), nullable=True)
    campaign_id = Column(String(36), ForeignKey("affiliate_campaigns.id"), nullable=True)
    order_id = Column(String(255), nullable=False)
    transaction_id = Column(String(255), nullable=True)
    conversion_type = Column(String(20), nullable=False, default="sale")  # sale, lead, signup, trial, download
    sale_amount_cents = Column(Integer, nullable=True)
    commission_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    conversion_status = Column(String(20), nullable=False, default="pending")  # pending, approved, rejected, reversed
    payout_status = Column(String(20), nullable=False, default="unpaid")  # unpaid, processing, paid
    payout_id = Column(String(36), ForeignKey("affiliate_payouts.id"), nullable=True)
    validation_method = Column(String(20), nullable=False, default="postback")  # postback, manual
    fraud_score = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    converted_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    payout = relationship("Payout", back_populates="conversions")

    __table_args__ = (
        UniqueConstraint("partner_id", "order_id", name="uq_affiliate_conversions_partner_order"),
        Index("ix_affiliate_conversions_partner_status", "partner_id", "conversion_status", "payout_status"),
        Index("ix_affiliate_conversions_converted_at", "converted_at"),
        CheckConstraint("commission_cents >= 0", name="ck_conversion_commission_non_negative"),
    )


class Payout(Base):
    """A batch of approved conversions settled to one partner"""
    __tablename__ = "affiliate_payouts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    partner_id = Column(String(36), ForeignKey("affiliate_partners.id"), nullable=False, index=True)
    total_commission_cents = Column(Integer, nullable=False)
    total_conversions = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending, completed, failed
    payout_method = Column(String(20), nullable=False, default="manual")
    transaction_reference = Column(String(255), nullable=True)
    payout_date = Column(DateTime, nullable=True)
    failure_reason = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    conversions = relationship("Conversion", back_populates="payout")

    __table_args__ = (
        CheckConstraint("total_commission_cents >= 0", name="ck_payout_total_non_negative"),
    )
