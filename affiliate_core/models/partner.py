"""Partner and Product models"""
from datetime import datetime
import uuid
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Text, CheckConstraint, Index
from sqlalchemy.orm import relationship
from ..db import Base


def generate_uuid():
    return str(uuid.uuid4())


class Partner(Base):
    """An affiliate partner (merchant/network) that pays commissions"""
    __tablename__ = "affiliate_partners"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    company_name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    contact_email = Column(String(255), nullable=True)
    website_url = Column(String(1000), nullable=True)
    commission_rate = Column(Float, nullable=False, default=0)
    commission_type = Column(String(20), nullable=False, default="percentage")  # percentage, flat
    cookie_window_days = Column(Integer, nullable=False, default=30)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, active, paused, terminated
    payout_threshold_cents = Column(Integer, nullable=False, default=5000)
    payout_method = Column(String(20), nullable=False, default="manual")  # manual, stripe, paypal, bank_transfer
    stripe_account_id = Column(String(255), nullable=True)
    api_secret = Column(String(128), nullable=True)  # HMAC key for signed postbacks
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    products = relationship("Product", back_populates="partner")

    __table_args__ = (
        CheckConstraint("commission_rate >= 0", name="ck_partner_rate_non_negative"),
        CheckConstraint("cookie_window_days > 0", name="ck_partner_window_positive"),
    )


class Product(Base):
    """A product promoted through a partner's program"""
    __tablename__ = "affiliate_products"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    partner_id = Column(String(36), ForeignKey("affiliate_partners.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    product_url = Column(String(2000), nullable=True)
    price_cents = Column(Integer, nullable=True)
    commission_override = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active, inactive, out_of_stock
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    partner = relationship("Partner", back_populates="products")

    __table_args__ = (
        Index("ix_affiliate_products_partner_status", "partner_id", "status"),
    )
