"""Partner API audit log and IP blocklist"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from ..db import Base
from .partner import generate_uuid


class PartnerApiLog(Base):
    """One row per inbound partner API call (postbacks), successful or not"""
    __tablename__ = "partner_api_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    partner_id = Column(String(36), nullable=True)
    endpoint = Column(String(255), nullable=False)
    request_method = Column(String(10), nullable=False)
    request_payload = Column(Text, nullable=True)
    response_status = Column(Integer, nullable=False)
    response_body = Column(Text, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_partner_api_logs_partner_created", "partner_id", "created_at"),
    )


class BlockedIp(Base):
    __tablename__ = "affiliate_blocked_ips"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    ip_address = Column(String(64), nullable=False, unique=True)
    reason = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
