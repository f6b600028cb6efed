"""
Models package - organized by domain
"""
from .partner import Partner, Product, generate_uuid
from .campaign import Campaign
from .link import Link, Click
from .conversion import Conversion, Payout
from .audit import PartnerApiLog, BlockedIp

__all__ = [
    "Partner",
    "Product",
    "Campaign",
    "Link",
    "Click",
    "Conversion",
    "Payout",
    "PartnerApiLog",
    "BlockedIp",
    "generate_uuid",
]
