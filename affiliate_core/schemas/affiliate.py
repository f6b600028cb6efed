"""Response shaping for affiliate entities. Money goes out in cents."""
from typing import Any, Dict, Optional

from ..models import Campaign, Click, Conversion, Link, Partner, Payout, Product


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def partner_to_dict(partner: Partner, include_secret: bool = False) -> Dict[str, Any]:
    data = {
        "id": partner.id,
        "company_name": partner.company_name,
        "slug": partner.slug,
        "contact_email": partner.contact_email,
        "website_url": partner.website_url,
        "commission_rate": partner.commission_rate,
        "commission_type": partner.commission_type,
        "cookie_window_days": partner.cookie_window_days,
        "status": partner.status,
        "payout_threshold_cents": partner.payout_threshold_cents,
        "payout_method": partner.payout_method,
        "stripe_account_id": partner.stripe_account_id,
        "has_api_secret": bool(partner.api_secret),
        "created_at": _iso(partner.created_at),
    }
    if include_secret:
        data["api_secret"] = partner.api_secret
    return data


def product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "partner_id": product.partner_id,
        "name": product.name,
        "slug": product.slug,
        "category": product.category,
        "product_url": product.product_url,
        "price_cents": product.price_cents,
        "commission_override": product.commission_override,
        "status": product.status,
        "created_at": _iso(product.created_at),
    }


def campaign_to_dict(campaign: Campaign) -> Dict[str, Any]:
    return {
        "id": campaign.id,
        "name": campaign.name,
        "description": campaign.description,
        "partner_id": campaign.partner_id,
        "product_id": campaign.product_id,
        "start_date": _iso(campaign.start_date),
        "end_date": _iso(campaign.end_date),
        "status": campaign.status,
        "bonus_commission_rate": campaign.bonus_commission_rate,
        "discount_code": campaign.discount_code,
        "utm_source": campaign.utm_source,
        "utm_medium": campaign.utm_medium,
        "utm_campaign": campaign.utm_campaign,
        "created_at": _iso(campaign.created_at),
    }


def link_to_dict(link: Link, short_url: Optional[str] = None) -> Dict[str, Any]:
    from ..services.link_registry import build_short_url

    return {
        "id": link.id,
        "short_code": link.short_code,
        "short_url": short_url or build_short_url(link.short_code),
        "partner_id": link.partner_id,
        "product_id": link.product_id,
        "campaign_id": link.campaign_id,
        "name": link.name,
        "destination_url": link.destination_url,
        "tracking_url": link.tracking_url,
        "status": link.status,
        "expires_at": _iso(link.expires_at),
        "total_conversions": link.total_conversions,
        "created_at": _iso(link.created_at),
    }


def click_to_dict(click: Click) -> Dict[str, Any]:
    return {
        "id": click.id,
        "link_id": click.link_id,
        "partner_id": click.partner_id,
        "product_id": click.product_id,
        "clicked_at": _iso(click.clicked_at),
        "ip_address": click.ip_address,
        "country_code": click.country_code,
        "device_type": click.device_type,
        "browser": click.browser,
        "os": click.os,
        "is_bot": click.is_bot,
        "bot_type": click.bot_type,
        "fraud_score": click.fraud_score,
    }


def conversion_to_dict(conversion: Conversion) -> Dict[str, Any]:
    return {
        "id": conversion.id,
        "partner_id": conversion.partner_id,
        "product_id": conversion.product_id,
        "link_id": conversion.link_id,
        "click_id": conversion.click_id,
        "campaign_id": conversion.campaign_id,
        "order_id": conversion.order_id,
        "transaction_id": conversion.transaction_id,
        "conversion_type": conversion.conversion_type,
        "sale_amount_cents": conversion.sale_amount_cents,
        "commission_cents": conversion.commission_cents,
        "currency": conversion.currency,
        "conversion_status": conversion.conversion_status,
        "payout_status": conversion.payout_status,
        "payout_id": conversion.payout_id,
        "validation_method": conversion.validation_method,
        "fraud_score": conversion.fraud_score,
        "notes": conversion.notes,
        "converted_at": _iso(conversion.converted_at),
        "approved_at": _iso(conversion.approved_at),
    }


def payout_to_dict(payout: Payout) -> Dict[str, Any]:
    return {
        "id": payout.id,
        "partner_id": payout.partner_id,
        "total_commission_cents": payout.total_commission_cents,
        "total_conversions": payout.total_conversions,
        "currency": payout.currency,
        "period_start": _iso(payout.period_start),
        "period_end": _iso(payout.period_end),
        "status": payout.status,
        "payout_method": payout.payout_method,
        "transaction_reference": payout.transaction_reference,
        "payout_date": _iso(payout.payout_date),
        "failure_reason": payout.failure_reason,
        "notes": payout.notes,
        "created_at": _iso(payout.created_at),
    }
