"""
Postback Ingestion Gateway.

Affiliate networks notify us of sales either server-to-server (POST, JSON or
form body) or pixel-style (GET, query string). Every call is audited to
partner_api_logs, including rejected ones.

Unsigned postbacks are accepted only while POSTBACK_ALLOW_UNSIGNED is on.
A signature that is present and wrong is always a 401 and nothing is stored
besides the audit row.
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import parse_qsl

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import (
    AffiliateError,
    InvalidAmountError,
    InvalidSignatureError,
    RateLimitExceededError,
    UnknownPartnerError,
)
from ..middleware.metrics import postbacks_total
from ..models import Partner, PartnerApiLog
from ..security.signatures import verify_signature
from ..utils.log import log_affiliate_event
from ..utils.rate_limit import get_rate_limiter
from .attribution import ConversionSignal, attribute_conversion
from .commission import to_cents

logger = logging.getLogger(__name__)

# canonical field -> accepted aliases, first match wins
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "order_id": ("order_id", "orderId", "transaction_id"),
    "transaction_id": ("transaction_id", "transactionId", "txn_id"),
    "amount": ("amount", "sale_amount", "total"),
    "currency": ("currency", "currency_code"),
    "click_id": ("click_id", "clickId", "subid", "sub_id"),
    "sub_id": ("sub_id", "subId", "subid"),
    "partner_id": ("partner_id", "partnerId"),
    "product_id": ("product_id", "productId"),
    "conversion_type": ("conversion_type", "conversionType", "type"),
}

# base64 "R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7"
TRACKING_PIXEL = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff"
    b"!\xf9\x04\x01\x00\x00\x00\x00,\x00\x00\x00\x00\x01\x00\x01\x00"
    b"\x00\x02\x01D\x00;"
)


@dataclass
class PostbackRequest:
    method: str  # GET or POST
    endpoint: str
    raw_payload: bytes  # body for POST, query string for GET
    payload: Dict[str, Any]
    partner_id: Optional[str] = None  # from header or query string
    signature: Optional[str] = None


@dataclass
class PostbackOutcome:
    status_code: int
    body: Dict[str, Any]
    conversion_id: Optional[str] = None
    created: bool = False

    @property
    def ok(self) -> bool:
        return self.status_code == 200


def get_field_aliases() -> Dict[str, Tuple[str, ...]]:
    """
    Alias table including POSTBACK_EXTRA_ALIASES, a JSON object mapping a
    canonical field to a list of extra names, e.g. {"order_id": ["oid"]}.
    """
    if not settings.postback_extra_aliases:
        return FIELD_ALIASES
    try:
        extra = json.loads(settings.postback_extra_aliases)
    except ValueError:
        logger.error("POSTBACK_EXTRA_ALIASES is not valid JSON; ignoring")
        return FIELD_ALIASES
    merged = dict(FIELD_ALIASES)
    for field_name, names in extra.items():
        if isinstance(names, str):
            names = [names]
        merged[field_name] = tuple(merged.get(field_name, ())) + tuple(n for n in names if n)
    return merged


def parse_body(raw: bytes) -> Dict[str, Any]:
    """JSON object first, then application/x-www-form-urlencoded."""
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return {}
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass
    return dict(parse_qsl(text, keep_blank_values=True))


def _pick(payload: Mapping[str, Any], aliases: Tuple[str, ...]) -> Optional[str]:
    for name in aliases:
        value = payload.get(name)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return None


def normalize_payload(payload: Mapping[str, Any]) -> Dict[str, Optional[str]]:
    """Map network-specific field names onto canonical ones."""
    aliases = get_field_aliases()
    return {field_name: _pick(payload, names) for field_name, names in aliases.items()}


def parse_amount(value: Optional[str]) -> int:
    """Amount in major units -> positive cents. Missing, non-numeric and <= 0 are rejected."""
    if value is None:
        raise InvalidAmountError("amount is required")
    cents = to_cents(value)
    if cents <= 0:
        raise InvalidAmountError(f"Invalid amount: {value}")
    return cents


def authenticate_partner(
    db: Session,
    partner_id: Optional[str],
    raw_payload: bytes,
    signature: Optional[str],
) -> Optional[Partner]:
    """
    Resolve and authenticate the calling partner.

    Returns None only for an anonymous call while unsigned postbacks are allowed.
    """
    if not partner_id:
        if settings.postback_allow_unsigned:
            return None
        raise UnknownPartnerError("Partner identification required")

    partner = db.query(Partner).filter(Partner.id == partner_id).first()
    if not partner or partner.status == "terminated":
        raise UnknownPartnerError("Invalid partner")

    if partner.api_secret and signature:
        if not verify_signature(partner.api_secret, raw_payload, signature):
            raise InvalidSignatureError("Invalid signature")
        return partner

    if not settings.postback_allow_unsigned:
        if not partner.api_secret:
            raise InvalidSignatureError("Partner has no API secret configured")
        raise InvalidSignatureError("Signature required")
    return partner


def _write_audit_log(
    db: Session,
    request: PostbackRequest,
    partner_id: Optional[str],
    outcome: PostbackOutcome,
    elapsed_ms: int,
) -> None:
    cap = settings.api_log_max_chars
    try:
        db.add(PartnerApiLog(
            partner_id=partner_id,
            endpoint=request.endpoint,
            request_method=request.method,
            request_payload=request.raw_payload.decode("utf-8", errors="replace")[:cap],
            response_status=outcome.status_code,
            response_body=json.dumps(outcome.body)[:cap],
            response_time_ms=elapsed_ms,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to write partner API log: {e}")


def _error(status_code: int, code: str, message: str, conversion_id: Optional[str] = None) -> PostbackOutcome:
    body = {"status": "error", "error": code, "message": message}
    if conversion_id:
        body["conversionId"] = conversion_id
    return PostbackOutcome(status_code=status_code, body=body, conversion_id=conversion_id)


def process_postback(db: Session, request: PostbackRequest) -> PostbackOutcome:
    """
    Authenticate, normalize, validate and attribute one postback.

    Never raises for expected failures; the outcome carries the HTTP status
    and body. Duplicates return the same success body as the first call.
    """
    started = time.monotonic()
    fields = normalize_payload(request.payload)
    claimed_partner_id = request.partner_id or fields.get("partner_id")
    partner: Optional[Partner] = None

    try:
        partner = authenticate_partner(db, claimed_partner_id, request.raw_payload, request.signature)

        if partner is not None:
            allowed, _ = get_rate_limiter().check_partner_limit(partner.id)
            if not allowed:
                raise RateLimitExceededError("Postback rate limit exceeded")

        if not fields.get("order_id"):
            outcome = _error(400, "order_id_required", "Missing order_id")
        else:
            signal = ConversionSignal(
                order_id=fields["order_id"],
                amount_cents=parse_amount(fields.get("amount")),
                currency=fields.get("currency") or "USD",
                click_id=fields.get("click_id"),
                sub_id=fields.get("sub_id"),
                partner_id=partner.id if partner else None,
                product_id=fields.get("product_id"),
                transaction_id=fields.get("transaction_id"),
                conversion_type=fields.get("conversion_type") or "sale",
                validation_method="postback",
                metadata={"source": "postback", "method": request.method},
            )
            result = attribute_conversion(db, signal)
            conversion = result.conversion
            outcome = PostbackOutcome(
                status_code=200,
                body={"status": "success", "conversionId": conversion.id},
                conversion_id=conversion.id,
                created=result.created,
            )
            log_partner_id = conversion.partner_id
    except AffiliateError as e:
        db.rollback()
        status_code = e.status_code if e.status_code in (401, 429) else 400
        outcome = _error(status_code, e.code, e.message)

    if not outcome.ok:
        log_partner_id = partner.id if partner else None

    elapsed_ms = int((time.monotonic() - started) * 1000)
    _write_audit_log(db, request, log_partner_id, outcome, elapsed_ms)

    postbacks_total.labels(
        method=request.method,
        outcome="success" if outcome.ok else outcome.body.get("error", "error"),
    ).inc()
    log_affiliate_event(
        logger, "postback", ok=outcome.ok, partner_id=log_partner_id, ref=outcome.conversion_id,
        extra={"status": outcome.status_code, "created": outcome.created, "ms": elapsed_ms},
    )
    return outcome
