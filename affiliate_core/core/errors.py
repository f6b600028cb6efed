"""
Domain exceptions for the affiliate pipeline.

Services raise these; the HTTP layer maps them to responses through
`exception_handlers.affiliate_error_handler` using `status_code` and `code`.
"""
from typing import Optional


class AffiliateError(Exception):
    status_code = 400
    code = "affiliate_error"

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code


class ValidationError(AffiliateError):
    code = "validation_error"


class InvalidAmountError(ValidationError):
    code = "invalid_amount"


class LinkDestinationError(ValidationError):
    code = "invalid_destination"


class UnattributableConversionError(AffiliateError):
    code = "unattributable_conversion"


class AuthenticationError(AffiliateError):
    status_code = 401
    code = "unauthorized"


class InvalidSignatureError(AuthenticationError):
    code = "invalid_signature"


class UnknownPartnerError(AuthenticationError):
    code = "unknown_partner"


class NotFoundError(AffiliateError):
    status_code = 404
    code = "not_found"


class LinkExpiredError(NotFoundError):
    code = "link_expired"


class ConflictError(AffiliateError):
    code = "conflict"


class NoEligibleConversionsError(ConflictError):
    code = "no_eligible_conversions"


class ShortCodeExhaustedError(AffiliateError):
    status_code = 503
    code = "short_code_exhausted"


class RateLimitExceededError(AffiliateError):
    status_code = 429
    code = "rate_limited"


class PayoutProcessingError(AffiliateError):
    status_code = 502
    code = "payout_failed"
