from pydantic_settings import BaseSettings
from typing import Optional
import os

class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./affiliate.db"

    # Redis (optional, used by the postback rate limiter)
    redis_url: Optional[str] = os.getenv("REDIS_URL") or None

    # Logging
    log_level: str = "INFO"
    sentry_dsn: str = os.getenv("SENTRY_DSN", "")

    # CORS
    cors_allow_origins: str = os.getenv("ALLOWED_ORIGINS", "*")

    # Public base URL used for short links (/go/{code})
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://127.0.0.1:8001")

    # JWT (tokens are issued by the auth provider, verified here)
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret")
    jwt_alg: str = os.getenv("JWT_ALG", "HS256")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

    # Links
    short_code_length: int = 8
    short_code_max_attempts: int = 10
    default_utm_source: str = os.getenv("DEFAULT_UTM_SOURCE", "affiliate")
    default_utm_medium: str = os.getenv("DEFAULT_UTM_MEDIUM", "referral")

    # Attribution
    default_attribution_window_days: int = int(os.getenv("DEFAULT_ATTRIBUTION_WINDOW_DAYS", "30"))
    session_cookie_days: int = 30

    # Postbacks
    postback_allow_unsigned: bool = os.getenv("POSTBACK_ALLOW_UNSIGNED", "true").lower() == "true"
    postback_rate_limit_per_minute: int = int(os.getenv("POSTBACK_RATE_LIMIT_PER_MINUTE", "120"))
    postback_extra_aliases: str = os.getenv("POSTBACK_EXTRA_ALIASES", "")
    api_log_max_chars: int = 5000
    # Largest accepted amount, in cents (fits a 32-bit integer column)
    max_amount_cents: int = int(os.getenv("MAX_AMOUNT_CENTS", "2147483647"))

    # Anti-Fraud
    max_clicks_per_ip_per_hour: int = int(os.getenv("MAX_CLICKS_PER_IP_PER_HOUR", "10"))
    max_clicks_per_link_per_hour: int = int(os.getenv("MAX_CLICKS_PER_LINK_PER_HOUR", "100"))
    click_block_score_threshold: int = int(os.getenv("CLICK_BLOCK_SCORE_THRESHOLD", "50"))
    suspicious_conversion_gap_days: int = int(os.getenv("SUSPICIOUS_CONVERSION_GAP_DAYS", "30"))
    high_value_commission_cents: int = int(os.getenv("HIGH_VALUE_COMMISSION_CENTS", "100000"))
    max_rejection_rate: float = float(os.getenv("MAX_REJECTION_RATE", "0.2"))

    # Link health checks
    link_health_batch_size: int = int(os.getenv("LINK_HEALTH_BATCH_SIZE", "50"))
    link_health_timeout_seconds: float = float(os.getenv("LINK_HEALTH_TIMEOUT_SECONDS", "5.0"))

    # Stripe Connect payouts (mock mode unless both are set)
    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    enable_stripe_payouts: bool = os.getenv("ENABLE_STRIPE_PAYOUTS", "false").lower() == "true"

    # Payout Policy
    default_payout_threshold_cents: int = int(os.getenv("DEFAULT_PAYOUT_THRESHOLD_CENTS", "5000"))

    class Config:
        env_file = ".env"
        case_sensitive = False

# Global settings instance
settings = Settings()
