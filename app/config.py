from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql://postgres:postgres@db:5432/guestlist"
    redis_url: str = "redis://redis:6379/0"
    use_stub_broker: bool = False  # In-process Dramatiq broker for tests/dev

    log_level: str = "INFO"

    # Links handed out to recipients
    public_base_url: str = "http://localhost:8000"

    # Token settings
    token_hash_key: str = "dev-token-hash-key"  # Required in production
    share_token_ttl_days: int = 30
    rsvp_token_ttl_days: int = 90
    max_chain_depth: int = 5
    max_forwards_per_token: Optional[int] = None  # None = unlimited fan-out

    # One-time code settings
    otp_ttl_seconds: int = 600  # 10 minutes
    otp_max_attempts: int = 5
    otp_issue_cooldown_seconds: int = 30
    otp_issue_window_seconds: int = 600
    otp_issue_window_limit: int = 3  # Max codes per token per window
    otp_hash_rounds: int = 10  # bcrypt cost

    # Verified assertion settings
    assertion_secret: str = "dev-assertion-secret"  # Required in production
    assertion_window_seconds: int = 600

    # Staff endpoints (empty key disables them)
    staff_api_key: str = ""

    # Notification delivery
    notification_backend: str = "queue"  # 'queue' or 'log'
    mail_relay_url: str = ""
    mail_from: str = "invitations@example.com"
    mail_relay_timeout: int = 10

    # CSRF origin check
    trusted_origins: List[str] = []

    class Config:
        env_file = ".env"


settings = Settings()
