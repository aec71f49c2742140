"""
NaiyakSetu - Runtime Configuration
Environment-driven settings shared by the API, services and scripts.
"""
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# SANDBOX (DEMO) ACCOUNTS
# =============================================================================

@dataclass(frozen=True)
class DemoAccount:
    """Pre-seeded demonstration account. Never persisted, never a real identity."""
    id: str
    email: str
    password: str
    name: str
    role: str
    phone: str = ""


DEMO_ACCOUNT_PREFIX = "demo-"

DEMO_ACCOUNTS: Tuple[DemoAccount, ...] = (
    DemoAccount(
        id="demo-admin",
        email="naiyaksetu@gmail.com",
        password="123456",
        name="Administrator",
        role="admin",
    ),
    DemoAccount(
        id="demo-customer",
        email="customer@email.com",
        password="123456",
        name="Customer User",
        role="customer",
    ),
)


# =============================================================================
# SETTINGS
# =============================================================================

@dataclass(frozen=True)
class Settings:
    """Application settings. Build with ``Settings.from_env()``."""
    env: str = "development"
    database_url: str = "sqlite:///./naiyaksetu.db"
    log_level: str = "INFO"

    # Signed session tokens
    jwt_secret_key: str = "naiyaksetu-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_days: int = 30

    # Sandbox session bundles
    sandbox_auth_enabled: bool = True
    sandbox_token_expire_hours: int = 24
    demo_accounts: Tuple[DemoAccount, ...] = DEMO_ACCOUNTS

    # One-time codes
    otp_length: int = 6
    otp_expiry_minutes: int = 5
    otp_max_attempts: int = 3
    otp_secret: str = "naiyaksetu-otp-secret-change-in-production"
    otp_sweep_interval_seconds: int = 300

    # SMS delivery
    sms_gateway_url: Optional[str] = None
    sms_gateway_api_key: str = ""
    sms_gateway_timeout_seconds: float = 5.0

    # Internal maintenance endpoints
    internal_api_key: str = "naiyaksetu-internal-key-change-in-production"

    # Seed admin
    default_admin_email: str = "admin@naiyaksetu.gov.in"
    default_admin_password: str = field(default="", repr=False)

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def sandbox_enabled(self) -> bool:
        """Sandbox bundles are only ever honoured outside production."""
        return self.sandbox_auth_enabled and not self.is_production

    @property
    def otp_expiry_seconds(self) -> int:
        return self.otp_expiry_minutes * 60

    def find_demo_account(self, account_id: str) -> Optional[DemoAccount]:
        if not account_id or not account_id.startswith(DEMO_ACCOUNT_PREFIX):
            return None
        for demo in self.demo_accounts:
            if demo.id == account_id:
                return demo
        return None

    def find_demo_account_by_email(self, email: str) -> Optional[DemoAccount]:
        email = (email or "").strip().lower()
        for demo in self.demo_accounts:
            if demo.email == email:
                return demo
        return None

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.getenv("APP_ENV", "development").strip().lower()
        return cls(
            env=env,
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            jwt_secret_key=os.getenv("JWT_SECRET_KEY", cls.jwt_secret_key),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", cls.jwt_algorithm),
            access_token_expire_days=int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", 30)),
            sandbox_auth_enabled=_env_bool("SANDBOX_AUTH_ENABLED", env != "production"),
            sandbox_token_expire_hours=int(os.getenv("SANDBOX_TOKEN_EXPIRE_HOURS", 24)),
            otp_length=int(os.getenv("OTP_LENGTH", 6)),
            otp_expiry_minutes=int(os.getenv("OTP_EXPIRY_MINUTES", 5)),
            otp_max_attempts=int(os.getenv("OTP_MAX_ATTEMPTS", 3)),
            otp_secret=os.getenv("OTP_SECRET", cls.otp_secret),
            otp_sweep_interval_seconds=int(os.getenv("OTP_SWEEP_INTERVAL_SECONDS", 300)),
            sms_gateway_url=os.getenv("SMS_GATEWAY_URL") or None,
            sms_gateway_api_key=os.getenv("SMS_GATEWAY_API_KEY", ""),
            sms_gateway_timeout_seconds=float(os.getenv("SMS_GATEWAY_TIMEOUT_SECONDS", 5)),
            internal_api_key=os.getenv("INTERNAL_API_KEY", cls.internal_api_key),
            default_admin_email=os.getenv("DEFAULT_ADMIN_EMAIL", cls.default_admin_email),
            default_admin_password=os.getenv("DEFAULT_ADMIN_PASSWORD", ""),
        )


# Module-level singleton
settings = Settings.from_env()


def get_settings() -> Settings:
    """FastAPI dependency for the active settings (overridable in tests)."""
    return settings
