"""
Token Issuer/Validator

Session credentials come in exactly two shapes:

- SignedCredential: an HS256 JWT {sub, role, kind="signed", iat, exp}
  minted after a password or OTP login.
- SandboxCredential: "sandbox." + base64url(JSON) for the demo registry.
  Unsigned, so it is only honoured when sandbox auth is enabled, and the
  role always comes from the registry rather than from the bundle.

parse_credential() decides which shape a raw string is. Nothing is ever
decoded as the other format.
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from ...config import DEMO_ACCOUNT_PREFIX, DemoAccount, Settings, get_settings
from ...errors import (
    AccountNotFound,
    Forbidden,
    InvalidSignature,
    MalformedToken,
    TokenExpired,
    Unauthorized,
)
from ...models.db_models import AccountDB, Role

logger = logging.getLogger(__name__)

SANDBOX_PREFIX = "sandbox."
SIGNED_KIND = "signed"


# =============================================================================
# CREDENTIAL UNION
# =============================================================================

@dataclass(frozen=True)
class SandboxCredential:
    snapshot: Dict[str, Any]
    expires_at: int
    issued_at: int


@dataclass(frozen=True)
class SignedCredential:
    token: str


Credential = Union[SandboxCredential, SignedCredential]


@dataclass(frozen=True)
class Principal:
    """The caller, as seen by every downstream check."""
    id: str
    role: str
    is_verified: bool = False
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_sandbox: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN.value, Role.STAFF.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "isVerified": self.is_verified,
            "isSandbox": self.is_sandbox,
        }


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def parse_credential(raw: Optional[str]) -> Credential:
    """Classify a raw bearer value. Raises MalformedToken for anything else."""
    if not raw or not raw.strip():
        raise Unauthorized("Access token required")
    raw = raw.strip()

    if raw.startswith(SANDBOX_PREFIX):
        body = raw[len(SANDBOX_PREFIX):]
        try:
            data = json.loads(_b64url_decode(body).decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeDecodeError):
            raise MalformedToken()
        if not isinstance(data, dict) or data.get("demo") is not True:
            raise MalformedToken()
        user = data.get("user")
        exp = data.get("exp")
        iat = data.get("iat")
        if not isinstance(user, dict) or not isinstance(exp, int) or not isinstance(iat, int):
            raise MalformedToken()
        return SandboxCredential(snapshot=user, expires_at=exp, issued_at=iat)

    segments = raw.split(".")
    if len(segments) != 3 or not all(segments):
        raise MalformedToken()
    return SignedCredential(token=raw)


# =============================================================================
# TOKEN SERVICE
# =============================================================================

class TokenService:
    """Mints and validates session credentials."""

    def __init__(self, db_session: Session, settings: Optional[Settings] = None):
        self.db = db_session
        self.settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Issue
    # -------------------------------------------------------------------------

    def issue(self, account: AccountDB) -> str:
        """Signed token for a persisted account."""
        now = datetime.now(timezone.utc)
        claims = {
            "sub": account.id,
            "role": account.role.value if account.role else Role.CUSTOMER.value,
            "kind": SIGNED_KIND,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(days=self.settings.access_token_expire_days)).timestamp()),
        }
        return jwt.encode(claims, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm)

    def issue_sandbox(self, demo: DemoAccount) -> str:
        """Unsigned sandbox bundle for a demo registry entry."""
        if not self.settings.sandbox_enabled:
            raise Forbidden("Sandbox authentication is disabled")
        now = datetime.now(timezone.utc)
        bundle = {
            "demo": True,
            "user": {
                "id": demo.id,
                "name": demo.name,
                "email": demo.email,
                "role": demo.role,
            },
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(hours=self.settings.sandbox_token_expire_hours)).timestamp()),
        }
        encoded = _b64url_encode(json.dumps(bundle, separators=(",", ":")).encode("utf-8"))
        return SANDBOX_PREFIX + encoded

    # -------------------------------------------------------------------------
    # Validate
    # -------------------------------------------------------------------------

    def validate(self, raw: Optional[str]) -> Principal:
        credential = parse_credential(raw)
        if isinstance(credential, SandboxCredential):
            return self._validate_sandbox(credential)
        return self._validate_signed(credential)

    def _validate_sandbox(self, credential: SandboxCredential) -> Principal:
        if not self.settings.sandbox_enabled:
            logger.warning("Sandbox token presented while sandbox auth is disabled")
            raise InvalidSignature()

        now = int(datetime.now(timezone.utc).timestamp())
        if credential.expires_at <= now:
            raise TokenExpired()

        account_id = credential.snapshot.get("id")
        if not isinstance(account_id, str) or not account_id.startswith(DEMO_ACCOUNT_PREFIX):
            logger.warning("Sandbox token names a non-demo identity")
            raise InvalidSignature()

        demo = self.settings.find_demo_account(account_id)
        if demo is None:
            raise AccountNotFound()

        return Principal(
            id=demo.id,
            role=demo.role,
            is_verified=True,
            name=demo.name,
            email=demo.email,
            phone=demo.phone or None,
            is_sandbox=True,
        )

    def _validate_signed(self, credential: SignedCredential) -> Principal:
        try:
            jwt.get_unverified_header(credential.token)
        except JWTError:
            raise MalformedToken()

        try:
            claims = jwt.decode(
                credential.token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
            )
        except ExpiredSignatureError:
            raise TokenExpired()
        except JWTError:
            raise InvalidSignature()

        account_id = claims.get("sub")
        if not account_id or claims.get("kind") != SIGNED_KIND:
            raise MalformedToken()

        account = self.db.query(AccountDB).filter(AccountDB.id == account_id).first()
        if account is None or not account.is_active:
            raise AccountNotFound()

        return principal_for_account(account)


def principal_for_account(account: AccountDB) -> Principal:
    return Principal(
        id=account.id,
        role=account.role.value if account.role else Role.CUSTOMER.value,
        is_verified=bool(account.is_verified),
        name=account.name,
        email=account.email,
        phone=account.phone,
        is_sandbox=False,
    )
