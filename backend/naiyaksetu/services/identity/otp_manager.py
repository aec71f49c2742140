"""
OTP Lifecycle Manager

Issues, verifies and sweeps single-use numeric codes bound to a phone number.

Lifecycle of a code row:
    issued (attempts=0) -> [wrong guess]* -> used | exhausted | expired

Rules:
- Only the newest unused row for a phone can be verified.
- Issuing a new code removes the phone's unused and expired rows.
- The plain code is never stored; rows hold an HMAC of phone and code.
- Attempt counting is race-safe: increments and consumption are conditional
  UPDATEs on a row locked for the duration of the check.
"""
import asyncio
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...config import Settings, get_settings
from ...errors import (
    AccountNotFound, AttemptsExhausted, DeliveryFailed, Expired, InvalidCode, NotFound,
)
from ...models.db_models import AccountDB, OneTimeCodeDB, OtpPurpose
from ...utils import utcnow
from ...validation import normalize_phone, validate_otp_format
from .account_service import AccountService
from .sms_gateway import SmsGateway, get_sms_gateway

logger = logging.getLogger(__name__)


@dataclass
class OtpIssue:
    """What the caller learns about an issued code: only its lifetime."""
    expires_in: int


def generate_code(length: int) -> str:
    """Uniformly random numeric code from the OS CSPRNG."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_code(secret: str, phone: str, code: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        f"{phone}:{code}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class OtpManager:
    """Owns the one_time_codes table."""

    def __init__(
        self,
        db_session: Session,
        gateway: Optional[SmsGateway] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db_session
        self.settings = settings or get_settings()
        self._gateway = gateway
        self.accounts = AccountService(db_session)

    @property
    def gateway(self) -> SmsGateway:
        if self._gateway is None:
            self._gateway = get_sms_gateway()
        return self._gateway

    # =========================================================================
    # ISSUE
    # =========================================================================

    def request_code(self, phone: str, purpose: OtpPurpose = OtpPurpose.VERIFICATION) -> OtpIssue:
        """
        Issue a fresh code for a phone and hand it to the SMS gateway.

        The whole issuance is one transaction: if delivery fails nothing
        is persisted and DeliveryFailed is raised.
        """
        phone = normalize_phone(phone)
        now = utcnow()

        try:
            # Locking the account row serialises issuance per phone
            self.accounts.ensure_phone_account(phone, lock=True)

            self.db.query(OneTimeCodeDB).filter(
                OneTimeCodeDB.phone == phone,
                or_(OneTimeCodeDB.is_used.is_(False), OneTimeCodeDB.expires_at < now),
            ).delete(synchronize_session=False)

            code = generate_code(self.settings.otp_length)
            row = OneTimeCodeDB(
                id=str(uuid4()),
                phone=phone,
                code_hash=hash_code(self.settings.otp_secret, phone, code),
                purpose=purpose,
                expires_at=now + timedelta(minutes=self.settings.otp_expiry_minutes),
                is_used=False,
                attempts=0,
                created_at=now,
            )
            self.db.add(row)
            self.db.flush()

            message = (
                f"Your NaiyakSetu verification code is {code}. "
                f"Valid for {self.settings.otp_expiry_minutes} minutes. Do not share it."
            )
            self.gateway.send(phone, message)
            self.db.commit()
        except DeliveryFailed:
            self.db.rollback()
            logger.warning(f"OTP delivery failed for phone ending {phone[-4:]}")
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"OTP issued for phone ending {phone[-4:]} ({purpose.value})")
        return OtpIssue(expires_in=self.settings.otp_expiry_seconds)

    # =========================================================================
    # VERIFY
    # =========================================================================

    def verify_code(self, phone: str, code: str) -> AccountDB:
        """
        Check a code against the newest unused row for the phone.

        Raises:
            NotFound: no live code (or another request consumed it first)
            Expired: code past its window; the row is removed
            AttemptsExhausted: too many wrong guesses; the row is removed
            InvalidCode: mismatch; carries the remaining attempts
            AccountNotFound: the phone's account has been deactivated
        """
        phone = normalize_phone(phone)
        code = validate_otp_format(code, self.settings.otp_length)
        max_attempts = self.settings.otp_max_attempts
        now = utcnow()

        row = (
            self.db.query(OneTimeCodeDB)
            .filter(OneTimeCodeDB.phone == phone, OneTimeCodeDB.is_used.is_(False))
            .order_by(OneTimeCodeDB.created_at.desc())
            .with_for_update()
            .first()
        )
        if row is None:
            self.db.rollback()
            raise NotFound("OTP not found or already used")

        if row.expires_at < now:
            self.db.delete(row)
            self.db.commit()
            raise Expired()

        if row.attempts >= max_attempts:
            self.db.delete(row)
            self.db.commit()
            raise AttemptsExhausted()

        row_id = row.id
        attempts_before = row.attempts

        expected = hash_code(self.settings.otp_secret, phone, code)
        if not hmac.compare_digest(expected, row.code_hash):
            updated = self.db.query(OneTimeCodeDB).filter(
                OneTimeCodeDB.id == row_id,
                OneTimeCodeDB.attempts < max_attempts,
                OneTimeCodeDB.is_used.is_(False),
            ).update(
                {OneTimeCodeDB.attempts: OneTimeCodeDB.attempts + 1},
                synchronize_session=False,
            )
            if updated == 0:
                self.db.commit()
                raise AttemptsExhausted()
            # Read back inside the transaction so concurrent guesses are counted
            attempts_now = self.db.query(OneTimeCodeDB.attempts).filter(
                OneTimeCodeDB.id == row_id
            ).scalar()
            self.db.commit()
            if attempts_now is None:
                attempts_now = attempts_before + 1
            remaining = max(max_attempts - attempts_now, 0)
            logger.info(f"Wrong OTP for phone ending {phone[-4:]}, {remaining} remaining")
            raise InvalidCode(remaining)

        account = self.accounts.ensure_phone_account(phone, lock=True)
        if not account.is_active:
            self.db.rollback()
            logger.warning(f"OTP presented for deactivated account, phone ending {phone[-4:]}")
            raise AccountNotFound()

        consumed = self.db.query(OneTimeCodeDB).filter(
            OneTimeCodeDB.id == row_id,
            OneTimeCodeDB.is_used.is_(False),
            OneTimeCodeDB.attempts < max_attempts,
        ).update({OneTimeCodeDB.is_used: True}, synchronize_session=False)
        if consumed == 0:
            self.db.rollback()
            raise NotFound("OTP not found or already used")

        # Anything else still outstanding for this phone dies with the login
        self.db.query(OneTimeCodeDB).filter(
            OneTimeCodeDB.phone == phone,
            OneTimeCodeDB.id != row_id,
            OneTimeCodeDB.is_used.is_(False),
        ).delete(synchronize_session=False)

        self.accounts.mark_verified(account)
        self.db.commit()
        self.db.refresh(account)

        logger.info(f"OTP verified for phone ending {phone[-4:]}")
        return account

    # =========================================================================
    # SWEEP
    # =========================================================================

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Delete expired and used rows. Idempotent; returns the number removed."""
        now = now or utcnow()
        deleted = self.db.query(OneTimeCodeDB).filter(
            or_(OneTimeCodeDB.expires_at < now, OneTimeCodeDB.is_used.is_(True))
        ).delete(synchronize_session=False)
        self.db.commit()
        if deleted:
            logger.info(f"OTP sweep removed {deleted} rows")
        return deleted


# =============================================================================
# BACKGROUND SWEEP
# =============================================================================

class OtpSweepScheduler:
    """
    In-process periodic sweep.

    Runs as an asyncio task next to the API; each sweep happens in a worker
    thread with its own session. Deployments that prefer cron call
    POST /internal/otp-sweep instead and leave this disabled.
    """

    def __init__(self, session_factory, interval_seconds: int):
        self._session_factory = session_factory
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.last_run: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def run_once(self) -> int:
        db = self._session_factory()
        try:
            deleted = OtpManager(db).sweep()
        finally:
            db.close()
        self.last_run = utcnow()
        return deleted

    async def _loop(self) -> None:
        self._running = True
        logger.info(f"OTP sweep scheduler started (every {self._interval}s)")
        try:
            while self._running:
                await asyncio.sleep(self._interval)
                try:
                    await asyncio.to_thread(self.run_once)
                except Exception as e:
                    logger.error(f"OTP sweep failed: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("OTP sweep scheduler cancelled")
        finally:
            self._running = False

    def start(self) -> None:
        if self._task is None and self._interval > 0:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
