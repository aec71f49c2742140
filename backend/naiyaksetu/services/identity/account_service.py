"""
Account Service

Credential store operations: registration, password login, phone
placeholders created by the OTP flow, profile updates and soft deactivation.

Invariants:
- phone, if present, is globally unique
- email, if present, is globally unique
- at least one of phone/email is present
- accounts are never hard-deleted (is_active = False instead)
"""
import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import Conflict, InvalidCredential, NotFound, ValidationError
from ...models.db_models import AccountDB, Role
from ...utils import isoformat, utcnow
from ...validation import normalize_phone, validate_password, require_text
from .passwords import hash_password, verify_password

logger = logging.getLogger(__name__)


class AccountService:
    """Reads and mutates AccountDB rows. Callers own the transaction unless noted."""

    def __init__(self, db_session: Session):
        self.db = db_session

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get(self, account_id: str) -> Optional[AccountDB]:
        return self.db.query(AccountDB).filter(AccountDB.id == account_id).first()

    def find_by_phone(self, phone: str, lock: bool = False) -> Optional[AccountDB]:
        query = self.db.query(AccountDB).filter(AccountDB.phone == phone)
        if lock:
            query = query.with_for_update()
        return query.first()

    def find_by_email(self, email: str) -> Optional[AccountDB]:
        return self.db.query(AccountDB).filter(AccountDB.email == email.strip().lower()).first()

    # =========================================================================
    # PHONE (OTP) ACCOUNTS
    # =========================================================================

    def ensure_phone_account(self, phone: str, lock: bool = False) -> AccountDB:
        """
        Return the account for a canonical phone, creating a placeholder if none exists.

        With ``lock`` an existing row is held FOR UPDATE until the caller's
        transaction ends. Does not commit.
        """
        account = self.find_by_phone(phone, lock=lock)
        if account:
            account.updated_at = utcnow()
            return account

        account = AccountDB(
            id=str(uuid4()),
            phone=phone,
            role=Role.CUSTOMER,
            is_verified=False,
            is_active=True,
        )
        self.db.add(account)
        self.db.flush()
        logger.info(f"Placeholder account created for phone ending {phone[-4:]}")
        return account

    def mark_verified(self, account: AccountDB) -> AccountDB:
        """Flip the verification flag and stamp the login. Does not commit."""
        account.is_verified = True
        account.last_login_at = utcnow()
        account.updated_at = utcnow()
        return account

    # =========================================================================
    # EMAIL / PASSWORD
    # =========================================================================

    def register(
        self,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
    ) -> AccountDB:
        """
        Register an email/password account.

        Raises Conflict if the email or phone is already taken.
        """
        name = require_text(name, "Name")
        email = require_text(email, "Email").lower()
        validate_password(password)
        phone = normalize_phone(phone) if phone else None

        clauses = [AccountDB.email == email]
        if phone:
            clauses.append(AccountDB.phone == phone)
        existing = self.db.query(AccountDB).filter(or_(*clauses)).first()
        if existing:
            raise Conflict("User with this email or phone already exists")

        account = AccountDB(
            id=str(uuid4()),
            name=name,
            email=email,
            phone=phone,
            password_hash=hash_password(password),
            role=Role.CUSTOMER,
            is_verified=True,
            is_active=True,
            last_login_at=utcnow(),
        )
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration
            self.db.rollback()
            raise Conflict("User with this email or phone already exists")

        logger.info(f"User registered: {email}")
        return account

    def authenticate(self, email: str, password: str) -> AccountDB:
        """Check an email/password pair and stamp the login."""
        account = self.find_by_email(email or "")

        if not account or not account.is_active or not verify_password(password or "", account.password_hash):
            raise InvalidCredential("Invalid email or password")

        if not account.is_verified:
            raise InvalidCredential("Email not confirmed. Please verify your account.")

        account.last_login_at = utcnow()
        self.db.commit()

        logger.info(f"User logged in: {account.email}")
        return account

    # =========================================================================
    # PROFILE / LIFECYCLE
    # =========================================================================

    def update_profile(
        self,
        account: AccountDB,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> AccountDB:
        """Update any provided field, keeping phone and email unique."""
        if name is None and email is None and phone is None:
            raise ValidationError("No fields to update")

        if name is not None:
            account.name = require_text(name, "Name")

        if email is not None:
            email = require_text(email, "Email").lower()
            if email != account.email:
                other = self.find_by_email(email)
                if other and other.id != account.id:
                    raise Conflict("email already exists")
                account.email = email

        if phone is not None:
            phone = normalize_phone(phone)
            if phone != account.phone:
                other = self.find_by_phone(phone)
                if other and other.id != account.id:
                    raise Conflict("phone already exists")
                account.phone = phone

        account.updated_at = utcnow()
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("User with this email or phone already exists")

        self.db.refresh(account)
        logger.info(f"Profile updated for account: {account.id}")
        return account

    def deactivate(self, account_id: str) -> AccountDB:
        """Soft-delete an account. Its outstanding tokens stop validating immediately."""
        account = self.get(account_id)
        if not account:
            raise NotFound("Account not found")
        account.is_active = False
        account.updated_at = utcnow()
        self.db.commit()
        logger.info(f"Account deactivated: {account_id}")
        return account


def serialize_account(account: AccountDB) -> dict:
    """Public account shape returned by the auth endpoints."""
    return {
        "id": account.id,
        "name": account.name,
        "email": account.email,
        "phone": account.phone,
        "role": account.role.value if account.role else Role.CUSTOMER.value,
        "isVerified": bool(account.is_verified),
        "memberSince": isoformat(account.created_at),
        "lastLogin": isoformat(account.last_login_at),
    }
