"""
NaiyakSetu - SQLAlchemy ORM Models
Accounts, one-time codes, complaints and their status history.
"""
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, JSON, ForeignKey,
    Boolean, UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils import utcnow


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, Enum):
    """Account roles."""
    CUSTOMER = "customer"
    ADMIN = "admin"
    STAFF = "staff"


class OtpPurpose(str, Enum):
    """What a one-time code was issued for."""
    VERIFICATION = "verification"
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"


class ComplaintStatus(str, Enum):
    """States in the complaint lifecycle state machine."""
    SUBMITTED = "submitted"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ReporterType(str, Enum):
    """How much of the reporter's identity is attached to a complaint."""
    ANONYMOUS = "anonymous"
    PSEUDONYMOUS = "pseudonymous"
    VERIFIED = "verified"


class ContactMethod(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    BOTH = "both"


def _enum_column(enum_cls, **kwargs) -> Column:
    """Store enum values (not member names) as plain strings."""
    return Column(
        SQLEnum(
            enum_cls,
            native_enum=False,
            length=32,
            values_callable=lambda members: [m.value for m in members],
        ),
        **kwargs,
    )


# =============================================================================
# CREDENTIAL STORE
# =============================================================================

class AccountDB(Base):
    """Citizen, staff or admin account. Soft lifecycle only (is_active)."""
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True)  # UUID
    phone = Column(String(20), unique=True, nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)  # Absent for phone-only accounts
    name = Column(String(100), nullable=True)
    role = _enum_column(Role, nullable=False, default=Role.CUSTOMER)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class OneTimeCodeDB(Base):
    """
    A one-time code issued to a phone.

    Only an HMAC of the code is stored. Used rows are kept for audit until
    the periodic sweep removes them.
    """
    __tablename__ = "one_time_codes"

    id = Column(String(36), primary_key=True)  # UUID
    phone = Column(String(20), nullable=False, index=True)
    code_hash = Column(String(64), nullable=False)
    purpose = _enum_column(OtpPurpose, nullable=False, default=OtpPurpose.VERIFICATION)
    expires_at = Column(DateTime, nullable=False, index=True)
    is_used = Column(Boolean, nullable=False, default=False)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)


# =============================================================================
# COMPLAINT STORE
# =============================================================================

class ComplaintDB(Base):
    """A citizen grievance. Never deleted; mutated only through the state machine."""
    __tablename__ = "complaints"

    id = Column(String(36), primary_key=True)  # UUID (internal key)
    public_id = Column(String(20), unique=True, nullable=False, index=True)  # Immutable public reference

    title = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)
    priority = _enum_column(Priority, nullable=False, default=Priority.MEDIUM)
    status = _enum_column(ComplaintStatus, nullable=False, default=ComplaintStatus.SUBMITTED, index=True)

    reporter_type = _enum_column(ReporterType, nullable=False, default=ReporterType.ANONYMOUS)
    contact_method = _enum_column(ContactMethod, nullable=False, default=ContactMethod.EMAIL)
    contact_phone = Column(String(20), nullable=True)

    # Not a foreign key: sandbox principals (demo-*) are recorded too
    submitter_id = Column(String(36), nullable=True, index=True)
    department = Column(String(100), nullable=True)

    # Location
    address = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    formatted_address = Column(String(500), nullable=True)

    # [{"filename", "original_name", "file_type", "file_size", "url"}]
    attachments = Column(JSON, nullable=True, default=list)
    # Only for reporter_type == verified; Aadhaar number stored masked
    identity_snapshot = Column(JSON, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)

    history = relationship(
        "StatusHistoryDB",
        back_populates="complaint",
        order_by="StatusHistoryDB.sequence",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}


class StatusHistoryDB(Base):
    """Append-only status audit entry."""
    __tablename__ = "complaint_status_history"
    __table_args__ = (
        UniqueConstraint("complaint_id", "sequence", name="uq_status_history_sequence"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    complaint_id = Column(String(36), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    status = _enum_column(ComplaintStatus, nullable=False)
    note = Column(Text, nullable=True)
    actor_id = Column(String(36), nullable=True)  # NULL for anonymous submissions
    actor_role = Column(String(20), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    complaint = relationship("ComplaintDB", back_populates="history")
