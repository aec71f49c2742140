"""NaiyakSetu - Data Models"""
from .db_models import (
    # Enums
    Role, OtpPurpose, ComplaintStatus, Priority, ReporterType, ContactMethod,
    # Credential store
    AccountDB, OneTimeCodeDB,
    # Complaint store
    ComplaintDB, StatusHistoryDB,
)

__all__ = [
    "Role", "OtpPurpose", "ComplaintStatus", "Priority", "ReporterType", "ContactMethod",
    "AccountDB", "OneTimeCodeDB",
    "ComplaintDB", "StatusHistoryDB",
]
