"""
Complaint services: lifecycle state machine, identifiers, complaint store.
"""
from .complaint_service import ComplaintService, is_sandbox_complaint
from .identifiers import PUBLIC_ID_ALPHABET, PUBLIC_ID_REGEX, generate_public_id
from .state_machine import (
    STATUS_CONFIG,
    ComplaintStateMachine,
    allowed_transitions,
    parse_status,
    status_label,
)

__all__ = [
    "ComplaintService",
    "is_sandbox_complaint",
    "PUBLIC_ID_ALPHABET",
    "PUBLIC_ID_REGEX",
    "generate_public_id",
    "STATUS_CONFIG",
    "ComplaintStateMachine",
    "allowed_transitions",
    "parse_status",
    "status_label",
]
