"""
Complaint Service

Creates complaints, moves them through the lifecycle state machine and
serves the read projections (public tracking, owner/staff detail, lists
and statistics).

All writes are single transactions. Concurrent status changes on the same
complaint are detected by the version column; the loser gets Conflict and
nothing is retried.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...config import DEMO_ACCOUNT_PREFIX
from ...errors import Conflict, Forbidden, NotFound, StoreUnavailable, ValidationError
from ...models.db_models import (
    ComplaintDB, ComplaintStatus, ContactMethod, Priority, ReporterType, StatusHistoryDB,
)
from ...utils import isoformat, utcnow
from ...validation import (
    DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, mask_aadhaar, normalize_phone, require_text,
    validate_aadhaar, validate_pagination,
)
from ..identity.token_service import Principal
from .identifiers import generate_public_id, normalize_public_id
from .state_machine import ComplaintStateMachine, parse_status, status_label

logger = logging.getLogger(__name__)

MAX_PUBLIC_ID_ATTEMPTS = 5
INITIAL_NOTE = "Complaint submitted successfully"


def _parse_enum(enum_cls, value: Optional[str], field_name: str, default):
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field_name}. Must be one of: {valid}")


def _optional_text(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip()
    return text or None


def is_sandbox_complaint(complaint: ComplaintDB) -> bool:
    """Only complaints filed by demo accounts are visible to sandbox principals."""
    return bool(complaint.submitter_id) and complaint.submitter_id.startswith(DEMO_ACCOUNT_PREFIX)


def _assert_sandbox_scope(complaint: ComplaintDB, principal: Principal) -> None:
    if principal.is_sandbox and not is_sandbox_complaint(complaint):
        logger.warning(f"Sandbox principal {principal.id} refused on {complaint.public_id}")
        raise Forbidden("Demo accounts can only access demo complaints")


class ComplaintService:
    """Complaint lifecycle operations."""

    def __init__(self, db_session: Session):
        self.db = db_session

    # =========================================================================
    # CREATE
    # =========================================================================

    def create(
        self,
        data: Dict[str, Any],
        principal: Optional[Principal] = None,
        anonymous: bool = False,
    ) -> ComplaintDB:
        """
        Register a complaint with status SUBMITTED and its first history entry.

        ``anonymous`` forces the submitter and actor to be left empty even when
        the caller is authenticated.
        """
        title = require_text(data.get("title"), "Title")
        category = require_text(data.get("category"), "Category")
        description = require_text(data.get("description"), "Description")

        priority = _parse_enum(Priority, data.get("priority"), "priority", Priority.MEDIUM)
        reporter_type = _parse_enum(
            ReporterType, data.get("reporter_type"), "reporter type", ReporterType.ANONYMOUS
        )
        contact_method = _parse_enum(
            ContactMethod, data.get("contact_method"), "contact method", ContactMethod.EMAIL
        )
        contact_phone = data.get("contact_phone")
        contact_phone = normalize_phone(contact_phone) if _optional_text(contact_phone) else None

        identity_snapshot = None
        if reporter_type == ReporterType.VERIFIED:
            identity_snapshot = self._build_identity_snapshot(data.get("identity"))

        location = data.get("location") or {}
        attachments = self._clean_attachments(data.get("attachments") or [])

        actor = None if anonymous else principal
        submitter_id = actor.id if actor else None
        actor_role = actor.role if actor else None

        for attempt in range(1, MAX_PUBLIC_ID_ATTEMPTS + 1):
            public_id = generate_public_id()
            if self.db.query(ComplaintDB.id).filter(ComplaintDB.public_id == public_id).first():
                logger.warning(f"Public id collision on attempt {attempt}")
                continue

            now = utcnow()
            complaint = ComplaintDB(
                id=str(uuid4()),
                public_id=public_id,
                title=title,
                category=category,
                description=description,
                priority=priority,
                status=ComplaintStatus.SUBMITTED,
                reporter_type=reporter_type,
                contact_method=contact_method,
                contact_phone=contact_phone,
                submitter_id=submitter_id,
                department=_optional_text(data.get("department")) or category,
                address=_optional_text(location.get("address")),
                latitude=location.get("latitude"),
                longitude=location.get("longitude"),
                formatted_address=_optional_text(location.get("formatted")),
                attachments=attachments,
                identity_snapshot=identity_snapshot,
                created_at=now,
                updated_at=now,
            )
            complaint.history.append(StatusHistoryDB(
                id=str(uuid4()),
                sequence=1,
                status=ComplaintStatus.SUBMITTED,
                note=INITIAL_NOTE,
                actor_id=submitter_id,
                actor_role=actor_role,
                created_at=now,
            ))
            self.db.add(complaint)

            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(f"Public id insert conflict on attempt {attempt}")
                continue

            logger.info(
                f"Complaint {public_id} created ({category}, {priority.value}, "
                f"{reporter_type.value})"
            )
            return complaint

        logger.error(f"Could not allocate a public id after {MAX_PUBLIC_ID_ATTEMPTS} attempts")
        raise StoreUnavailable("Failed to register complaint. Please try again.")

    def _build_identity_snapshot(self, identity: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not identity:
            raise ValidationError("Aadhaar details are required for verified complaints")
        number = validate_aadhaar(identity.get("aadhaar_number"))
        return {
            "aadhaarNumber": mask_aadhaar(number),
            "name": _optional_text(identity.get("name")),
            "gender": _optional_text(identity.get("gender")),
            "state": _optional_text(identity.get("state")),
            "district": _optional_text(identity.get("district")),
            "verifiedAt": isoformat(utcnow()),
        }

    @staticmethod
    def _clean_attachments(attachments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        keys = ("filename", "original_name", "file_type", "file_size", "url")
        cleaned = []
        for item in attachments:
            if not isinstance(item, dict):
                raise ValidationError("Attachments must be objects")
            cleaned.append({k: item.get(k) for k in keys})
        return cleaned

    # =========================================================================
    # TRANSITION
    # =========================================================================

    def get_by_public_id(self, public_id: str) -> ComplaintDB:
        complaint = (
            self.db.query(ComplaintDB)
            .filter(ComplaintDB.public_id == normalize_public_id(public_id))
            .first()
        )
        if complaint is None:
            raise NotFound("Complaint not found")
        return complaint

    def transition(
        self,
        public_id: str,
        new_status: str,
        note: Optional[str],
        principal: Principal,
    ) -> ComplaintDB:
        """
        Move a complaint to ``new_status`` and append a history entry.

        Raises NotFound, ValidationError (unknown status), InvalidTransition
        (not allowed from the current status), Conflict (concurrent writer)
        or Forbidden (sandbox principal on a real complaint).
        """
        complaint = self.get_by_public_id(public_id)
        _assert_sandbox_scope(complaint, principal)
        target = parse_status(new_status)

        machine = ComplaintStateMachine(complaint.status)
        machine.assert_transition(target)

        now = utcnow()
        previous = complaint.status
        complaint.status = target
        complaint.updated_at = now
        if target == ComplaintStatus.RESOLVED and complaint.resolved_at is None:
            complaint.resolved_at = now

        next_sequence = max((h.sequence for h in complaint.history), default=0) + 1
        complaint.history.append(StatusHistoryDB(
            id=str(uuid4()),
            sequence=next_sequence,
            status=target,
            note=_optional_text(note) or machine.default_note(target),
            actor_id=principal.id,
            actor_role=principal.role,
            created_at=now,
        ))

        try:
            self.db.commit()
        except (StaleDataError, IntegrityError):
            self.db.rollback()
            logger.warning(f"Concurrent status change on {complaint.public_id}")
            raise Conflict("Complaint was modified concurrently. Please retry.")

        logger.info(
            f"Complaint {complaint.public_id}: {previous.value} -> {target.value} "
            f"by {principal.role}"
        )
        return complaint

    # =========================================================================
    # READ PROJECTIONS
    # =========================================================================

    def track(self, public_id: str) -> Dict[str, Any]:
        """Public tracking view. Never exposes identity, submitter or actor ids."""
        return self._public_view(self.get_by_public_id(public_id))

    def detail(self, public_id: str, principal: Principal) -> Dict[str, Any]:
        complaint = self.get_by_public_id(public_id)
        _assert_sandbox_scope(complaint, principal)
        if not principal.is_staff and complaint.submitter_id != principal.id:
            raise Forbidden("You do not have access to this complaint")
        return self._full_view(
            complaint, include_identity=principal.is_staff and not principal.is_sandbox
        )

    def list_for_submitter(
        self,
        principal: Principal,
        status: Optional[str] = None,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        query = self.db.query(ComplaintDB).filter(ComplaintDB.submitter_id == principal.id)
        return self._paginate(query, status, category, priority, page, limit, include_identity=False)

    def list_all(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        principal: Optional[Principal] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """Staff listing across all submitters. Sandbox staff see demo complaints only."""
        query = self.db.query(ComplaintDB)
        sandbox = principal is not None and principal.is_sandbox
        if sandbox:
            query = query.filter(ComplaintDB.submitter_id.like(f"{DEMO_ACCOUNT_PREFIX}%"))
        return self._paginate(
            query, status, category, priority, page, limit, include_identity=not sandbox
        )

    def recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        complaints = (
            self.db.query(ComplaintDB)
            .order_by(ComplaintDB.created_at.desc())
            .limit(limit)
            .all()
        )
        return [self._public_view(c, include_history=False) for c in complaints]

    def stats(self, submitter_id: Optional[str] = None, sandbox_only: bool = False) -> Dict[str, Any]:
        """Counts per status and priority, plus mean days to first resolution."""

        def _count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        query = self.db.query(
            func.count(ComplaintDB.id),
            _count_where(ComplaintDB.status == ComplaintStatus.SUBMITTED),
            _count_where(ComplaintDB.status == ComplaintStatus.IN_PROGRESS),
            _count_where(ComplaintDB.status == ComplaintStatus.RESOLVED),
            _count_where(ComplaintDB.status == ComplaintStatus.CLOSED),
            _count_where(ComplaintDB.priority == Priority.URGENT),
            _count_where(ComplaintDB.priority == Priority.HIGH),
        )
        resolved_query = self.db.query(ComplaintDB.created_at, ComplaintDB.resolved_at).filter(
            ComplaintDB.resolved_at.isnot(None)
        )
        if submitter_id is not None:
            query = query.filter(ComplaintDB.submitter_id == submitter_id)
            resolved_query = resolved_query.filter(ComplaintDB.submitter_id == submitter_id)
        if sandbox_only:
            demo_only = ComplaintDB.submitter_id.like(f"{DEMO_ACCOUNT_PREFIX}%")
            query = query.filter(demo_only)
            resolved_query = resolved_query.filter(demo_only)

        total, submitted, in_progress, resolved, closed, urgent, high = query.one()

        # Computed here rather than in SQL: date arithmetic differs per engine
        durations = [
            (resolved_at - created_at).total_seconds() / 86400
            for created_at, resolved_at in resolved_query.all()
            if created_at is not None
        ]
        average_days = round(sum(durations) / len(durations), 1) if durations else None

        return {
            "totalComplaints": int(total or 0),
            "statusCounts": {
                "submitted": int(submitted),
                "inProgress": int(in_progress),
                "resolved": int(resolved),
                "closed": int(closed),
            },
            "priorityCounts": {
                "urgent": int(urgent),
                "high": int(high),
            },
            "averageResolutionDays": average_days,
        }

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _paginate(self, query, status, category, priority, page, limit, include_identity):
        page, limit = validate_pagination(page, limit)
        if status:
            query = query.filter(ComplaintDB.status == parse_status(status))
        if category:
            query = query.filter(ComplaintDB.category == category.strip())
        if priority:
            query = query.filter(ComplaintDB.priority == _parse_enum(Priority, priority, "priority", None))

        total = query.count()
        complaints = (
            query.order_by(ComplaintDB.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        total_pages = (total + limit - 1) // limit
        pagination = {
            "page": page,
            "limit": limit,
            "totalPages": total_pages,
            "totalCount": total,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        }
        items = [
            self._full_view(c, include_identity=include_identity, include_history=False)
            for c in complaints
        ]
        return items, pagination

    @staticmethod
    def _history_entry(entry: StatusHistoryDB, include_actor_id: bool = False) -> Dict[str, Any]:
        item = {
            "status": entry.status.value,
            "statusLabel": status_label(entry.status),
            "note": entry.note,
            "actorRole": entry.actor_role,
            "timestamp": isoformat(entry.created_at),
        }
        if include_actor_id:
            item["actorId"] = entry.actor_id
        return item

    def _public_view(self, complaint: ComplaintDB, include_history: bool = True) -> Dict[str, Any]:
        view = {
            "complaintId": complaint.public_id,
            "title": complaint.title,
            "category": complaint.category,
            "department": complaint.department,
            "priority": complaint.priority.value,
            "status": complaint.status.value,
            "statusLabel": status_label(complaint.status),
            "address": complaint.formatted_address or complaint.address,
            "createdAt": isoformat(complaint.created_at),
            "updatedAt": isoformat(complaint.updated_at),
            "resolvedAt": isoformat(complaint.resolved_at),
        }
        if include_history:
            view["statusHistory"] = [self._history_entry(h) for h in complaint.history]
        return view

    def _full_view(
        self,
        complaint: ComplaintDB,
        include_identity: bool,
        include_history: bool = True,
    ) -> Dict[str, Any]:
        view = self._public_view(complaint, include_history=False)
        view.update({
            "description": complaint.description,
            "reporterType": complaint.reporter_type.value,
            "contactMethod": complaint.contact_method.value,
            "contactPhone": complaint.contact_phone,
            "location": {
                "address": complaint.address,
                "latitude": complaint.latitude,
                "longitude": complaint.longitude,
                "formatted": complaint.formatted_address,
            },
            "attachments": complaint.attachments or [],
        })
        if include_identity:
            view["submitterId"] = complaint.submitter_id
            view["identity"] = complaint.identity_snapshot
        if include_history:
            view["statusHistory"] = [
                self._history_entry(h, include_actor_id=include_identity)
                for h in complaint.history
            ]
        return view
