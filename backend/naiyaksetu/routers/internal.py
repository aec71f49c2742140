"""
NaiyakSetu - Internal Maintenance Routes

System endpoints for external schedulers (cron, cloud schedulers).
Guarded by the X-Internal-Key header rather than user tokens.
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import get_db
from ..errors import Forbidden
from ..responses import success_response
from ..services.identity import OtpManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

def verify_internal_key(
    x_internal_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> bool:
    """Verify the internal API key for maintenance endpoints."""
    if not x_internal_key or not hmac.compare_digest(x_internal_key, settings.internal_api_key):
        raise Forbidden("Invalid internal API key")
    return True


# =============================================================================
# MAINTENANCE ENDPOINTS
# =============================================================================

@router.post("/otp-sweep")
def run_otp_sweep(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _: bool = Depends(verify_internal_key),
):
    """
    Delete expired and used one-time codes.

    Idempotent; safe to call from several schedulers at once.
    """
    deleted = OtpManager(db, settings=settings).sweep()
    logger.info(f"Internal OTP sweep removed {deleted} rows")
    return success_response("OTP sweep completed", deleted=deleted)
