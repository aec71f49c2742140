"""
NaiyakSetu - Authentication Router
Phone OTP login, email/password accounts, sandbox demo login and profile updates.
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.orm import Session

from ..auth import get_current_principal
from ..config import Settings, get_settings
from ..database import get_db
from ..errors import AccountNotFound, Forbidden, InvalidCredential, NotFound
from ..models.db_models import OtpPurpose
from ..responses import success_response
from ..services.identity import (
    AccountService,
    OtpManager,
    Principal,
    SmsGateway,
    TokenService,
    get_sms_gateway,
    serialize_account,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class SendOtpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber")
    purpose: OtpPurpose = OtpPurpose.VERIFICATION


class VerifyOtpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber")
    otp: str


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


# =============================================================================
# PHONE OTP
# =============================================================================

@router.post("/send-otp")
def send_otp(
    request: SendOtpRequest,
    db: Session = Depends(get_db),
    gateway: SmsGateway = Depends(get_sms_gateway),
    settings: Settings = Depends(get_settings),
):
    """Issue a one-time code to a phone. The code itself is never returned."""
    issue = OtpManager(db, gateway=gateway, settings=settings).request_code(
        request.phone_number, request.purpose
    )
    return success_response("OTP sent successfully", expiresIn=issue.expires_in)


@router.post("/verify-otp")
def verify_otp(
    request: VerifyOtpRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Consume a code and return a signed session token."""
    account = OtpManager(db, settings=settings).verify_code(request.phone_number, request.otp)
    token = TokenService(db, settings).issue(account)

    user = serialize_account(account)
    user["isNewUser"] = not account.name
    return success_response("OTP verified successfully", token=token, user=user)


# =============================================================================
# EMAIL / PASSWORD
# =============================================================================

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    account = AccountService(db).register(
        name=request.name,
        email=request.email,
        password=request.password,
        phone=request.phone,
    )
    token = TokenService(db, settings).issue(account)
    return success_response("User registered successfully", token=token, user=serialize_account(account))


@router.post("/login")
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    account = AccountService(db).authenticate(request.email, request.password)
    token = TokenService(db, settings).issue(account)
    return success_response("Login successful", token=token, user=serialize_account(account))


@router.post("/demo-login")
def demo_login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Sign in as a demo registry account. Unavailable when sandbox auth is off."""
    if not settings.sandbox_enabled:
        raise NotFound("Demo login is not available")

    demo = settings.find_demo_account_by_email(request.email)
    if demo is None or not hmac.compare_digest(demo.password, request.password):
        raise InvalidCredential("Invalid demo credentials")

    token = TokenService(db, settings).issue_sandbox(demo)
    principal = TokenService(db, settings).validate(token)
    logger.info(f"Demo login: {demo.id}")
    return success_response("Demo login successful", token=token, user=principal.to_dict())


# =============================================================================
# SESSION / PROFILE
# =============================================================================

@router.get("/validate-token")
def validate_token(principal: Principal = Depends(get_current_principal)):
    return success_response("Token is valid", user=principal.to_dict())


@router.get("/profile")
def get_profile(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Current caller's profile. Demo accounts answer from the registry."""
    if principal.is_sandbox:
        return success_response("Profile retrieved successfully", user=principal.to_dict())

    account = AccountService(db).get(principal.id)
    if account is None:
        raise AccountNotFound()
    return success_response("Profile retrieved successfully", user=serialize_account(account))


@router.put("/profile")
def update_profile(
    request: ProfileUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    if principal.is_sandbox:
        raise Forbidden("Demo accounts cannot be modified")

    accounts = AccountService(db)
    account = accounts.get(principal.id)
    if account is None:
        raise AccountNotFound()

    account = accounts.update_profile(
        account,
        name=request.name,
        email=request.email,
        phone=request.phone,
    )
    return success_response("Profile updated successfully", user=serialize_account(account))
