"""
Identity services: accounts, one-time codes, session tokens.
"""
from .account_service import AccountService, serialize_account
from .otp_manager import OtpIssue, OtpManager, OtpSweepScheduler
from .passwords import hash_password, verify_password
from .sms_gateway import ConsoleSmsGateway, HttpSmsGateway, SmsGateway, get_sms_gateway
from .token_service import (
    Credential,
    Principal,
    SandboxCredential,
    SignedCredential,
    TokenService,
    parse_credential,
    principal_for_account,
)

__all__ = [
    "AccountService",
    "serialize_account",
    "OtpIssue",
    "OtpManager",
    "OtpSweepScheduler",
    "hash_password",
    "verify_password",
    "SmsGateway",
    "ConsoleSmsGateway",
    "HttpSmsGateway",
    "get_sms_gateway",
    "Credential",
    "Principal",
    "SandboxCredential",
    "SignedCredential",
    "TokenService",
    "parse_credential",
    "principal_for_account",
]
