"""
NaiyakSetu - Input Validation Helpers
Phone, OTP, password, Aadhaar and pagination checks shared by services and routers.
"""
import re
from typing import Optional, Tuple

from .errors import ValidationError


PHONE_REGEX = re.compile(r"^\+91[6-9]\d{9}$")
MIN_PASSWORD_LENGTH = 6
MAX_PAGE_SIZE = 50
DEFAULT_PAGE_SIZE = 10


# =============================================================================
# PHONE / OTP / PASSWORD
# =============================================================================

def normalize_phone(raw: Optional[str]) -> str:
    """
    Return the canonical +91XXXXXXXXXX form of an Indian mobile number.

    Accepts spaces and dashes, a bare 10-digit number, or 91XXXXXXXXXX.
    Raises ValidationError if the result is not a valid mobile number.
    """
    if not raw or not str(raw).strip():
        raise ValidationError("Phone number is required")

    phone = re.sub(r"[\s\-()]", "", str(raw))
    if re.fullmatch(r"[6-9]\d{9}", phone):
        phone = "+91" + phone
    elif re.fullmatch(r"91[6-9]\d{9}", phone):
        phone = "+" + phone

    if not PHONE_REGEX.match(phone):
        raise ValidationError("Invalid phone number format. Use +91XXXXXXXXXX")
    return phone


def validate_otp_format(otp: Optional[str], length: int = 6) -> str:
    if not otp:
        raise ValidationError("OTP is required")
    otp = str(otp).strip()
    if not re.fullmatch(rf"\d{{{length}}}", otp):
        raise ValidationError(f"OTP must be {length} digits")
    return otp


def validate_password(password: Optional[str]) -> str:
    if not password:
        raise ValidationError("Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    return password


def require_text(value: Optional[str], field_name: str) -> str:
    """Trimmed non-empty string or ValidationError."""
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


# =============================================================================
# AADHAAR (VERHOEFF CHECKSUM)
# =============================================================================

_VERHOEFF_D = (
    (0, 1, 2, 3, 4, 5, 6, 7, 8, 9),
    (1, 2, 3, 4, 0, 6, 7, 8, 9, 5),
    (2, 3, 4, 0, 1, 7, 8, 9, 5, 6),
    (3, 4, 0, 1, 2, 8, 9, 5, 6, 7),
    (4, 0, 1, 2, 3, 9, 5, 6, 7, 8),
    (5, 9, 8, 7, 6, 0, 4, 3, 2, 1),
    (6, 5, 9, 8, 7, 1, 0, 4, 3, 2),
    (7, 6, 5, 9, 8, 2, 1, 0, 4, 3),
    (8, 7, 6, 5, 9, 3, 2, 1, 0, 4),
    (9, 8, 7, 6, 5, 4, 3, 2, 1, 0),
)

_VERHOEFF_P = (
    (0, 1, 2, 3, 4, 5, 6, 7, 8, 9),
    (1, 5, 7, 6, 2, 8, 3, 0, 9, 4),
    (5, 8, 0, 3, 7, 9, 6, 1, 4, 2),
    (8, 9, 1, 6, 0, 4, 3, 5, 2, 7),
    (9, 4, 5, 3, 1, 2, 6, 8, 7, 0),
    (4, 2, 8, 6, 5, 7, 3, 9, 0, 1),
    (2, 7, 9, 3, 8, 0, 6, 4, 1, 5),
    (7, 0, 4, 6, 9, 1, 3, 2, 5, 8),
)

_VERHOEFF_INV = (0, 4, 3, 2, 1, 5, 6, 7, 8, 9)


def verhoeff_check_digit(digits: str) -> str:
    """Check digit to append to ``digits``."""
    c = 0
    for i, digit in enumerate(reversed(digits)):
        c = _VERHOEFF_D[c][_VERHOEFF_P[(i + 1) % 8][int(digit)]]
    return str(_VERHOEFF_INV[c])


def verhoeff_valid(number: str) -> bool:
    if not number.isdigit():
        return False
    c = 0
    for i, digit in enumerate(reversed(number)):
        c = _VERHOEFF_D[c][_VERHOEFF_P[i % 8][int(digit)]]
    return c == 0


def validate_aadhaar(raw: Optional[str]) -> str:
    """Clean 12-digit Aadhaar number with a valid checksum."""
    number = re.sub(r"[\s\-]", "", raw or "")
    if not number:
        raise ValidationError("Aadhaar number is required")
    if not re.fullmatch(r"\d{12}", number):
        raise ValidationError("Aadhaar number must be exactly 12 digits")
    if not verhoeff_valid(number):
        raise ValidationError("Invalid Aadhaar number. Please check and try again.")
    return number


def mask_aadhaar(number: str) -> str:
    return f"XXXX-XXXX-{number[-4:]}"


# =============================================================================
# PAGINATION
# =============================================================================

def validate_pagination(page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Tuple[int, int]:
    if page < 1:
        raise ValidationError("Page must be greater than 0")
    if limit < 1:
        raise ValidationError("Limit must be greater than 0")
    return page, min(limit, MAX_PAGE_SIZE)
