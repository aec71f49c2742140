"""
Public complaint identifiers: CMP-XXXXX-XXXXX.

Drawn from a 32-symbol alphabet without 0/O/1/I so ids survive being read
aloud or copied by hand. 50 random bits per id.
"""
import re
import secrets

PUBLIC_ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PUBLIC_ID_PREFIX = "CMP"
PUBLIC_ID_REGEX = re.compile(rf"^{PUBLIC_ID_PREFIX}-[{PUBLIC_ID_ALPHABET}]{{5}}-[{PUBLIC_ID_ALPHABET}]{{5}}$")


def generate_public_id() -> str:
    groups = [
        "".join(secrets.choice(PUBLIC_ID_ALPHABET) for _ in range(5))
        for _ in range(2)
    ]
    return f"{PUBLIC_ID_PREFIX}-{groups[0]}-{groups[1]}"


def normalize_public_id(raw: str) -> str:
    """Upper-case and trim a user-supplied id. Does not validate."""
    return (raw or "").strip().upper()
