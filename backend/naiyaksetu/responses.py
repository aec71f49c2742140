"""
NaiyakSetu - Response Envelope
Every response body is {success, message, ...payload, timestamp}.
"""
from typing import Any, Dict

from .utils import isoformat, utcnow


def success_response(message: str = "Success", **payload: Any) -> Dict[str, Any]:
    return {
        "success": True,
        "message": message,
        **payload,
        "timestamp": isoformat(utcnow()),
    }


def error_response(message: str, **details: Any) -> Dict[str, Any]:
    return {
        "success": False,
        "message": message,
        **details,
        "timestamp": isoformat(utcnow()),
    }
