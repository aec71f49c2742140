"""
SMS Gateway

Out-of-band delivery of one-time codes. The OTP manager only knows the
``SmsGateway.send(phone, message)`` contract; which provider sits behind it
is decided by configuration.
"""
import logging
from typing import Optional

import httpx

from ...config import Settings, get_settings
from ...errors import DeliveryFailed

logger = logging.getLogger(__name__)


class SmsGateway:
    """Base contract for SMS providers."""

    def send(self, phone: str, message: str) -> None:
        raise NotImplementedError


class ConsoleSmsGateway(SmsGateway):
    """Development provider: writes the message to the log instead of sending it."""

    def send(self, phone: str, message: str) -> None:
        logger.info(f"[SMS] to {phone}: {message}")


class HttpSmsGateway(SmsGateway):
    """
    Generic JSON-over-HTTP provider.

    POSTs {"to", "message"} to the configured URL with a bounded timeout.
    Any transport failure, timeout or non-2xx status raises DeliveryFailed.
    """

    def __init__(self, url: str, api_key: str = "", timeout: float = 5.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def send(self, phone: str, message: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {"to": phone, "message": message}

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.TimeoutException:
            logger.warning(f"SMS gateway timed out after {self.timeout}s")
            raise DeliveryFailed("Failed to send OTP")
        except httpx.HTTPStatusError as e:
            logger.warning(f"SMS gateway returned {e.response.status_code}")
            raise DeliveryFailed("Failed to send OTP")
        except httpx.HTTPError as e:
            logger.warning(f"SMS gateway transport error: {type(e).__name__}")
            raise DeliveryFailed("Failed to send OTP")

        logger.info(f"SMS dispatched to phone ending {phone[-4:]}")


def build_sms_gateway(settings: Settings) -> SmsGateway:
    """Pick the provider for the given settings."""
    if settings.sms_gateway_url:
        return HttpSmsGateway(
            settings.sms_gateway_url,
            api_key=settings.sms_gateway_api_key,
            timeout=settings.sms_gateway_timeout_seconds,
        )
    if settings.is_production:
        # Codes must never end up in production logs
        logger.error("SMS_GATEWAY_URL is not configured in production")
        raise DeliveryFailed("SMS delivery is not configured")
    return ConsoleSmsGateway()


_gateway: Optional[SmsGateway] = None


def get_sms_gateway() -> SmsGateway:
    """FastAPI dependency for the configured SMS gateway (overridable in tests)."""
    global _gateway
    if _gateway is None:
        _gateway = build_sms_gateway(get_settings())
    return _gateway
