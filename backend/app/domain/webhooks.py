"""Webhook helpers: signature checks, retry backoff, payload field extraction.

Pure functions. No DB access.
"""

import hashlib
import hmac
import re
from datetime import datetime, timedelta

RETRY_BASE_SECONDS = 60
MAX_ERROR_LENGTH = 500


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """HMAC-SHA256 over the raw body, compared in constant time."""
    if not signature or not secret:
        return False
    return hmac.compare_digest(compute_signature(body, secret), signature)


def verify_internal_token(token: str | None, secret: str) -> bool:
    """Check the internal replay header. An empty server secret never matches."""
    if not token or not secret:
        return False
    return hmac.compare_digest(token, secret)


def next_retry_at(now: datetime, retry_count: int, base_seconds: int = RETRY_BASE_SECONDS) -> datetime:
    """Exponential backoff: base * 2^retry_count seconds from now."""
    return now + timedelta(seconds=base_seconds * (2**retry_count))


def truncate_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    return message[:limit]


def normalize_phone(phone: str | int | None) -> str | None:
    """Keep digits only, dropping a leading 91 country code from 12-digit numbers."""
    if not phone:
        return phone
    digits = re.sub(r"\D", "", str(phone))
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    return digits


def normalize_shipping_address(address: dict | None) -> dict:
    normalized = dict(address or {})
    if "phone" in normalized:
        normalized["phone"] = normalize_phone(normalized["phone"])
    return normalized
