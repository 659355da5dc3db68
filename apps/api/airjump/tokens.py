"""Entry token issuing and format checks."""
from __future__ import annotations

import hashlib
import hmac
import io
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import qrcode

TOKEN_PREFIX = "AJ-"
TOKEN_DIGEST_LENGTH = 16
TOKEN_PATTERN = re.compile(r"^AJ-[A-F0-9]{16}$")


def normalize_token(raw: str) -> str:
    """Trim and upper-case a scanned or hand-typed token."""

    return (raw or "").strip().upper()


def validate_token_format(token: str) -> bool:
    return bool(TOKEN_PATTERN.match(normalize_token(token)))


def generate_qr_token(child_id: str, secret: str, *, issued_at: Optional[datetime] = None) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    timestamp_ms = int(issued_at.timestamp() * 1000)
    nonce = secrets.token_hex(8)
    message = f"{child_id}-{timestamp_ms}-{nonce}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"{TOKEN_PREFIX}{digest[:TOKEN_DIGEST_LENGTH].upper()}"


def compute_expiry(issued_at: datetime, ttl_minutes: int) -> datetime:
    return issued_at + timedelta(minutes=ttl_minutes)


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now


def render_qr_png(data: str, box_size: int = 8, border: int = 2) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
