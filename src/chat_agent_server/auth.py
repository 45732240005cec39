"""Identity headers set by the upstream identity provider.

The gateway in front of this service authenticates the user and forwards the
user id in ``X-User-Id``. When ``IDENTITY_SHARED_SECRET`` is configured the
header must be signed: ``X-Signature`` is the HMAC-SHA256 of
``"{X-Timestamp}.{X-User-Id}"`` with the timestamp in milliseconds.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from typing import Dict

from fastapi import Depends, Request

from .config import Settings, get_settings
from .errors import AuthenticationMissing


def sign_request(body: str, timestamp: int, secret: str) -> str:
    """Sign a request body with HMAC-SHA256."""
    payload = f"{timestamp}.{body}"
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def identity_headers(user_id: str, secret: str = "", timestamp: int | None = None) -> Dict[str, str]:
    """Headers a trusted caller sends to act as ``user_id``."""
    headers = {"X-User-Id": user_id}
    if secret:
        ts = timestamp if timestamp is not None else int(time.time() * 1000)
        headers["X-Timestamp"] = str(ts)
        headers["X-Signature"] = sign_request(user_id, ts, secret)
    return headers


def verify_identity(
    user_id: str | None,
    timestamp: str | None,
    signature: str | None,
    settings: Settings,
    now_ms: int | None = None,
) -> str:
    """Return the verified user id or raise ``AuthenticationMissing``."""
    if not user_id or not user_id.strip():
        raise AuthenticationMissing("Not authenticated")

    secret = settings.identity_shared_secret
    if not secret:
        # Dev mode: trust the forwarded header.
        return user_id

    if not timestamp or not signature:
        raise AuthenticationMissing("Identity signature missing")
    try:
        ts = int(timestamp)
    except ValueError as exc:
        raise AuthenticationMissing("Invalid identity timestamp") from exc

    now = now_ms if now_ms is not None else int(time.time() * 1000)
    if abs(now - ts) > settings.identity_max_skew_seconds * 1000:
        raise AuthenticationMissing("Identity signature expired")

    expected = sign_request(user_id, ts, secret)
    if not hmac.compare_digest(expected, signature):
        raise AuthenticationMissing("Invalid identity signature")
    return user_id


def require_user_id(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """FastAPI dependency resolving the authenticated user id for a request."""
    return verify_identity(
        request.headers.get("X-User-Id"),
        request.headers.get("X-Timestamp"),
        request.headers.get("X-Signature"),
        settings,
    )
