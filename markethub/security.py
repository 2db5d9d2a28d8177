"""
Security utilities: Telegram credential verification and JWT tokens.

Two concerns are handled here:

1. TELEGRAM WEBAPP initData VERIFICATION (HMAC-SHA256)
   - The mini-app receives `initData` from Telegram: a query string holding
     the user, auth_date and a `hash` signed with the bot token
   - data_check_string = sorted "key=value" lines of every field but `hash`
   - secret_key = HMAC-SHA256(key="WebAppData", msg=bot_token)
   - valid iff hex(HMAC-SHA256(secret_key, data_check_string)) == hash
   - Comparison is constant-time to prevent timing attacks

2. JWT TOKENS (JSON Web Tokens)
   - After verification, the client receives a signed JWT whose "sub" is
     the Telegram user id
   - Signed with SECRET_KEY using HS256 (HMAC-SHA256)
   - Tokens expire after ACCESS_TOKEN_EXPIRE_MINUTES (default: 60 min)
   - Every purchase, credit and settlement takes the acting user from this
     token — never from a request body field
"""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from urllib.parse import unquote

from jose import jwt

from markethub.config import settings


# ---------------------------------------------------------------------------
# 1. Telegram initData
# ---------------------------------------------------------------------------

def parse_init_data(init_data: str) -> dict[str, str]:
    """
    Split an initData query string into a dict of percent-decoded values.

    '+' is kept literally (Telegram percent-encodes spaces), and pairs
    without '=' are ignored.
    """
    params: dict[str, str] = {}
    for pair in str(init_data).split("&"):
        if not pair or "=" not in pair:
            continue
        key, _, value = pair.partition("=")
        params[unquote(key)] = unquote(value)
    return params


def compute_init_data_hash(params: dict[str, str], bot_token: str) -> str:
    """Compute the hex signature Telegram attaches to initData."""
    data_check_string = "\n".join(
        f"{key}={params[key]}" for key in sorted(params) if key != "hash"
    )
    secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    return hmac.new(secret_key, data_check_string.encode(), hashlib.sha256).hexdigest()


def check_init_data(params: dict[str, str], bot_token: str) -> bool:
    """
    Verify the initData signature.

    Returns False when no bot token is configured — without it nothing can
    be validated, so nothing is trusted.
    """
    if not bot_token:
        return False
    received = params.get("hash")
    if not received:
        return False
    expected = compute_init_data_hash(params, bot_token)
    return hmac.compare_digest(expected, received)


# ---------------------------------------------------------------------------
# 2. JWT Tokens
# ---------------------------------------------------------------------------

def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed JWT access token.

    The token payload contains:
      - "sub": The subject (Telegram user id as string) — standard JWT claim
      - "exp": Expiration timestamp — after this, the token is rejected

    Args:
        data: Dictionary of claims to encode (must include "sub").
        expires_delta: Optional custom expiration time. Defaults to
                       ACCESS_TOKEN_EXPIRE_MINUTES from settings.

    Returns:
        An encoded JWT string.
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT access token.

    Raises:
        JWTError: If the token is expired, tampered with, or invalid.

    Returns:
        The decoded payload dictionary (contains "sub", "exp", etc.).
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
