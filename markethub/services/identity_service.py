"""
Identity service — turns a Telegram initData credential into a session.

Verification flow:
  1. Parse the initData query string
  2. Check the HMAC signature against the bot token
  3. Reject stale credentials (auth_date older than the configured window)
  4. Decode the embedded `user` JSON and require an id
  5. Upsert the profile fields on the account (lazily creating it)
  6. Return a JWT so the client can call authenticated endpoints

Every failure raises the same InvalidCredentialError; the reason is only
logged, so a caller probing the endpoint learns nothing about which check
failed.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from markethub.config import settings
from markethub.domain import Account
from markethub.exceptions import InvalidCredentialError
from markethub.security import check_init_data, create_access_token, parse_init_data
from markethub.storage.base import Storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedUser:
    user_id: str
    first_name: str | None = None
    username: str | None = None
    auth_date: datetime | None = None


def verify_identity(
    init_data: str,
    bot_token: str | None = None,
    max_age_seconds: int | None = None,
    now: datetime | None = None,
) -> VerifiedUser:
    """
    Verify a Telegram WebApp initData string.

    Args:
        init_data: The raw initData query string from the client.
        bot_token: Bot token used to derive the signing key. Defaults to
                   TELEGRAM_BOT_TOKEN from settings.
        max_age_seconds: Freshness window for auth_date; 0 disables it.
        now: Clock override for tests.

    Returns:
        The verified user.

    Raises:
        InvalidCredentialError: If any check fails.
    """
    token = settings.TELEGRAM_BOT_TOKEN if bot_token is None else bot_token
    max_age = settings.INIT_DATA_MAX_AGE_SECONDS if max_age_seconds is None else max_age_seconds

    params = parse_init_data(init_data)
    if not check_init_data(params, token):
        logger.info("Rejected initData: signature mismatch or no bot token configured")
        raise InvalidCredentialError("Invalid initData")

    auth_date = None
    if "auth_date" in params:
        try:
            auth_date = datetime.fromtimestamp(int(params["auth_date"]), tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            raise InvalidCredentialError("Invalid initData")

    if max_age and auth_date is not None:
        age = ((now or datetime.now(timezone.utc)) - auth_date).total_seconds()
        if age > max_age:
            logger.info("Rejected initData: auth_date is %.0fs old", age)
            raise InvalidCredentialError("initData has expired")

    try:
        user = json.loads(params["user"])
        user_id = str(user["id"])
    except (KeyError, TypeError, ValueError):
        logger.info("Rejected initData: missing or malformed user field")
        raise InvalidCredentialError("initData carries no user")

    return VerifiedUser(
        user_id=user_id,
        first_name=user.get("first_name"),
        username=user.get("username"),
        auth_date=auth_date,
    )


async def sign_in(storage: Storage, init_data: str) -> tuple[VerifiedUser, Account, str]:
    """
    Verify the credential, record the profile, and issue an access token.

    Returns:
        Tuple of (verified user, account snapshot, JWT string).
    """
    user = verify_identity(init_data)

    async with storage.unit_of_work() as uow:
        account = await uow.update_profile(user.user_id, user.first_name, user.username)

    token = create_access_token(data={"sub": user.user_id})
    logger.info("User %s signed in", user.user_id)
    return user, account, token
