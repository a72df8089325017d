"""
Push Store — Supabase queries used by the scheduler and dispatcher.

Tables:
- user_subscriptions: user_id, timezone, status, entitlement_status
- user_push_delivery_log: user_id, notification_type, local_date
  (unique on all three; see supabase/migrations)
- user_push_tokens: user_id, token

RPC:
- has_answered_today(p_user_id, p_tz) -> boolean

Every function wraps client failures in StoreError so callers can decide
whether a failure is fatal (subscriber list) or per-user (everything else).
"""

import logging

from supabase import Client

from app.core.errors import StoreError
from app.models.push import Subscriber

logger = logging.getLogger(__name__)

SUBSCRIPTIONS_TABLE = "user_subscriptions"
DELIVERY_LOG_TABLE = "user_push_delivery_log"
PUSH_TOKENS_TABLE = "user_push_tokens"
DELIVERY_LOG_KEY = "user_id,notification_type,local_date"


def fetch_subscribers(client: Client) -> list[Subscriber]:
    """Load every subscription row that has a timezone set."""
    try:
        result = (
            client.table(SUBSCRIPTIONS_TABLE)
            .select("user_id, timezone, status, entitlement_status")
            .not_.is_("timezone", "null")
            .execute()
        )
    except Exception as exc:
        logger.error("Failed to load subscribers: %s", exc)
        raise StoreError(f"Failed to load subscribers: {exc}") from exc

    return [Subscriber(**row) for row in result.data or []]


def has_delivery(
    client: Client,
    user_id: str,
    notification_type: str,
    local_date: str,
) -> bool:
    """Return True if a delivery was already logged for this user/type/day."""
    try:
        result = (
            client.table(DELIVERY_LOG_TABLE)
            .select("id")
            .eq("user_id", user_id)
            .eq("notification_type", notification_type)
            .eq("local_date", local_date)
            .limit(1)
            .execute()
        )
    except Exception as exc:
        raise StoreError(
            f"Failed to check delivery log for user {user_id[:8]}: {exc}"
        ) from exc

    return bool(result.data)


def record_delivery(
    client: Client,
    user_id: str,
    notification_type: str,
    local_date: str,
) -> None:
    """
    Write the delivery-log row for this user/type/day.

    Uses an upsert that ignores duplicates, so an overlapping scheduler
    run that already wrote the row is not an error.
    """
    row = {
        "user_id": user_id,
        "notification_type": notification_type,
        "local_date": local_date,
    }
    try:
        (
            client.table(DELIVERY_LOG_TABLE)
            .upsert(row, on_conflict=DELIVERY_LOG_KEY, ignore_duplicates=True)
            .execute()
        )
    except Exception as exc:
        raise StoreError(
            f"Failed to record delivery for user {user_id[:8]}: {exc}"
        ) from exc


def has_answered_today(client: Client, user_id: str, timezone: str) -> bool:
    """Ask the database whether the user already answered today's question."""
    try:
        result = client.rpc(
            "has_answered_today",
            {"p_user_id": user_id, "p_tz": timezone},
        ).execute()
    except Exception as exc:
        raise StoreError(
            f"has_answered_today failed for user {user_id[:8]}: {exc}"
        ) from exc

    return result.data is True


def fetch_device_tokens(client: Client, user_id: str) -> list[str]:
    """Load every registered APNs device token for a user."""
    try:
        result = (
            client.table(PUSH_TOKENS_TABLE)
            .select("token")
            .eq("user_id", user_id)
            .execute()
        )
    except Exception as exc:
        logger.error(
            "Failed to look up device tokens for user %s: %s", user_id[:8], exc
        )
        raise StoreError(f"Failed to look up device tokens: {exc}") from exc

    return [row["token"] for row in result.data or [] if row.get("token")]
