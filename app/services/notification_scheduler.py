"""
Notification Scheduler — Local-time reminder pushes.

Called by a cron trigger (every 15-30 minutes) with a notification type.
For each subscriber with a known timezone it:
1. Converts "now" into the subscriber's local date and clock time.
2. Checks the local time is within ±30 minutes of the type's target time.
3. Skips users already notified for this type on this local date.
4. Applies type-specific suppression (Friday entitlement, evening answered).
5. Dispatches the push and records it in the delivery log.

Subscribers are processed one at a time so the delivery-log
check-then-write is not interleaved within a run. Overlapping runs rely
on the log's unique key.
"""

import logging
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from supabase import Client

from app.core.config import (
    HTTP_TIMEOUT_SECONDS,
    PUSH_DISPATCH_URL,
    SUPABASE_SERVICE_ROLE_KEY,
    validate_supabase_config,
)
from app.core.errors import GatewayError, PushServiceError, ValidationError
from app.db.push_store import (
    fetch_subscribers,
    has_answered_today,
    has_delivery,
    record_delivery,
)
from app.db.supabase_client import get_service_client
from app.models.push import NotificationType, SchedulerRunResponse, Subscriber
from app.services.apns import deliver_push_to_user

logger = logging.getLogger(__name__)

WINDOW_MINUTES = 30

# Local (hour, minute) each type targets
TARGET_TIMES: dict[NotificationType, tuple[int, int]] = {
    NotificationType.MORNING: (7, 30),
    NotificationType.EVENING: (19, 30),
    NotificationType.FRIDAY: (7, 30),
}

# (title, body)
NOTIFICATION_CONTENT: dict[NotificationType, tuple[str, str]] = {
    NotificationType.MORNING: (
        "Answer today’s question",
        "Keep your streak going with today’s system design prompt.",
    ),
    NotificationType.EVENING: (
        "Don’t forget today’s question",
        "If you haven’t answered yet, take 5 minutes and stay sharp.",
    ),
    NotificationType.FRIDAY: (
        "Free Friday question is live",
        "Your free question is available today. Jump in and stay sharp.",
    ),
}

ENTITLED_STATUSES = frozenset({"active", "trialing", "past_due", "paused"})
ENTITLED_ENTITLEMENTS = frozenset({"active", "billing_issue", "paused"})

FRIDAY = 4  # date.weekday()

Dispatcher = Callable[[str, str, str], Awaitable[bool]]


class LocalTime(NamedTuple):
    local_date: date
    hour: int
    minute: int
    weekday: int


# ===================================================================
# Pure Helpers
# ===================================================================

def get_local_time(now_utc: datetime, tz_name: str) -> LocalTime:
    """
    Convert an instant into calendar fields of an IANA timezone.

    Naive datetimes are treated as UTC.

    Raises:
        ZoneInfoNotFoundError: If tz_name is not a known IANA zone.
    """
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=timezone.utc)
    local = now_utc.astimezone(ZoneInfo(tz_name))
    return LocalTime(local.date(), local.hour, local.minute, local.weekday())


def is_within_window(
    hour: int,
    minute: int,
    target_hour: int,
    target_minute: int,
    window_minutes: int = WINDOW_MINUTES,
) -> bool:
    """True when hour:minute is at most window_minutes from the target."""
    total = hour * 60 + minute
    target = target_hour * 60 + target_minute
    return abs(total - target) <= window_minutes


def is_already_entitled(status: str | None, entitlement_status: str | None) -> bool:
    """
    Whether a subscriber already has paid access (no free-Friday prompt).

    Both conditions must hold: the subscription status is an entitled one,
    and the entitlement status is an entitled one. An empty entitlement
    status falls back to the subscription status alone.
    """
    status = (status or "").lower()
    entitlement = (entitlement_status or "").lower()

    has_active_status = status in ENTITLED_STATUSES
    if entitlement:
        has_active_entitlement = entitlement in ENTITLED_ENTITLEMENTS
    else:
        has_active_entitlement = has_active_status
    return has_active_status and has_active_entitlement


def parse_notification_type(value: str | None) -> NotificationType:
    """Parse the ?type= query value, defaulting to morning."""
    try:
        return NotificationType(value or NotificationType.MORNING.value)
    except ValueError:
        raise ValidationError(
            f"Unknown notification type: {value!r}. "
            f"Expected one of: {', '.join(t.value for t in NotificationType)}"
        )


# ===================================================================
# Dispatch
# ===================================================================

async def dispatch_push(user_id: str, title: str, body: str) -> bool:
    """
    Ask the dispatcher to deliver a push. Returns True on success.

    Delivers in process unless PUSH_DISPATCH_URL is set, in which case the
    send-push endpoint at that URL is called with the service credential.
    Success means the dispatcher accepted the request, even if the user
    has no devices.
    """
    try:
        if PUSH_DISPATCH_URL:
            await _dispatch_remote(user_id, title, body)
        else:
            await deliver_push_to_user(user_id, title, body)
    except GatewayError as exc:
        logger.warning(
            "Dispatch rejected for user %s (HTTP %d): %s",
            user_id[:8], exc.upstream_status, exc.body[:200],
        )
        return False
    except (PushServiceError, httpx.HTTPError) as exc:
        logger.warning("Dispatch failed for user %s: %s", user_id[:8], exc)
        return False
    return True


async def _dispatch_remote(user_id: str, title: str, body: str) -> None:
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
        response = await client.post(
            PUSH_DISPATCH_URL,
            headers={"Authorization": f"Bearer {SUPABASE_SERVICE_ROLE_KEY}"},
            json={"userId": user_id, "title": title, "body": body},
        )

    if not response.is_success:
        raise GatewayError(
            f"send-push returned HTTP {response.status_code}",
            upstream_status=response.status_code,
            body=response.text,
        )


# ===================================================================
# Scheduler Run
# ===================================================================

async def _process_subscriber(
    client: Client,
    subscriber: Subscriber,
    notification_type: NotificationType,
    now_utc: datetime,
    dispatch: Dispatcher,
) -> bool:
    """
    Evaluate one subscriber and send if eligible.

    Returns True when a push was dispatched. Store failures propagate as
    StoreError except the final log write, which is logged only.
    """
    user_id = subscriber.user_id
    tz_name = subscriber.timezone
    if not tz_name:
        return False

    local = get_local_time(now_utc, tz_name)
    target_hour, target_minute = TARGET_TIMES[notification_type]
    if not is_within_window(local.hour, local.minute, target_hour, target_minute):
        return False

    local_date = local.local_date.isoformat()
    if has_delivery(client, user_id, notification_type.value, local_date):
        logger.debug(
            "User %s already received %s push for %s",
            user_id[:8], notification_type.value, local_date,
        )
        return False

    if notification_type is NotificationType.FRIDAY:
        if local.weekday != FRIDAY:
            return False
        if is_already_entitled(subscriber.status, subscriber.entitlement_status):
            logger.debug("User %s is entitled — no free Friday push", user_id[:8])
            return False

    if notification_type is NotificationType.EVENING:
        if has_answered_today(client, user_id, tz_name):
            logger.debug("User %s already answered today", user_id[:8])
            return False

    title, body = NOTIFICATION_CONTENT[notification_type]
    if not await dispatch(user_id, title, body):
        return False

    # The push already went out; a failed write here risks one duplicate
    # on the next run and is not rolled back.
    try:
        record_delivery(client, user_id, notification_type.value, local_date)
    except PushServiceError as exc:
        logger.error(
            "Push sent to user %s but delivery log write failed: %s",
            user_id[:8], exc,
        )
    return True


async def run_push_scheduler(
    notification_type: NotificationType,
    now_utc: datetime | None = None,
    *,
    client: Client | None = None,
    dispatch: Dispatcher | None = None,
) -> SchedulerRunResponse:
    """
    Run one scheduler pass over all subscribers for a notification type.

    Args:
        notification_type: morning, evening, or friday.
        now_utc: Current instant (injectable for testing). Defaults to now().
        client: Supabase client (defaults to the service client).
        dispatch: Push dispatcher (defaults to dispatch_push).

    Returns:
        SchedulerRunResponse with the number of users notified.

    Raises:
        ConfigurationError: If Supabase is not configured.
        StoreError: If the subscriber list cannot be loaded.
    """
    if now_utc is None:
        now_utc = datetime.now(timezone.utc)
    if client is None:
        validate_supabase_config()
        client = get_service_client()
    if dispatch is None:
        dispatch = dispatch_push

    subscribers = fetch_subscribers(client)
    sent_count = 0

    for subscriber in subscribers:
        try:
            if await _process_subscriber(
                client, subscriber, notification_type, now_utc, dispatch,
            ):
                sent_count += 1
        except (PushServiceError, ZoneInfoNotFoundError, ValueError) as exc:
            logger.warning(
                "Skipping user %s for %s push: %s",
                subscriber.user_id[:8], notification_type.value, exc,
            )
            continue

    logger.info(
        "Push scheduler sent %d %s notifications across %d subscribers",
        sent_count, notification_type.value, len(subscribers),
    )
    return SchedulerRunResponse(sent=sent_count, type=notification_type)
