"""
APNs Push Notification Service — Apple Push Notification delivery.

Sends alert notifications to every iOS device a user has registered.

APNs requires:
1. A .p8 private key from Apple Developer (ES256), see apns_token
2. Key ID, Team ID, and Bundle ID from the Apple Developer portal
3. HTTP/2 connection to api.push.apple.com (or sandbox)
"""

import asyncio
import logging

import httpx

from app.core.config import (
    APNS_BUNDLE_ID,
    APNS_USE_SANDBOX,
    HTTP_TIMEOUT_SECONDS,
    validate_apns_config,
)
from app.db.push_store import fetch_device_tokens
from app.db.supabase_client import get_service_client
from app.models.push import SendPushResponse
from app.services.apns_token import ApnsTokenCache, get_token_cache

logger = logging.getLogger(__name__)

# APNs endpoints
APNS_PRODUCTION_URL = "https://api.push.apple.com"
APNS_SANDBOX_URL = "https://api.sandbox.push.apple.com"


# ===================================================================
# Notification Payload Builder
# ===================================================================

def build_alert_payload(title: str, body: str) -> dict:
    """Build the APNs alert payload with the default sound."""
    return {
        "aps": {
            "alert": {
                "title": title,
                "body": body,
            },
            "sound": "default",
        },
    }


def device_url(device_token: str) -> str:
    """APNs endpoint for a device, honoring APNS_USE_SANDBOX."""
    base_url = APNS_SANDBOX_URL if APNS_USE_SANDBOX else APNS_PRODUCTION_URL
    return f"{base_url}/3/device/{device_token}"


# ===================================================================
# Push Notification Delivery
# ===================================================================

async def send_push_notification(
    client: httpx.AsyncClient,
    device_token: str,
    payload: dict,
    provider_token: str,
) -> dict:
    """
    Send a push notification to a single device via APNs.

    Args:
        client: Shared HTTP/2 client for this dispatch.
        device_token: Hex-encoded APNs device token.
        payload: The notification payload dict (from build_alert_payload).
        provider_token: Signed APNs JWT for the Authorization header.

    Returns:
        dict with keys:
        - success (bool): Whether the notification was accepted.
        - apns_id (str | None): The APNs-assigned notification ID.
        - status_code (int): HTTP status code from APNs (0 on transport error).
        - reason (str | None): Error reason if failed.
    """
    url = device_url(device_token)
    headers = {
        "authorization": f"bearer {provider_token}",
        "apns-topic": APNS_BUNDLE_ID,
        "apns-push-type": "alert",
        "apns-priority": "10",
    }

    try:
        response = await client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        logger.warning(
            "APNs request failed: endpoint=%s, device=%s..., error=%r",
            url.rsplit("/", 1)[0],
            device_token[:16],
            exc,
        )
        return {
            "success": False,
            "apns_id": None,
            "status_code": 0,
            "reason": f"request_failed: {exc!r}",
        }

    apns_id = response.headers.get("apns-id")

    if response.is_success:
        logger.info(
            "Push notification delivered: apns_id=%s, device=%s...",
            apns_id,
            device_token[:16],
        )
        return {
            "success": True,
            "apns_id": apns_id,
            "status_code": response.status_code,
            "reason": None,
        }

    # Parse error response
    try:
        reason = response.json().get("reason")
    except ValueError:
        reason = response.text or f"HTTP {response.status_code}"

    logger.warning(
        "APNs delivery failed: endpoint=%s, status=%d, reason=%s, body=%s, device=%s...",
        url.rsplit("/", 1)[0],
        response.status_code,
        reason,
        response.text,
        device_token[:16],
    )

    return {
        "success": False,
        "apns_id": apns_id,
        "status_code": response.status_code,
        "reason": reason,
    }


# ===================================================================
# High-Level Delivery (DB Lookup + Fan-out)
# ===================================================================

async def deliver_push_to_user(
    user_id: str,
    title: str,
    body: str,
    *,
    token_cache: ApnsTokenCache | None = None,
) -> SendPushResponse:
    """
    Look up every device token of a user and push the alert to each.

    Sends run concurrently over one HTTP/2 connection. A rejected or
    failed send is logged and counted as not sent; it never cancels the
    other sends and is not retried.

    Args:
        user_id: UUID of the user to notify.
        title: Alert title.
        body: Alert body.
        token_cache: Provider token cache (defaults to the process-wide one).

    Returns:
        SendPushResponse with sent (accepted by APNs) and total (tokens on file).

    Raises:
        ConfigurationError: If Supabase or APNs settings are missing.
        StoreError: If the device token lookup fails.
    """
    validate_apns_config()
    tokens = fetch_device_tokens(get_service_client(), user_id)

    if not tokens:
        logger.info(
            "No device tokens registered for user %s — skipping push delivery",
            user_id[:8],
        )
        return SendPushResponse(sent=0, total=0)

    cache = token_cache or get_token_cache()
    provider_token = cache.get_token()
    payload = build_alert_payload(title, body)

    async with httpx.AsyncClient(http2=True, timeout=HTTP_TIMEOUT_SECONDS) as client:
        results = await asyncio.gather(
            *(
                send_push_notification(client, token, payload, provider_token)
                for token in tokens
            ),
            return_exceptions=True,
        )

    sent = 0
    for token, result in zip(tokens, results):
        if isinstance(result, BaseException):
            logger.warning(
                "Push to device %s... raised unexpectedly: %r", token[:16], result
            )
        elif result["success"]:
            sent += 1
    logger.info(
        "Delivered push to user %s: %d/%d devices", user_id[:8], sent, len(tokens)
    )
    return SendPushResponse(sent=sent, total=len(tokens))
