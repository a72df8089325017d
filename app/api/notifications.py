"""
Push API — Scheduler trigger and send-push dispatcher endpoints.

GET|POST /api/v1/push/scheduler?type=morning|evening|friday
    Called by the cron trigger. Runs one scheduler pass.

POST /api/v1/push/send
    Internal dispatcher. Requires the service role key as a Bearer token
    and a JSON body {userId, title, body}.

Errors are raised as PushServiceError subclasses and rendered as
{"error": "..."} by the handler in app.main.
"""

import json
import logging

from fastapi import APIRouter, Request, status
from pydantic import ValidationError as PydanticValidationError

from app.core.config import validate_apns_config, validate_supabase_config
from app.core.errors import MethodNotAllowedError, ValidationError
from app.core.security import require_service_credential
from app.models.push import (
    ErrorResponse,
    SchedulerRunResponse,
    SendPushRequest,
    SendPushResponse,
)
from app.services.apns import deliver_push_to_user
from app.services.notification_scheduler import (
    parse_notification_type,
    run_push_scheduler,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/push", tags=["push"])


# ===================================================================
# /api/v1/push/scheduler — Cron Trigger
# ===================================================================

@router.api_route(
    "/scheduler",
    methods=["GET", "POST"],
    status_code=status.HTTP_200_OK,
    response_model=SchedulerRunResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def trigger_push_scheduler(request: Request) -> SchedulerRunResponse:
    """
    Run the push scheduler for one notification type.

    Returns:
        200: {"sent": <int>, "type": <str>}
        400: Unknown notification type.
        500: Supabase not configured, or the subscriber query failed.
    """
    validate_supabase_config()
    notification_type = parse_notification_type(request.query_params.get("type"))

    logger.info("Push scheduler triggered for type=%s", notification_type.value)
    return await run_push_scheduler(notification_type)


# ===================================================================
# /api/v1/push/send — Dispatcher
# ===================================================================

# Every method is routed here so that authentication is checked before
# the method, and a bad credential is always a 401 {"error"}.
@router.api_route(
    "/send",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    status_code=status.HTTP_200_OK,
    response_model=SendPushResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        405: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def send_push(request: Request) -> SendPushResponse:
    """
    Deliver an alert to every registered device of a user.

    Returns:
        200: {"sent": <int>, "total": <int>}
        400: userId, title, or body missing or empty.
        401: Authorization header does not carry the service credential.
        405: Method other than POST.
        500: Configuration missing, or the device token lookup failed.
    """
    validate_supabase_config()
    validate_apns_config()

    require_service_credential(request.headers.get("Authorization"))

    if request.method != "POST":
        raise MethodNotAllowedError("Method not allowed")

    try:
        payload = SendPushRequest.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError) as exc:
        logger.info("Rejected send-push request: %s", exc)
        raise ValidationError("Missing fields")

    return await deliver_push_to_user(payload.user_id, payload.title, payload.body)
