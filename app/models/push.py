"""
Push Models — Pydantic schemas for the push scheduler and send-push endpoints.

Request field names follow the JSON the scheduler sends
({userId, title, body}); Python attributes are snake_case.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Kinds of scheduled reminder, one per delivery window."""
    MORNING = "morning"
    EVENING = "evening"
    FRIDAY = "friday"


class Subscriber(BaseModel):
    """A row from user_subscriptions as read by the scheduler."""
    user_id: str = Field(..., description="UUID of the subscribed user.")
    timezone: str | None = Field(
        default=None,
        description="IANA timezone name (e.g., 'America/New_York').",
    )
    status: str | None = Field(
        default=None,
        description="Subscription status: active, trialing, past_due, paused, ...",
    )
    entitlement_status: str | None = Field(
        default=None,
        description="Store entitlement: active, billing_issue, paused, or empty.",
    )


class SendPushRequest(BaseModel):
    """Body of POST /api/v1/push/send."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)


class SendPushResponse(BaseModel):
    """Result of a dispatch: tokens notified out of tokens on file."""
    sent: int = Field(..., description="Tokens APNs accepted.")
    total: int = Field(..., description="Tokens registered for the user.")


class SchedulerRunResponse(BaseModel):
    """Result of one scheduler pass."""
    sent: int = Field(..., description="Users notified during this run.")
    type: NotificationType = Field(..., description="Notification type processed.")


class ErrorResponse(BaseModel):
    """Body of every error response."""
    error: str
