"""
Errors — Exception taxonomy for the push service.

Each error carries the HTTP status it maps to. The API layer does not
build error bodies itself; app.main registers a handler that renders
any PushServiceError as {"error": "<message>"}.
"""

from fastapi import status


class PushServiceError(Exception):
    """Base class for all push service errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


class ConfigurationError(PushServiceError, EnvironmentError):
    """Required settings are missing. Fatal for the whole invocation."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class AuthorizationError(PushServiceError):
    """Missing or mismatched service credential."""

    status_code = status.HTTP_401_UNAUTHORIZED


class MethodNotAllowedError(PushServiceError):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED


class ValidationError(PushServiceError):
    """Malformed request (missing fields, unknown notification type)."""

    status_code = status.HTTP_400_BAD_REQUEST


class StoreError(PushServiceError):
    """A Supabase query, insert, or RPC failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class GatewayError(PushServiceError):
    """
    A push gateway (APNs or a remote send-push endpoint) rejected a request.

    Keeps the HTTP status and response body so they can be logged.
    """

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, *, upstream_status: int = 0, body: str = ""):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body
