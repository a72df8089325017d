"""
Security — Service credential check for internal endpoints.

The send-push endpoint is only called by the scheduler (or other
trusted backend jobs), never by the app. Callers authenticate with the
Supabase service role key as a Bearer token.

Usage in route handlers:
    from app.core.security import require_service_credential

    require_service_credential(request.headers.get("Authorization"))
"""

import hmac

from app.core.config import SUPABASE_SERVICE_ROLE_KEY
from app.core.errors import AuthorizationError


def require_service_credential(authorization: str | None) -> None:
    """
    Verify that the Authorization header carries the service credential.

    The header must equal "Bearer <SUPABASE_SERVICE_ROLE_KEY>" exactly.
    Comparison is constant-time.

    Raises:
        AuthorizationError: If the header is missing or does not match.
    """
    expected = f"Bearer {SUPABASE_SERVICE_ROLE_KEY}"
    provided = authorization or ""

    if not SUPABASE_SERVICE_ROLE_KEY or not hmac.compare_digest(
        provided.encode(), expected.encode()
    ):
        raise AuthorizationError("Unauthorized")
