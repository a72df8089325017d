"""
Supabase Client

Provides the initialized service-role Supabase client for the push
service. Both the scheduler and the dispatcher read across all users,
so there is no anon (RLS-respecting) client here.
"""

from supabase import Client, create_client
from supabase.client import ClientOptions

from app.core.config import (
    HTTP_TIMEOUT_SECONDS,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
    validate_supabase_config,
)

# Module-level client — initialized lazily
_service_client: Client | None = None


def get_service_client() -> Client:
    """
    Get the Supabase client using the service_role (admin) key.

    WARNING: This client BYPASSES Row Level Security.
    PostgREST calls are bounded by HTTP_TIMEOUT_SECONDS.

    Raises:
        ConfigurationError: If SUPABASE_URL or the service role key is missing.
    """
    global _service_client
    if _service_client is None:
        validate_supabase_config()
        _service_client = create_client(
            SUPABASE_URL,
            SUPABASE_SERVICE_ROLE_KEY,
            options=ClientOptions(postgrest_client_timeout=HTTP_TIMEOUT_SECONDS),
        )
    return _service_client
