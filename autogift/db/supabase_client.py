"""
Supabase Client

Provides the service-role Supabase client used by the auto-gift
pipeline, which reads and writes rules, executions and address tokens
across users. End-user auth goes through core/security.py instead.
"""

from supabase import create_client, Client
from postgrest.exceptions import APIError

from autogift.core.config import (
    SUPABASE_URL,
    SUPABASE_SERVICE_ROLE_KEY,
    validate_supabase_config,
)

# Postgres error code for unique_violation
UNIQUE_VIOLATION = "23505"

# Module-level client — initialized lazily
_service_client: Client | None = None


def get_service_client() -> Client:
    """
    Get the Supabase client using the service_role (admin) key.

    WARNING: This client BYPASSES Row Level Security.
    Only the pipeline stores use it; route handlers must check
    ownership themselves before acting on a row.
    """
    global _service_client
    if _service_client is None:
        validate_supabase_config()
        _service_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
    return _service_client


def is_unique_violation(exc: Exception) -> bool:
    """True if a PostgREST error was raised by a unique constraint."""
    return isinstance(exc, APIError) and exc.code == UNIQUE_VIOLATION
