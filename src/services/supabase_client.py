"""Supabase client wrapper with async context manager support."""

import asyncio
import os
from typing import Any, Optional

from supabase import create_client, Client
from supabase.client import ClientOptions

from src.models.session import Session
from src.utils.errors import AuthenticationError, SupabaseError
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

# Global service-role client (singleton pattern)
_client: Optional[Client] = None


def _require_env(*names: str) -> list[str]:
    values = [os.environ.get(name, "").strip() for name in names]
    missing = [name for name, value in zip(names, values) if not value]
    if missing:
        raise SupabaseError(f"{' and '.join(missing)} must be set")
    return values


def get_supabase_client() -> Client:
    """Get or create the service-role Supabase client singleton.

    The service role bypasses row-level security; only serverless handlers
    and admin tooling should reach for it.
    """
    global _client

    if _client is None:
        url, key = _require_env("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", url=url)

    return _client


def create_user_client(access_token: str) -> Client:
    """Create a client that acts as the bearer of ``access_token``.

    Queries go through row-level security as that user.
    """
    url, anon_key = _require_env("SUPABASE_URL", "SUPABASE_ANON_KEY")
    options = ClientOptions(
        auto_refresh_token=False,
        persist_session=False,
        headers={"Authorization": f"Bearer {access_token}"},
    )
    return create_client(url, anon_key, options)


async def close_supabase_client() -> None:
    """Drop the cached service-role client."""
    global _client
    if _client:
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager yielding a Supabase client.

    Pass an explicit client (usually from ``create_user_client``) to run as a
    user; otherwise the service-role singleton is used.
    """

    def __init__(self, client: Optional[Client] = None):
        self._override = client
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = self._override or get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                type=exc_type.__name__
            )
        return False


async def execute_query(query: Any) -> Any:
    """Run a built postgrest query off the event loop."""
    return await asyncio.to_thread(query.execute)


def first_row(result: Any) -> Optional[dict]:
    return result.data[0] if result.data and len(result.data) > 0 else None


async def get_session_from_token(access_token: str) -> Session:
    """Validate a bearer token against the auth service.

    Raises AuthenticationError when the token is missing, expired or unknown.
    """
    if not access_token:
        raise AuthenticationError("Missing Authorization Bearer token")

    try:
        client = create_user_client(access_token)
        response = await asyncio.to_thread(client.auth.get_user, access_token)
    except SupabaseError:
        raise
    except Exception as e:
        logger.warning("Session validation failed", error=str(e))
        raise AuthenticationError("Invalid session")

    user = getattr(response, "user", None)
    if user is None:
        raise AuthenticationError("Invalid session")

    return Session(user_id=user.id, access_token=access_token, email=user.email)


async def get_user_email(user_id: str) -> Optional[str]:
    """Look up a user's email through the auth admin API.

    Best effort: failures are logged and return None.
    """
    try:
        client = get_supabase_client()
        response = await asyncio.to_thread(client.auth.admin.get_user_by_id, user_id)
    except Exception as e:
        logger.warning(
            "Buyer email lookup failed",
            user_id=mask_user_id(user_id),
            error=str(e)
        )
        return None

    user = getattr(response, "user", None)
    return getattr(user, "email", None) if user else None
