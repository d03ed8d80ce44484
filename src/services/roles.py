"""Role resolution - map an authenticated user to admin, buyer or pending."""

from typing import Optional

from supabase import Client

from src.models.profile import Profile, Role
from src.services.supabase_client import SupabaseClient, execute_query, first_row
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

PROFILE_COLUMNS = "user_id,role,is_admin,email,first_name,last_name,phone,created_at"


async def fetch_profile(user_id: str, client: Optional[Client] = None) -> Optional[Profile]:
    """Read the caller's profile row. Errors propagate."""
    async with SupabaseClient(client) as sb:
        result = await execute_query(
            sb.table("profiles").select(PROFILE_COLUMNS).eq("user_id", user_id).limit(1)
        )
        row = first_row(result)
        return Profile.model_validate(row) if row else None


async def resolve_role(user_id: Optional[str], client: Optional[Client] = None) -> Role:
    """
    Resolve the effective role for a user.

    Fails closed: no user, no profile row, or any read error yields PENDING.
    """
    if not user_id:
        return Role.PENDING

    try:
        profile = await fetch_profile(user_id, client)
    except Exception as e:
        logger.warning(
            "Role lookup failed, defaulting to pending",
            user_id=mask_user_id(user_id),
            error=str(e)
        )
        return Role.PENDING

    if profile is None:
        logger.info("No profile row, defaulting to pending", user_id=mask_user_id(user_id))
        return Role.PENDING

    return profile.effective_role


async def is_admin(user_id: Optional[str], client: Optional[Client] = None) -> bool:
    return await resolve_role(user_id, client) == Role.ADMIN
