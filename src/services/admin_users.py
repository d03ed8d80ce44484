"""Admin user approval - list pending accounts and promote them to buyer."""

import json
import os
from typing import Optional

from pydantic import ValidationError

from src.models.admin_users import ApprovalResponse, ApproveUserRequest, PendingUsersResponse
from src.models.profile import Profile, Role
from src.services.mailer import render_approval_email, send_email
from src.services.roles import PROFILE_COLUMNS
from src.services.supabase_client import (
    SupabaseClient,
    execute_query,
    first_row,
    get_session_from_token,
)
from src.utils.errors import (
    AuthenticationError,
    AuthorizationError,
    EmailError,
    InputValidationError,
    SupabaseError,
)
from src.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

REQUIRED_ENV = ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY")


def missing_env() -> list[str]:
    return [name for name in REQUIRED_ENV if not os.environ.get(name, "").strip()]


def parse_bearer_token(authorization: Optional[str]) -> str:
    header = authorization or ""
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return ""


async def require_admin(authorization: Optional[str]) -> Profile:
    """
    Authenticate the caller and confirm admin rights server-side.

    The role is always re-read with the service client; nothing the client
    asserts about itself is trusted.
    """
    token = parse_bearer_token(authorization)
    if not token:
        raise AuthenticationError("Missing Authorization Bearer token")

    session = await get_session_from_token(token)

    async with SupabaseClient() as sb:
        try:
            result = await execute_query(
                sb.table("profiles").select(PROFILE_COLUMNS).eq("user_id", session.user_id).limit(1)
            )
        except Exception as e:
            raise SupabaseError(str(e))

    row = first_row(result)
    me = Profile.model_validate(row) if row else None
    if me is None or me.effective_role != Role.ADMIN:
        logger.warning("Non-admin caller rejected", user_id=mask_user_id(session.user_id))
        raise AuthorizationError("Forbidden")
    return me


async def list_pending_users() -> PendingUsersResponse:
    async with SupabaseClient() as sb:
        try:
            result = await execute_query(
                sb.table("profiles")
                .select(PROFILE_COLUMNS)
                .eq("role", Role.PENDING.value)
                .order("created_at", desc=False)
            )
        except Exception as e:
            raise SupabaseError(str(e))
    return PendingUsersResponse(users=[Profile.model_validate(row) for row in result.data or []])


async def approve_user(user_id: str) -> ApprovalResponse:
    """
    Flip a pending profile to buyer, then try to send the approval email.

    Only pending rows are touched; any other target comes back with
    ``approved`` set to None and no email.

    Email failure never undoes the approval; it is reported in ``email_error``.
    """
    with log_timing("approve_user", logger=logger, user_id=mask_user_id(user_id)):
        async with SupabaseClient() as sb:
            try:
                result = await execute_query(
                    sb.table("profiles")
                    .update({"role": Role.BUYER.value})
                    .eq("user_id", user_id)
                    .eq("role", Role.PENDING.value)
                )
            except Exception as e:
                raise SupabaseError(str(e))

        row = first_row(result)
        response = ApprovalResponse(approved=Profile.model_validate(row) if row else None)

        if response.approved and response.approved.email:
            subject, html = render_approval_email(response.approved)
            try:
                await send_email(response.approved.email, subject, html)
                response.email_sent = True
            except EmailError as e:
                response.email_error = str(e)
                logger.warning(
                    "Approval email failed",
                    user_id=mask_user_id(user_id),
                    error=str(e)
                )

    return response


def parse_approve_body(raw_body: Optional[bytes]) -> ApproveUserRequest:
    try:
        body = json.loads(raw_body) if raw_body else {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = {}
    try:
        return ApproveUserRequest.model_validate(body if isinstance(body, dict) else {})
    except ValidationError:
        raise InputValidationError("Missing body.user_id")


async def handle_admin_users(
    method: str,
    authorization: Optional[str],
    raw_body: Optional[bytes] = None,
) -> tuple[int, dict]:
    """Route one admin-users request to (status code, JSON body)."""
    missing = missing_env()
    if missing:
        return 500, {"error": f"Missing env vars. Need {', '.join(REQUIRED_ENV)}"}

    try:
        await require_admin(authorization)

        if method == "GET":
            return 200, (await list_pending_users()).model_dump(mode="json")

        if method == "POST":
            request = parse_approve_body(raw_body)
            return 200, (await approve_user(request.user_id)).model_dump(mode="json")

        return 405, {"error": "Method not allowed"}

    except AuthenticationError as e:
        return 401, {"error": str(e)}
    except AuthorizationError as e:
        return 403, {"error": str(e)}
    except InputValidationError as e:
        return 400, {"error": str(e)}
    except SupabaseError as e:
        return 500, {"error": str(e)}
