"""Admin console - property CRUD, offer review and acceptance, pending inbox, user approval."""

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from supabase import Client

from src.models.admin_users import ApprovalResponse, PendingUsersResponse
from src.models.offer import Offer, OfferStatus, OfferWithProperty
from src.models.profile import Profile
from src.models.property import Property, PropertyDraft, PropertyStatus
from src.services.buyer_offers import OFFER_WITH_PROPERTY_COLUMNS
from src.services.deal_sheet import OFFER_COLUMNS
from src.services.events import OFFERS_CHANGED, USERS_CHANGED, EventBus, get_event_bus
from src.services.listings import fetch_properties, map_property_row
from src.services.supabase_client import SupabaseClient, execute_query, first_row
from src.utils.errors import InputValidationError, SupabaseError, WholesaleError
from src.utils.formatting import short_id
from src.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

CREATE_PROPERTY_ERROR = "Please fill all required fields with valid numbers."


# Properties

async def create_property(form: dict[str, Any], client: Optional[Client] = None) -> Property:
    """Validate the admin form and insert a new listing."""
    try:
        draft = PropertyDraft.model_validate(form)
    except ValidationError:
        raise InputValidationError(CREATE_PROPERTY_ERROR)

    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(sb.table("properties").insert(draft.to_row()))
        except Exception as e:
            raise SupabaseError(f"Failed to create property: {e}")

    row = first_row(result)
    if row is None:
        raise SupabaseError("Failed to create property: no data returned")

    logger.info("Property created", property_id=row.get("id"), address=draft.address)
    return map_property_row(row)


async def delete_property(property_id: str, client: Optional[Client] = None) -> None:
    async with SupabaseClient(client) as sb:
        try:
            await execute_query(sb.table("properties").delete().eq("id", property_id))
        except Exception as e:
            raise SupabaseError(f"Failed to delete property: {e}")
    logger.info("Property deleted", property_id=property_id)


def pick_selection(properties: list[Property], selected_id: Optional[str]) -> Optional[str]:
    """Keep the current selection if it still exists, otherwise fall back to the first row."""
    if not properties:
        return None
    if selected_id and any(p.id == selected_id for p in properties):
        return selected_id
    return properties[0].id


# Offers

async def list_property_offers(property_id: str, client: Optional[Client] = None) -> list[Offer]:
    """All offers on a property, oldest first."""
    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(
                sb.table("offers")
                .select(OFFER_COLUMNS)
                .eq("property_id", property_id)
                .order("created_at", desc=False)
            )
        except Exception as e:
            raise SupabaseError(f"Failed to fetch offers: {e}")
        return [Offer.model_validate(row) for row in result.data or []]


async def fetch_pending_inbox(client: Optional[Client] = None) -> list[OfferWithProperty]:
    """Every pending offer across all properties, newest first."""
    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(
                sb.table("offers")
                .select(OFFER_WITH_PROPERTY_COLUMNS)
                .eq("status", OfferStatus.PENDING.value)
                .order("created_at", desc=True)
            )
        except Exception as e:
            raise SupabaseError(f"Failed to fetch pending offers: {e}")
        return [OfferWithProperty.model_validate(row) for row in result.data or []]


@dataclass
class AcceptResult:
    offer_id: str
    property_id: str
    accepted: bool = False
    rejected_others: bool = False
    property_locked: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def accept_offer(
    property_id: str,
    offer_id: str,
    client: Optional[Client] = None,
    bus: Optional[EventBus] = None,
) -> AcceptResult:
    """
    Accept one offer and lock the property.

    Three sequential writes: accept the chosen offer, reject the other pending
    offers on the property, then mark the property Under Contract. A failed
    step stops the sequence and is reported in ``error``; earlier steps stay
    committed.
    """
    outcome = AcceptResult(offer_id=offer_id, property_id=property_id)

    with log_timing("accept_offer", logger=logger, property_id=property_id, offer_id=offer_id):
        async with SupabaseClient(client) as sb:
            try:
                await execute_query(
                    sb.table("offers").update({"status": OfferStatus.ACCEPTED.value}).eq("id", offer_id)
                )
                outcome.accepted = True

                await execute_query(
                    sb.table("offers")
                    .update({"status": OfferStatus.REJECTED.value})
                    .eq("property_id", property_id)
                    .neq("id", offer_id)
                    .eq("status", OfferStatus.PENDING.value)
                )
                outcome.rejected_others = True

                await execute_query(
                    sb.table("properties")
                    .update({
                        "status": PropertyStatus.UNDER_CONTRACT.value,
                        "accepted_offer_id": offer_id,
                        "is_accepting_offers": False,
                    })
                    .eq("id", property_id)
                )
                outcome.property_locked = True
            except Exception as e:
                outcome.error = str(e)
                logger.error(
                    "Offer acceptance stopped partway",
                    property_id=property_id,
                    offer_id=offer_id,
                    accepted=outcome.accepted,
                    rejected_others=outcome.rejected_others,
                    error=str(e)
                )

    if outcome.accepted:
        await (bus or get_event_bus()).dispatch(OFFERS_CHANGED)
    return outcome


@dataclass
class ConsoleSnapshot:
    properties: list[Property] = field(default_factory=list)
    inbox: list[OfferWithProperty] = field(default_factory=list)
    error: Optional[str] = None


async def refresh_console(client: Optional[Client] = None) -> ConsoleSnapshot:
    """Reload the property list and the pending inbox concurrently."""
    properties, inbox = await asyncio.gather(
        fetch_properties(client),
        fetch_pending_inbox(client),
        return_exceptions=True,
    )

    snapshot = ConsoleSnapshot()
    errors = []
    if isinstance(properties, Exception):
        errors.append(str(properties))
    else:
        snapshot.properties = properties
    if isinstance(inbox, Exception):
        errors.append(str(inbox))
    else:
        snapshot.inbox = inbox
    if errors:
        snapshot.error = "; ".join(errors)
    return snapshot


# Pending users

def approval_message(
    user_id: str,
    approved: Optional[Profile],
    email_sent: bool,
    email_error: Optional[str],
) -> str:
    name = (approved.display_name() if approved else None) or short_id(user_id)
    if email_sent:
        return f"Approved {name}. Approval email sent."
    if email_error:
        return f"Approved {name}. Email not sent ({email_error})."
    return f"Approved {name}."


def admin_users_url() -> str:
    url = os.environ.get("ADMIN_USERS_URL", "").strip()
    if url:
        return url
    base = os.environ.get("APP_BASE_URL", "").rstrip("/")
    return f"{base}/api/admin_users"


class AdminUsersClient:
    """Console-side caller of the admin users endpoint, authenticated as the admin."""

    def __init__(
        self,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
        bus: Optional[EventBus] = None,
    ):
        self.access_token = access_token
        self.http_client = http_client
        self.bus = bus or get_event_bus()

    async def _request(self, method: str, body: Optional[dict] = None) -> dict:
        if not self.access_token:
            raise WholesaleError("No session")

        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        owns_client = self.http_client is None
        client = self.http_client or httpx.AsyncClient()
        try:
            response = await client.request(method, admin_users_url(), json=body, headers=headers)
        except httpx.HTTPError as e:
            raise WholesaleError(f"Request failed: {e}")
        finally:
            if owns_client:
                await client.aclose()

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code >= 400:
            raise WholesaleError(data.get("error") or f"Request failed ({response.status_code})")
        return data

    async def list_pending(self) -> list[Profile]:
        data = await self._request("GET")
        return PendingUsersResponse.model_validate({"users": data.get("users") or []}).users

    async def approve(self, user_id: str) -> tuple[ApprovalResponse, str]:
        """Approve a pending user; return the response and a display message."""
        data = await self._request("POST", {"user_id": user_id})
        response = ApprovalResponse.model_validate(data)
        message = approval_message(user_id, response.approved, response.email_sent, response.email_error)
        logger.info(
            "Pending user approved",
            user_id=mask_user_id(user_id),
            email_sent=response.email_sent
        )
        await self.bus.dispatch(USERS_CHANGED)
        return response, message
