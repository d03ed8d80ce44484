"""Deal sheet - per-property save/unsave and offer submit/withdraw for a buyer."""

import math
from datetime import datetime, timezone
from typing import Any, Optional

from supabase import Client

from src.models.offer import Offer, OfferStatus
from src.models.property import Property
from src.models.saved_property import SavedProperty
from src.services.events import OFFERS_CHANGED, SAVES_CHANGED, EventBus, get_event_bus
from src.services.supabase_client import SupabaseClient, execute_query, first_row
from src.utils.errors import InputValidationError, OfferClosedError, SupabaseError
from src.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

OFFER_COLUMNS = "id,property_id,user_id,offer_price,notes,status,created_at,updated_at"


def parse_offer_price(value: Any) -> float:
    """Coerce user input to a positive, finite price."""
    try:
        price = float(str(value).replace(",", "").replace("$", "").strip())
    except (TypeError, ValueError):
        raise InputValidationError("Enter a valid offer price.")
    if not math.isfinite(price) or price <= 0:
        raise InputValidationError("Enter a valid offer price.")
    return price


def check_offer_gate(prop: Property, now: Optional[datetime] = None) -> None:
    """Raise OfferClosedError when the already-fetched property refuses offers."""
    reason = prop.offers_closed_reason(now)
    if reason:
        raise OfferClosedError(reason)


async def is_saved(property_id: str, user_id: str, client: Optional[Client] = None) -> bool:
    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(
                sb.table("saved_properties")
                .select("property_id")
                .eq("user_id", user_id)
                .eq("property_id", property_id)
                .limit(1)
            )
        except Exception as e:
            raise SupabaseError(f"Failed to check saved property: {e}")
        return bool(result.data)


async def toggle_saved(
    property_id: str,
    user_id: str,
    client: Optional[Client] = None,
    bus: Optional[EventBus] = None,
) -> bool:
    """Save or unsave a property; return the new saved state."""
    currently_saved = await is_saved(property_id, user_id, client)

    async with SupabaseClient(client) as sb:
        table = sb.table("saved_properties")
        try:
            if currently_saved:
                await execute_query(
                    table.delete().eq("user_id", user_id).eq("property_id", property_id)
                )
            else:
                bookmark = SavedProperty(user_id=user_id, property_id=property_id)
                await execute_query(table.insert(bookmark.model_dump(exclude_none=True)))
        except Exception as e:
            raise SupabaseError(f"Failed to update saved property: {e}")

    logger.info(
        "Saved state toggled",
        property_id=property_id,
        user_id=mask_user_id(user_id),
        saved=not currently_saved
    )
    await (bus or get_event_bus()).dispatch(SAVES_CHANGED)
    return not currently_saved


async def find_existing_offer(
    property_id: str, user_id: str, client: Optional[Client] = None
) -> Optional[Offer]:
    """The caller's offer row on this property, if any."""
    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(
                sb.table("offers")
                .select(OFFER_COLUMNS)
                .eq("property_id", property_id)
                .eq("user_id", user_id)
                .limit(1)
            )
        except Exception as e:
            raise SupabaseError(f"Failed to load offer: {e}")
        row = first_row(result)
        return Offer.model_validate(row) if row else None


async def submit_offer(
    prop: Property,
    user_id: str,
    offer_price: Any,
    notes: Optional[str] = None,
    client: Optional[Client] = None,
    bus: Optional[EventBus] = None,
    now: Optional[datetime] = None,
) -> Offer:
    """
    Submit an offer, updating the caller's existing row instead of inserting a duplicate.

    The gate is evaluated against the property as already fetched; the store
    does not re-check it. An update resets the status to pending.
    """
    price = parse_offer_price(offer_price)
    check_offer_gate(prop, now)
    cleaned_notes = notes.strip() if notes and notes.strip() else None

    with log_timing(
        "submit_offer",
        logger=logger,
        property_id=prop.id,
        user_id=mask_user_id(user_id)
    ):
        existing = await find_existing_offer(prop.id, user_id, client)

        async with SupabaseClient(client) as sb:
            try:
                if existing:
                    result = await execute_query(
                        sb.table("offers")
                        .update({
                            "offer_price": price,
                            "notes": cleaned_notes,
                            "status": OfferStatus.PENDING.value,
                            "updated_at": (now or datetime.now(timezone.utc)).isoformat(),
                        })
                        .eq("id", existing.id)
                    )
                else:
                    result = await execute_query(
                        sb.table("offers").insert({
                            "property_id": prop.id,
                            "user_id": user_id,
                            "offer_price": price,
                            "notes": cleaned_notes,
                            "status": OfferStatus.PENDING.value,
                        })
                    )
            except Exception as e:
                raise SupabaseError(f"Failed to submit offer: {e}")

        row = first_row(result)
        if row is None:
            raise SupabaseError("Failed to submit offer: no data returned")

    logger.info(
        "Offer submitted",
        property_id=prop.id,
        user_id=mask_user_id(user_id),
        updated_existing=existing is not None
    )
    await (bus or get_event_bus()).dispatch(OFFERS_CHANGED)
    return Offer.model_validate(row)


async def withdraw_offer(
    property_id: str,
    user_id: str,
    client: Optional[Client] = None,
    bus: Optional[EventBus] = None,
) -> bool:
    """Delete the caller's offer row. Returns False when there was nothing to withdraw."""
    existing = await find_existing_offer(property_id, user_id, client)
    if existing is None:
        return False

    async with SupabaseClient(client) as sb:
        try:
            await execute_query(
                sb.table("offers").delete().eq("id", existing.id).eq("user_id", user_id)
            )
        except Exception as e:
            raise SupabaseError(f"Failed to withdraw offer: {e}")

    logger.info("Offer withdrawn", property_id=property_id, user_id=mask_user_id(user_id))
    await (bus or get_event_bus()).dispatch(OFFERS_CHANGED)
    return True
