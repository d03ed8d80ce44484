"""Buyer offers page - a buyer's own offer history tabbed by status."""

from enum import Enum
from typing import Callable, Optional

from supabase import Client

from src.models.offer import OfferStatus, OfferWithProperty
from src.services.events import OFFERS_CHANGED, EventBus, get_event_bus
from src.services.supabase_client import SupabaseClient, execute_query
from src.utils.errors import SupabaseError
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

OFFER_WITH_PROPERTY_COLUMNS = (
    "id,property_id,user_id,offer_price,notes,status,created_at,updated_at,"
    "property:properties!offers_property_id_fkey("
    "id,address,price,beds,baths,sqft,acres,arv,repairs,lat,lng,photo_url,status,created_at,"
    "offer_deadline,is_accepting_offers,accepted_offer_id)"
)


class OfferTab(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# Withdrawn offers are deleted, so they never show up here
VISIBLE_STATUSES = [tab.value for tab in OfferTab]


async def fetch_my_offers(user_id: str, client: Optional[Client] = None) -> list[OfferWithProperty]:
    """The caller's offers with their properties, newest first."""
    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(
                sb.table("offers")
                .select(OFFER_WITH_PROPERTY_COLUMNS)
                .eq("user_id", user_id)
                .in_("status", VISIBLE_STATUSES)
                .order("created_at", desc=True)
            )
        except Exception as e:
            raise SupabaseError(f"Failed to fetch offers: {e}")
        return [OfferWithProperty.model_validate(row) for row in result.data or []]


def offers_for_tab(offers: list[OfferWithProperty], tab: OfferTab) -> list[OfferWithProperty]:
    status = OfferStatus(tab.value)
    return [o for o in offers if o.status == status]


def summarize(offers: list[OfferWithProperty]) -> dict[str, int]:
    return {tab.value: len(offers_for_tab(offers, tab)) for tab in OfferTab}


class BuyerOffersPage:
    """State behind the My Offers page. Refetches whenever offers change.

    Subscribes to offers-changed on construction. Use it as an async context
    manager (loads on entry, unsubscribes on exit) or call ``close()``.
    """

    def __init__(self, user_id: str, client: Optional[Client] = None, bus: Optional[EventBus] = None):
        self.user_id = user_id
        self.client = client
        self.offers: list[OfferWithProperty] = []
        self.tab = OfferTab.PENDING
        self.fetching = False
        self.error: Optional[str] = None
        bus = bus or get_event_bus()
        self._unsubscribe: Optional[Callable[[], None]] = bus.subscribe(OFFERS_CHANGED, self.load)

    async def load(self) -> None:
        self.fetching = True
        self.error = None
        try:
            self.offers = await fetch_my_offers(self.user_id, self.client)
        except SupabaseError as e:
            logger.warning("Offer history load failed", user_id=mask_user_id(self.user_id), error=str(e))
            self.offers = []
            self.error = str(e)
        finally:
            self.fetching = False

    def visible(self) -> list[OfferWithProperty]:
        return offers_for_tab(self.offers, self.tab)

    def summary(self) -> dict[str, int]:
        return summarize(self.offers)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def __aenter__(self) -> "BuyerOffersPage":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
