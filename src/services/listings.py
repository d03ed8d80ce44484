"""Listing browser - property catalog with map/list views, sorting and the saved filter."""

from enum import Enum
from typing import Callable, Iterable, Optional

from pydantic import ValidationError
from supabase import Client

from src.models.property import Property, PropertyOfferCount, PropertyStatus
from src.models.saved_property import SavedProperty
from src.services.events import SAVES_CHANGED, EventBus, get_event_bus
from src.services.supabase_client import SupabaseClient, execute_query
from src.utils.errors import SupabaseError
from src.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

PROPERTY_COLUMNS = (
    "id,address,price,beds,baths,sqft,acres,arv,repairs,lat,lng,photo_url,status,"
    "created_at,offer_deadline,is_accepting_offers,accepted_offer_id"
)


class SortMode(str, Enum):
    NEWEST = "newest"
    PRICE = "price"
    SPREAD = "spread"


class FilterMode(str, Enum):
    ALL = "all"
    SAVED = "saved"


def map_property_row(row: dict) -> Property:
    """Map one properties row; a row that does not fit the model surfaces as SupabaseError."""
    try:
        return Property.model_validate(row)
    except ValidationError as e:
        raise SupabaseError(f"Malformed property row {row.get('id')}: {e.error_count()} error(s)")


async def fetch_properties(client: Optional[Client] = None) -> list[Property]:
    """Fetch the property catalog, newest first."""
    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(
                sb.table("properties").select(PROPERTY_COLUMNS).order("created_at", desc=True)
            )
        except Exception as e:
            raise SupabaseError(f"Failed to fetch properties: {e}")
        return [map_property_row(row) for row in result.data or []]


async def fetch_property(property_id: str, client: Optional[Client] = None) -> Optional[Property]:
    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(
                sb.table("properties").select(PROPERTY_COLUMNS).eq("id", property_id).limit(1)
            )
        except Exception as e:
            raise SupabaseError(f"Failed to fetch property: {e}")
        return map_property_row(result.data[0]) if result.data else None


async def fetch_saved_ids(user_id: Optional[str], client: Optional[Client] = None) -> set[str]:
    """Property ids the user has saved. A failed read degrades to an empty set."""
    if not user_id:
        return set()

    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(
                sb.table("saved_properties")
                .select("user_id,property_id,created_at")
                .eq("user_id", user_id)
            )
        except Exception as e:
            logger.warning(
                "Failed to load saved_properties",
                user_id=mask_user_id(user_id),
                error=str(e)
            )
            return set()
        saved = [SavedProperty.model_validate(row) for row in result.data or []]
        return {s.property_id for s in saved}


async def fetch_offer_counts(client: Optional[Client] = None) -> dict[str, PropertyOfferCount]:
    """Read the property_offer_counts view keyed by property id."""
    async with SupabaseClient(client) as sb:
        try:
            result = await execute_query(
                sb.table("property_offer_counts").select("property_id,offer_count,pending_count")
            )
        except Exception as e:
            raise SupabaseError(f"Failed to fetch offer counts: {e}")
        counts = [PropertyOfferCount.model_validate(row) for row in result.data or []]
        return {c.property_id: c for c in counts}


def _newest_key(p: Property):
    # New listings first, then the fattest spread
    return (0 if p.status == PropertyStatus.NEW else 1, -p.spread)


def sort_and_filter(
    properties: Iterable[Property],
    sort_mode: SortMode = SortMode.NEWEST,
    filter_mode: FilterMode = FilterMode.ALL,
    saved_ids: Optional[set[str]] = None,
) -> list[Property]:
    saved_ids = saved_ids or set()
    rows = [p for p in properties if filter_mode != FilterMode.SAVED or p.id in saved_ids]

    if sort_mode == SortMode.PRICE:
        return sorted(rows, key=lambda p: p.price)
    if sort_mode == SortMode.SPREAD:
        return sorted(rows, key=lambda p: p.spread, reverse=True)
    return sorted(rows, key=_newest_key)


def count_label(count: int, filter_mode: FilterMode, loading: bool = False) -> str:
    if loading:
        return "Loading…"
    if filter_mode == FilterMode.SAVED:
        return f"{count} saved"
    return f"{count} active"


class ListingBrowser:
    """Map and list views over the catalog for one buyer.

    Subscribes to saves-changed on construction. Use it as an async context
    manager (loads on entry, unsubscribes on exit) or call ``close()``.
    """

    def __init__(
        self,
        user_id: Optional[str],
        client: Optional[Client] = None,
        bus: Optional[EventBus] = None,
    ):
        self.user_id = user_id
        self.client = client
        self.bus = bus or get_event_bus()
        self.properties: list[Property] = []
        self.saved_ids: set[str] = set()
        self.sort_mode = SortMode.NEWEST
        self.filter_mode = FilterMode.ALL
        self.loading = True
        self.error: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = self.bus.subscribe(
            SAVES_CHANGED, self.reload_saved
        )

    async def load(self) -> None:
        self.loading = True
        self.error = None
        with log_timing("load_listings", logger=logger, user_id=mask_user_id(self.user_id)):
            try:
                self.properties = await fetch_properties(self.client)
            except SupabaseError as e:
                self.properties = []
                self.error = str(e)
            self.saved_ids = await fetch_saved_ids(self.user_id, self.client)
        self.loading = False

    async def reload_saved(self) -> None:
        self.saved_ids = await fetch_saved_ids(self.user_id, self.client)

    def visible(self) -> list[Property]:
        return sort_and_filter(self.properties, self.sort_mode, self.filter_mode, self.saved_ids)

    def label(self) -> str:
        return count_label(len(self.visible()), self.filter_mode, self.loading)

    def map_markers(self) -> list[dict]:
        """Pins for the map view; rows without coordinates are skipped."""
        return [
            {
                "id": p.id,
                "lat": p.lat,
                "lng": p.lng,
                "status": p.status.value,
                "price": p.price,
                "saved": p.id in self.saved_ids,
            }
            for p in self.visible()
            if p.lat is not None and p.lng is not None
        ]

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def __aenter__(self) -> "ListingBrowser":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
