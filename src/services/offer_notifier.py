"""Offer-event notifier - email admins on new offers and buyers on decisions."""

import hmac
import os
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from src.models.offer import Offer, OfferStatus
from src.models.property import Property
from src.models.webhook import WebhookPayload
from src.services.listings import fetch_property
from src.services.mailer import render_new_offer_email, render_offer_status_email, send_email
from src.services.supabase_client import get_user_email
from src.utils.errors import EmailError, InputValidationError
from src.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

NOTIFY_STATUSES = (OfferStatus.ACCEPTED, OfferStatus.REJECTED)


@dataclass
class NotifyResult:
    status_code: int
    message: str


def should_bypass_verification() -> bool:
    """Skip the shared-secret check in local development."""
    env = os.environ.get("ENVIRONMENT", "").lower()
    return env in ("development", "local")


def verify_webhook_request(authorization: Optional[str], secret_header: Optional[str]) -> bool:
    """
    Check the webhook's credentials.

    A bearer token must always be present. When OFFER_WEBHOOK_SECRET is set,
    the x-webhook-secret header must match it.
    """
    if not (authorization or "").lower().startswith("bearer "):
        return False

    expected = os.environ.get("OFFER_WEBHOOK_SECRET", "").strip()
    if not expected or should_bypass_verification():
        return True
    return hmac.compare_digest(expected, (secret_header or "").strip())


def parse_payload(data: object) -> WebhookPayload:
    try:
        return WebhookPayload.model_validate(data)
    except ValidationError as e:
        raise InputValidationError(f"Invalid webhook payload: {e.error_count()} error(s)")


async def _lookup_property(property_id: str) -> Optional[Property]:
    try:
        return await fetch_property(property_id)
    except Exception as e:
        logger.warning("Property lookup failed", property_id=property_id, error=str(e))
        return None


def buyer_label(email: Optional[str], user_id: str) -> str:
    return email or f"User: {user_id[:8]}…"


async def notify_new_offer(offer: Offer) -> NotifyResult:
    admin_email = os.environ.get("ADMIN_NOTIFY_EMAIL", "").strip()
    if not admin_email:
        raise EmailError("ADMIN_NOTIFY_EMAIL must be set")

    prop = await _lookup_property(offer.property_id)
    email = await get_user_email(offer.user_id)

    subject, html = render_new_offer_email(offer, prop, buyer_label(email, offer.user_id))
    await send_email(admin_email, subject, html)
    logger.info("New offer alert sent", offer_id=offer.id, property_id=offer.property_id)
    return NotifyResult(200, "OK")


async def notify_status_change(offer: Offer, old_status: Optional[str]) -> NotifyResult:
    if offer.status not in NOTIFY_STATUSES or offer.status.value == old_status:
        return NotifyResult(200, "Ignored")

    prop = await _lookup_property(offer.property_id)
    email = await get_user_email(offer.user_id)
    if not email:
        logger.info(
            "Skipping status email, no buyer email",
            offer_id=offer.id,
            user_id=mask_user_id(offer.user_id)
        )
        return NotifyResult(200, "No buyer email")

    subject, html = render_offer_status_email(offer, prop)
    await send_email(email, subject, html)
    logger.info("Offer status email sent", offer_id=offer.id, status=offer.status.value)
    return NotifyResult(200, "OK")


async def handle_offer_event(payload: WebhookPayload) -> NotifyResult:
    """React to one change event on the offers table."""
    if payload.db_schema != "public" or payload.table != "offers" or not payload.record:
        return NotifyResult(200, "Ignored")

    try:
        offer = Offer.model_validate(payload.record)
    except ValidationError as e:
        raise InputValidationError(f"Invalid offer record: {e.error_count()} error(s)")

    with log_timing("handle_offer_event", logger=logger, event_type=payload.type, offer_id=offer.id):
        if payload.type == "INSERT":
            return await notify_new_offer(offer)

        if payload.type == "UPDATE":
            old_status = (payload.old_record or {}).get("status")
            return await notify_status_change(offer, old_status)

    return NotifyResult(200, "Ignored")
