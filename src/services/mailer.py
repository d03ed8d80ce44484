"""Transactional email through the Resend HTTP API, plus the message templates."""

import os
from html import escape
from typing import Optional, Union

import httpx

from src.models.offer import Offer, OfferStatus
from src.models.profile import Profile
from src.models.property import Property
from src.utils.errors import EmailError
from src.utils.formatting import format_money, format_signed_money, safe_str
from src.utils.logging import get_structured_logger, mask_email

logger = get_structured_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_TIMEOUT_SECONDS = 10.0


def app_link(path: str) -> str:
    base = os.environ.get("APP_BASE_URL", "").rstrip("/")
    return f"{base}{path}" if base else path


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html: str,
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """
    Send one email through Resend.

    Raises EmailError on missing configuration, transport errors, or non-2xx replies.
    """
    api_key = os.environ.get("RESEND_API_KEY", "").strip()
    sender = os.environ.get("RESEND_FROM", "").strip()
    if not api_key or not sender:
        raise EmailError("RESEND_API_KEY and RESEND_FROM must be set")

    payload = {"from": sender, "to": to, "subject": subject, "html": html}
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS)
    try:
        response = await client.post(RESEND_API_URL, json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise EmailError(f"Resend request failed: {e}")
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code >= 400:
        raise EmailError(f"Resend error {response.status_code}: {response.text}")

    recipients = to if isinstance(to, list) else [to]
    logger.info(
        "Email sent",
        subject=subject,
        recipients=[mask_email(r) for r in recipients]
    )
    return response.json()


def _row(label: str, value: str) -> str:
    return (
        f'<tr><td style="padding:6px 0; color:#666;">{label}</td>'
        f'<td style="padding:6px 0;">{value}</td></tr>'
    )


def _address(prop: Optional[Property]) -> str:
    return safe_str(prop.address if prop else None)


def render_new_offer_email(
    offer: Offer,
    prop: Optional[Property],
    buyer_label: str,
) -> tuple[str, str]:
    """Admin alert for a freshly inserted offer. Returns (subject, html)."""
    address = _address(prop)
    ask = prop.price if prop else None
    delta = offer.offer_price - ask if ask is not None else None

    subject = f"New offer received — {address or 'Property'}"
    html = f"""
<div style="font-family: ui-sans-serif, system-ui; line-height: 1.45;">
  <h2 style="margin:0 0 8px;">New offer received</h2>
  <div style="color:#444; margin-bottom:14px;">{escape(address) or "Unknown address"}</div>
  <table style="border-collapse:collapse; width:100%; max-width:560px;">
    {_row("Ask", f"<b>{format_money(ask)}</b>")}
    {_row("Offer", f"<b>{format_money(offer.offer_price)}</b>")}
    {_row("Delta", f"<b>{format_signed_money(delta)}</b>")}
    {_row("Buyer", f"<b>{escape(buyer_label) or 'Unknown'}</b>")}
    {_row("Notes", escape(safe_str(offer.notes)) or "—")}
  </table>
  <div style="margin-top:16px;"><a href="{escape(app_link('/admin'))}">Open Admin</a></div>
  <div style="margin-top:12px; color:#888; font-size:12px;">Offer ID: {escape(offer.id)}</div>
</div>
"""
    return subject, html


def render_offer_status_email(offer: Offer, prop: Optional[Property]) -> tuple[str, str]:
    """Buyer notice for an accepted or rejected offer. Returns (subject, html)."""
    address = _address(prop)
    accepted = offer.status == OfferStatus.ACCEPTED

    if accepted:
        subject = f"Offer accepted — {address or 'Property'}"
        closing = "Your offer has been accepted. We will reach out with next steps."
    else:
        subject = f"Offer update — {address or 'Property'}"
        closing = "Your offer was not selected. You can continue browsing and submitting offers."

    html = f"""
<div style="font-family: ui-sans-serif, system-ui; line-height: 1.45;">
  <h2 style="margin:0 0 8px;">Offer update</h2>
  <div style="margin-bottom:14px; color:#444;">{escape(address) or "Unknown address"}</div>
  <div style="margin-bottom:14px;">Status: <b style="text-transform: uppercase;">{offer.status.value}</b></div>
  <table style="border-collapse:collapse; width:100%; max-width:560px;">
    {_row("Your offer", f"<b>{format_money(offer.offer_price)}</b>")}
    {_row("Ask", f"<b>{format_money(prop.price if prop else None)}</b>")}
  </table>
  <div style="margin-top:16px; color:#666; font-size:13px;">{closing}</div>
</div>
"""
    return subject, html


def render_approval_email(profile: Profile) -> tuple[str, str]:
    """Welcome message sent when an admin approves a pending account."""
    greeting = f"Hi {escape(profile.first_name)}," if profile.first_name else "Hi,"
    subject = "Your account has been approved"
    html = f"""
<div style="font-family: ui-sans-serif, system-ui; line-height: 1.45;">
  <h2 style="margin:0 0 8px;">You're approved</h2>
  <p>{greeting}</p>
  <p>Your buyer account is active. You can now browse off-market deals and submit offers.</p>
  <div style="margin-top:16px;"><a href="{escape(app_link('/dashboard'))}">Browse deals</a></div>
</div>
"""
    return subject, html
