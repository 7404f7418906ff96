"""
Eve Assistant — Outbound email via the Resend HTTP API.

Also builds the invoice and payment-receipt emails (subject, plain text
and HTML) so every channel sends the same message.
"""

from __future__ import annotations

import base64
import html as html_lib
import logging

import httpx

from eve.data.models import Invoice, InvoiceStatus
from eve.ports.email_port import EmailAttachment, EmailError

logger = logging.getLogger(__name__)

_RESEND_URL = "https://api.resend.com/emails"
_TIMEOUT_SECONDS = 10

_STATUS_COLORS = {
    InvoiceStatus.PAID: "#2ecc71",
    InvoiceStatus.OVERDUE: "#e74c3c",
    InvoiceStatus.PENDING: "#f39c12",
}


class ResendEmailSender:
    """EmailPort implementation backed by Resend."""

    def __init__(self, api_key: str, sender: str) -> None:
        self._api_key = api_key
        self._sender = sender

    async def send(
        self,
        to: str,
        subject: str,
        text: str = "",
        html: str = "",
        attachments: list[EmailAttachment] | None = None,
    ) -> dict:
        """Send one email. Returns {"success": True, "response": <message id>}.

        Raises:
            EmailError: missing fields, transport failure or a 4xx/5xx reply.
        """
        if not to or not subject or not (text or html):
            raise EmailError("Missing required fields: to, subject, text or html")

        payload: dict = {"from": self._sender, "to": [to], "subject": subject}
        if html:
            payload["html"] = html
        if text:
            payload["text"] = text
        if attachments:
            payload["attachments"] = [
                {
                    "filename": a.filename,
                    "content": base64.b64encode(a.data).decode("ascii"),
                    "content_type": a.content_type,
                }
                for a in attachments
            ]

        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                resp = await client.post(
                    _RESEND_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
        except httpx.HTTPError as exc:
            logger.error("Resend request failed: %s", exc)
            raise EmailError(f"Resend send failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.error("Resend rejected email to %s: %s", to, resp.status_code)
            raise EmailError(f"Resend send failed: {resp.status_code} {resp.text}")

        message_id = resp.json().get("id")
        logger.info("Email sent to %s (id=%s)", to, message_id)
        return {"success": True, "response": message_id}


def create_email_sender() -> ResendEmailSender | None:
    """Build the configured sender, or None when email isn't configured."""
    from eve.config import settings

    if not settings.RESEND_API_KEY or not settings.EMAIL_FROM:
        logger.info("Email disabled: RESEND_API_KEY/EMAIL_FROM not set")
        return None
    return ResendEmailSender(settings.RESEND_API_KEY, settings.EMAIL_FROM)


# ---------------------------------------------------------------------------
# Invoice email
# ---------------------------------------------------------------------------


def build_invoice_email(invoice: Invoice) -> tuple[str, str, str]:
    """Return (subject, text, html) for an invoice."""
    issued = invoice.issue_date.strftime("%m/%d/%Y")
    due = invoice.due_date.strftime("%m/%d/%Y")
    amount = f"${invoice.amount:,.2f}"
    description = invoice.description or "N/A"

    subject = f"Invoice {invoice.identifier} from {invoice.client_name} - {amount}"

    text = (
        "Invoice Details\n"
        "---------------\n"
        f"Client: {invoice.client_name}\n"
        f"Invoice: {invoice.identifier}\n"
        f"Invoice Date: {issued}\n"
        f"Due Date: {due}\n"
        f"Amount: {amount}\n"
        f"Status: {invoice.status.value}\n"
        f"Description: {description}\n"
        "\n"
        "Thank you for your business!\n"
    )

    rows = [
        ("Client", invoice.client_name),
        ("Invoice", invoice.identifier),
        ("Invoice Date", issued),
        ("Due Date", due),
        ("Amount", amount),
        ("Description", description),
    ]
    cells = "".join(
        '<tr><td style="padding: 10px; border-bottom: 1px solid #eee; font-weight: bold; '
        f'width: 30%;">{label}:</td><td style="padding: 10px; border-bottom: 1px solid #eee;">'
        f"{html_lib.escape(str(value))}</td></tr>"
        for label, value in rows
    )
    color = _STATUS_COLORS[invoice.status]
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; '
        'border: 1px solid #eee; padding: 20px; border-radius: 5px;">'
        '<h2 style="color: #2c3e50; border-bottom: 2px solid #eee; padding-bottom: 10px;">'
        "Invoice Details</h2>"
        f'<table style="width: 100%; border-collapse: collapse; margin-top: 20px;">{cells}'
        '<tr><td style="padding: 10px; font-weight: bold;">Status:</td>'
        f'<td style="padding: 10px; color: {color}; font-weight: bold;">'
        f"{invoice.status.value}</td></tr></table>"
        '<p style="margin-top: 30px; color: #7f8c8d;">Thank you for your business!</p>'
        "</div>"
    )
    return subject, text, html


def build_payment_email(invoice: Invoice) -> tuple[str, str, str]:
    """Return (subject, text, html) for a payment receipt."""
    amount = f"${invoice.amount:,.2f}"
    reference = html_lib.escape(invoice.identifier)

    subject = f"Payment Received for Invoice {invoice.identifier}"
    text = f"We've received your payment of {amount} for invoice {invoice.identifier}. Thank you!"
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; '
        'border: 1px solid #eee; padding: 20px; border-radius: 5px;">'
        '<h2 style="color: #2ecc71;">Payment Received</h2>'
        f"<p>We've received your payment of <strong>{amount}</strong> "
        f"for invoice <strong>{reference}</strong>.</p>"
        '<p style="margin-top: 30px; color: #7f8c8d;">Thank you for your business!</p>'
        "</div>"
    )
    return subject, text, html
