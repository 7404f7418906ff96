"""
Eve Assistant — Xero accounting client.

Implements AccountingPort over the Xero REST API with the OAuth2 refresh
token flow. Access tokens expire after 30 minutes, so one is fetched lazily
and refreshed once on a 401 before giving up.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from eve.ports.accounting_port import AccountingError, AccountingErrorKind, AccountingSession

logger = logging.getLogger(__name__)

XERO_TOKEN_URL = "https://identity.xero.com/connect/token"
XERO_API_BASE = "https://api.xero.com/api.xro/2.0"

SALES_ACCOUNT_CODE = "200"
PAYMENT_ACCOUNT_CODE = "090"
_TIMEOUT_SECONDS = 30


def to_xero_invoice(invoice: dict[str, Any]) -> dict[str, Any]:
    """Map the provider-neutral invoice payload to Xero's Invoice shape."""
    body: dict[str, Any] = {
        "Type": "ACCREC",
        "Contact": {"Name": invoice["contact_name"]},
        "LineItems": [
            {
                "Description": item.get("description") or "Invoice item",
                "Quantity": item.get("quantity") or 1,
                "UnitAmount": item.get("unit_amount") or 0,
                "AccountCode": SALES_ACCOUNT_CODE,
            }
            for item in invoice.get("line_items", [])
        ],
        "Date": invoice.get("date"),
        "DueDate": invoice.get("due_date"),
        "Status": "AUTHORISED",
    }
    if invoice.get("reference"):
        body["Reference"] = invoice["reference"]
    return body


def _classify(status_code: int, action: str) -> AccountingError:
    if status_code == 401:
        return AccountingError(
            AccountingErrorKind.AUTH_EXPIRED,
            "Xero authentication expired. Please reconnect to Xero.",
        )
    if status_code == 403:
        return AccountingError(
            AccountingErrorKind.PERMISSION_DENIED,
            f"Insufficient permissions to {action} in Xero.",
        )
    if status_code == 400:
        return AccountingError(AccountingErrorKind.BAD_REQUEST, "Invalid invoice data sent to Xero.")
    if status_code == 404:
        return AccountingError(AccountingErrorKind.NOT_FOUND, "Invoice not found in Xero.")
    return AccountingError(AccountingErrorKind.UNKNOWN, f"Xero API error: {status_code}")


class XeroClient:
    """AccountingPort implementation backed by Xero."""

    def __init__(self, client_id: str, client_secret: str, refresh_token: str) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._access_token: str | None = None

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def refresh_access_token(self) -> str:
        """Exchange the refresh token for a new access token.

        Xero rotates refresh tokens, so the new one replaces the old.
        """
        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                resp = await client.post(
                    XERO_TOKEN_URL,
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": self._refresh_token,
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as exc:
            logger.error("Xero token refresh failed: %s", exc)
            raise AccountingError(
                AccountingErrorKind.NETWORK,
                "Unable to connect to Xero API. Please check internet connection.",
            ) from exc

        if resp.status_code != 200:
            logger.error("Xero token refresh rejected: %s", resp.status_code)
            raise AccountingError(
                AccountingErrorKind.AUTH_EXPIRED,
                "Xero authentication expired. Please reconnect to Xero.",
            )

        tokens = resp.json()
        self._access_token = tokens["access_token"]
        self._refresh_token = tokens.get("refresh_token", self._refresh_token)
        logger.info("Xero access token refreshed")
        return self._access_token

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(self, tenant_id: str, endpoint: str, body: dict, action: str) -> dict:
        if self._access_token is None:
            await self.refresh_access_token()

        for attempt in range(2):
            try:
                async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                    resp = await client.post(
                        f"{XERO_API_BASE}/{endpoint}",
                        json=body,
                        headers={
                            "Authorization": f"Bearer {self._access_token}",
                            "Xero-Tenant-Id": tenant_id,
                            "Accept": "application/json",
                        },
                    )
            except httpx.HTTPError as exc:
                logger.error("Xero %s request failed: %s", endpoint, exc)
                raise AccountingError(
                    AccountingErrorKind.NETWORK,
                    "Unable to connect to Xero API. Please check internet connection.",
                ) from exc

            if resp.status_code == 401 and attempt == 0:
                await self.refresh_access_token()
                continue
            if resp.status_code >= 400:
                logger.error("Xero %s rejected: %s %s", endpoint, resp.status_code, resp.text)
                raise _classify(resp.status_code, action)
            return resp.json()

        raise _classify(401, action)

    # ------------------------------------------------------------------
    # AccountingPort
    # ------------------------------------------------------------------

    @staticmethod
    def _invoice_result(data: dict) -> dict:
        invoices = data.get("Invoices") or []
        if not invoices:
            raise AccountingError(AccountingErrorKind.UNKNOWN, "Xero returned no invoice")
        inv = invoices[0]
        return {
            "external_id": inv.get("InvoiceID"),
            "status": inv.get("Status"),
            "total": inv.get("Total"),
        }

    async def create_invoice(self, tenant_id: str, invoice: dict[str, Any]) -> dict:
        data = await self._post(
            tenant_id, "Invoices", {"Invoices": [to_xero_invoice(invoice)]}, "create invoice"
        )
        result = self._invoice_result(data)
        logger.info("Xero invoice created: %s", result["external_id"])
        return result

    async def update_invoice(
        self, tenant_id: str, external_id: str, invoice: dict[str, Any]
    ) -> dict:
        body = to_xero_invoice(invoice)
        body["InvoiceID"] = external_id
        data = await self._post(
            tenant_id, f"Invoices/{external_id}", {"Invoices": [body]}, "update invoice"
        )
        return self._invoice_result(data)

    async def mark_invoice_as_paid(
        self, tenant_id: str, external_id: str, amount: float, paid_on: str
    ) -> dict:
        payment = {
            "Invoice": {"InvoiceID": external_id},
            "Account": {"Code": PAYMENT_ACCOUNT_CODE},
            "Amount": amount,
            "Date": paid_on,
            "Reference": f"Payment for invoice {external_id}",
        }
        data = await self._post(
            tenant_id, "Payments", {"Payments": [payment]}, "record payment"
        )
        payments = data.get("Payments") or [{}]
        return {
            "external_id": external_id,
            "status": "PAID",
            "total": payments[0].get("Amount", amount),
        }


def create_accounting_session() -> AccountingSession:
    """Build the Xero session from settings; disconnected when not configured."""
    from eve.config import settings

    if not settings.xero_enabled:
        logger.info("Accounting sync disabled: Xero credentials not set")
        return AccountingSession()
    client = XeroClient(
        settings.XERO_CLIENT_ID, settings.XERO_CLIENT_SECRET, settings.XERO_REFRESH_TOKEN
    )
    return AccountingSession(client=client, tenant_id=settings.XERO_TENANT_ID)
