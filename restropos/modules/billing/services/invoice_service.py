import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from restropos.core.api_client import ApiClient, decode_error_body, error_message
from restropos.core.exceptions import (
    APIError,
    AuthenticationError,
    InvoiceDownloadError,
    RestroPOSError,
)
from restropos.core.notifications import NotificationBus
from restropos.core.permissions import Permission, check_permission

from ..schemas.billing_schemas import InvoiceDocument

logger = logging.getLogger(__name__)

SOURCE = "billing.invoice"
PDF_MAGIC = b"%PDF"
CUSTOMER_BILL_FALLBACK = "Failed to download bill"


def is_pdf_payload(content: bytes, content_type: Optional[str]) -> bool:
    """A payload is an invoice when it is non-empty and typed or shaped as PDF"""
    if not content:
        return False
    media_type = (content_type or "").split(";")[0].strip().lower()
    return media_type == "application/pdf" or content.lstrip()[:4] == PDF_MAGIC


def recover_error_message(content: bytes, fallback: str = InvoiceDownloadError.default_detail) -> str:
    """Best human-readable message inside an error payload"""
    payload = decode_error_body(content)
    return error_message(payload) or fallback


class InvoiceService:
    """Invoice text and PDF downloads for generated bills"""

    def __init__(self, api: ApiClient, notifications: Optional[NotificationBus] = None):
        self.api = api
        self.notifications = notifications or NotificationBus()

    async def get_invoice_text(self, bill_id: str) -> str:
        check_permission(self.api.session, Permission.BILL_VIEW)
        response = await self.api.request("GET", f"/billing/{bill_id}/invoice")
        return response.text

    async def download_invoice(self, bill_id: str) -> InvoiceDocument:
        """
        Download the PDF invoice of a bill.

        The endpoint answers with the PDF or with an error envelope, on
        either a success or an error status. Anything that is not a
        non-empty PDF is decoded as text and raised as
        ``InvoiceDownloadError`` carrying the recovered message.
        """
        check_permission(self.api.session, Permission.BILL_VIEW)
        return await self._download(
            f"/billing/download/{bill_id}",
            bill_id,
            success_message="Invoice downloaded!",
            fallback=InvoiceDownloadError.default_detail,
        )

    async def download_customer_bill(self, bill_id: str, table_id: str) -> InvoiceDocument:
        """Download a bill from a table's self-service session; no staff role is needed"""
        return await self._download(
            f"/customer/bill/{bill_id}/download",
            bill_id,
            params={"tableId": table_id},
            success_message="Bill downloaded!",
            fallback=CUSTOMER_BILL_FALLBACK,
        )

    async def _download(
        self,
        path: str,
        bill_id: str,
        success_message: str,
        fallback: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> InvoiceDocument:
        try:
            response = await self.api.get_binary(path, params=params)
        except AuthenticationError:
            raise
        except APIError as e:
            raise self._failure(bill_id, error_message(e.payload) or fallback) from e
        except RestroPOSError as e:
            raise self._failure(bill_id, e.detail) from e

        content_type = response.headers.get("content-type")
        if not is_pdf_payload(response.content, content_type):
            raise self._failure(bill_id, recover_error_message(response.content, fallback))

        logger.info(f"Downloaded invoice for bill {bill_id} ({len(response.content)} bytes)")
        self.notifications.success(success_message, source=SOURCE, bill_id=bill_id)
        return InvoiceDocument(
            bill_id=bill_id,
            content=response.content,
            content_type="application/pdf",
        )

    def _failure(self, bill_id: str, message: str) -> InvoiceDownloadError:
        logger.warning(f"Invoice download for bill {bill_id} failed: {message}")
        self.notifications.error(message, source=SOURCE, bill_id=bill_id)
        return InvoiceDownloadError(message)


def save_invoice(document: InvoiceDocument, directory: Union[str, Path]) -> Path:
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / document.filename
    path.write_bytes(document.content)
    logger.info(f"Saved invoice {path}")
    return path
