# backend/integrations/summit_client.py
# Summit accounting API client (customers + invoice/receipt documents)

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import structlog

from core.config import Settings
from core.errors import AccountingError
from .models import (
    CustomerRecord,
    DocumentRequest,
    DocumentResult,
    PaymentMethod,
    SideCallOutcome
)


logger = structlog.get_logger(__name__)

DOCUMENT_TYPE_INVOICE_RECEIPT = 1
CUSTOMER_SEARCH_BY_EXTERNAL_ID = 2
ITEM_SEARCH_BY_SKU = 4

DOCUMENTS_CREATE = "/accounting/documents/create/"
CUSTOMERS_UPDATE = "/accounting/customers/update/"
CUSTOMERS_CREATE = "/accounting/customers/create/"


def unwrap_summit(response: Any) -> Dict[str, Any]:
    """Status / error message / Data envelope shared by every Summit call"""
    if not isinstance(response, dict) or response.get("Status") is None:
        raise AccountingError("Invalid response from Summit")

    if str(response["Status"]) != "0":
        raise AccountingError(
            response.get("UserErrorMessage")
            or response.get("TechnicalErrorDetails")
            or "Summit returned an error"
        )

    data = response.get("Data")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise AccountingError("Invalid response from Summit")
    return data


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v not in (None, "")}


def customer_details(customer: CustomerRecord) -> Dict[str, Any]:
    return _compact({
        "ExternalIdentifier": customer.external_identifier,
        "Name": customer.name or "Client",
        "CompanyNumber": customer.company_number,
        "Phone": customer.phone,
        "EmailAddress": customer.email,
        "City": customer.city,
        "Address": customer.address,
        "SearchMode": CUSTOMER_SEARCH_BY_EXTERNAL_ID,
    })


def payment_details(request: DocumentRequest) -> Dict[str, Any]:
    payment = request.payment
    block: Dict[str, Any] = {
        "Amount": float(payment.amount),
        "Type": payment.method.summit_type,
    }

    if payment.method == PaymentMethod.CREDIT:
        block["Details_CreditCard"] = _compact({
            "Last4Digits": payment.last4,
            "Payments": payment.payments,
        })
    elif payment.method == PaymentMethod.BANK:
        block["Details_BankTransfer"] = _compact({
            "BankNumber": payment.bank,
            "BranchNumber": payment.branch,
            "AccountNumber": payment.account,
        })

    return block


def item_details(request: DocumentRequest) -> Dict[str, Any]:
    item = request.item
    line: Dict[str, Any] = {"Name": item.description, "Description": item.description}
    if item.sku:
        line["SKU"] = item.sku
        line["SearchMode"] = ITEM_SEARCH_BY_SKU

    return {
        "Quantity": item.quantity,
        "UnitPrice": float(item.unit_price),
        "TotalPrice": float(item.unit_price * item.quantity),
        "Item": line,
    }


class SummitClient:
    """Summit (app.sumit.co.il) accounting API"""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.base_url = settings.summit_base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.http_timeout_seconds
        )

    def _credentials(self) -> Dict[str, Any]:
        company_id = self.settings.summit_company_id.strip()
        api_key = self.settings.summit_api_key.strip()
        if not company_id or not api_key:
            raise AccountingError("Missing Summit credentials in env variables")

        try:
            company = int(company_id)
        except ValueError:
            raise AccountingError("SUMMIT_COMPANY_ID must be numeric")

        return {"CompanyID": company, "APIKey": api_key}

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        payload = {**body, "Credentials": self._credentials()}

        try:
            response = await self.http_client.post(f"{self.base_url}{path}", json=payload)
        except httpx.HTTPError as e:
            raise AccountingError(f"Summit request failed: {e}")

        try:
            data = response.json()
        except ValueError:
            raise AccountingError("Invalid response from Summit")

        return unwrap_summit(data)

    def build_document_payload(self, request: DocumentRequest) -> Dict[str, Any]:
        return {
            "Details": {
                "Type": DOCUMENT_TYPE_INVOICE_RECEIPT,
                "Date": datetime.now(timezone.utc).isoformat(),
                "Original": True,
                "IsDraft": False,
                "Currency": request.currency,
                "Customer": customer_details(request.customer),
            },
            "Items": [item_details(request)],
            "Payments": [payment_details(request)],
            "VATIncluded": request.vat_included,
        }

    async def upsert_customer(self, customer: CustomerRecord) -> SideCallOutcome:
        """
        Update by external identifier, fall back to create

        Best-effort: never raises, the outcome says what happened.
        """
        if not customer.external_identifier:
            return SideCallOutcome.SKIPPED_NOT_FOUND

        body = {"Details": customer_details(customer)}

        try:
            await self._post(CUSTOMERS_UPDATE, body)
            logger.info("summit_customer_updated", external_id=customer.external_identifier)
            return SideCallOutcome.APPLIED
        except AccountingError as e:
            logger.info(
                "summit_customer_update_failed",
                external_id=customer.external_identifier,
                error=e.message
            )

        try:
            await self._post(CUSTOMERS_CREATE, body)
            logger.info("summit_customer_created", external_id=customer.external_identifier)
            return SideCallOutcome.APPLIED
        except AccountingError as e:
            logger.warning(
                "summit_customer_upsert_failed",
                external_id=customer.external_identifier,
                error=e.message
            )
            return SideCallOutcome.FAILED_IGNORED

    async def create_document(self, request: DocumentRequest) -> DocumentResult:
        data = await self._post(DOCUMENTS_CREATE, self.build_document_payload(request))

        document_id = data.get("DocumentID")
        if not document_id:
            raise AccountingError("document creation failed")

        result = DocumentResult(
            document_id=str(document_id),
            receipt_url=data.get("DocumentDownloadURL")
        )
        logger.info("summit_document_created", document_id=result.document_id)
        return result

    async def close(self):
        await self.http_client.aclose()
