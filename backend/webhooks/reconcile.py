# backend/webhooks/reconcile.py
# Payment confirmation → invoice/receipt issuance, once per registration

import json
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from pydantic import BaseModel

from core.config import Settings
from core.errors import BridgeError
from integrations.models import (
    CustomerRecord,
    DocumentRequest,
    LineItem,
    PaymentBlock,
    PaymentMethod,
    PaymentNotification,
    ReconciliationState,
    RegistrationContext,
    SideCallOutcome
)
from integrations.normalize import (
    CARD_FIELDS,
    REG_ID_FIELDS,
    STATUS_FIELDS,
    TRANSACTION_ID_FIELDS,
    extract_amount_minor_units,
    extract_payment_count,
    first_present,
    minor_to_major,
    normalize_amount
)
from integrations.pelecard_client import PelecardClient, is_approved
from integrations.summit_client import SummitClient
from storage.scratch_store import ScratchStore


logger = structlog.get_logger(__name__)

NotificationParser = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


# =============================================================================
# Notification parsing - ordered strategies, first match wins
# =============================================================================

def _has_transaction_id(fields: Dict[str, Any]) -> bool:
    return first_present(fields, TRANSACTION_ID_FIELDS) is not None


def parse_nested_result(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """JSON body: {"ResultData": {...}}"""
    nested = payload.get("ResultData")
    if isinstance(nested, dict) and _has_transaction_id(nested):
        return nested
    return None


def parse_json_field(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Form body where one field holds the whole notification as a JSON string"""
    for value in payload.values():
        if not isinstance(value, str) or not value.strip().startswith("{"):
            continue
        try:
            decoded = json.loads(value)
        except ValueError:
            continue
        if not isinstance(decoded, dict):
            continue
        nested = parse_nested_result(decoded)
        if nested is not None:
            return nested
        if _has_transaction_id(decoded):
            return decoded
    return None


def parse_flat_fields(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Flat form or JSON fields"""
    return payload if _has_transaction_id(payload) else None


NOTIFICATION_PARSERS: List[NotificationParser] = [
    parse_nested_result,
    parse_json_field,
    parse_flat_fields,
]


def parse_notification_fields(
    payload: Dict[str, Any],
    parsers: List[NotificationParser] = NOTIFICATION_PARSERS
) -> Optional[Dict[str, Any]]:
    for parser in parsers:
        fields = parser(payload)
        if fields is not None:
            return fields
    return None


def build_notification(fields: Dict[str, Any]) -> PaymentNotification:
    return PaymentNotification(
        transaction_id=first_present(fields, TRANSACTION_ID_FIELDS),
        reg_id=first_present(fields, REG_ID_FIELDS),
        status_code=first_present(fields, STATUS_FIELDS),
        amount_minor=extract_amount_minor_units(fields),
        payments=extract_payment_count(fields),
        card_mask=first_present(fields, CARD_FIELDS),
        fields=fields,
    )


# =============================================================================
# Workflow
# =============================================================================

class ReconciliationResult(BaseModel):
    """What a webhook delivery ended in"""
    state: ReconciliationState
    reg_id: Optional[str] = None
    transaction_id: Optional[str] = None
    paid_amount: Optional[Decimal] = None
    document_id: Optional[str] = None
    receipt_url: Optional[str] = None
    enrichment: Optional[SideCallOutcome] = None
    customer_upsert: Optional[SideCallOutcome] = None
    error: Optional[str] = None


class ReconciliationWorkflow:
    """
    Webhook path: the only writer of amount / receipt on a scratch record

    Never raises for expected failures; the returned state tells what
    happened, the webhook answers "OK" either way.
    """

    def __init__(
        self,
        store: ScratchStore,
        gateway: PelecardClient,
        accounting: SummitClient,
        settings: Settings
    ):
        self.store = store
        self.gateway = gateway
        self.accounting = accounting
        self.settings = settings

    async def handle(self, payload: Dict[str, Any]) -> ReconciliationResult:
        fields = parse_notification_fields(payload)
        notification = build_notification(fields or payload)

        if not notification.transaction_id or not notification.reg_id:
            logger.warning(
                "notification_unresolved",
                transaction_id=notification.transaction_id,
                reg_id=notification.reg_id
            )
            return ReconciliationResult(
                state=ReconciliationState.NOTIFIED_PENDING,
                reg_id=notification.reg_id,
                transaction_id=notification.transaction_id
            )

        with structlog.contextvars.bound_contextvars(
            reg_id=notification.reg_id,
            transaction_id=notification.transaction_id
        ):
            return await self._reconcile(notification)

    async def _enrich(self, notification: PaymentNotification) -> Tuple[PaymentNotification, SideCallOutcome]:
        """GetTransaction is authoritative over the pushed notification"""
        details = await self.gateway.fetch_transaction(notification.transaction_id)
        if details is None:
            return notification, SideCallOutcome.SKIPPED_NOT_FOUND

        merged = build_notification({**notification.fields, **details.fields})
        # identifiers stay those of the delivery when the lookup omits them
        merged.transaction_id = merged.transaction_id or notification.transaction_id
        merged.reg_id = merged.reg_id or notification.reg_id
        return merged, SideCallOutcome.APPLIED

    async def _reconcile(self, notification: PaymentNotification) -> ReconciliationResult:
        reg_id = notification.reg_id
        notification, enrichment = await self._enrich(notification)
        # the registration is the one the delivery was addressed to
        notification.reg_id = reg_id

        result = ReconciliationResult(
            state=ReconciliationState.NOTIFIED_PENDING,
            reg_id=reg_id,
            transaction_id=notification.transaction_id,
            enrichment=enrichment
        )

        if not is_approved(notification.status_code):
            logger.info("payment_declined", status_code=notification.status_code)
            result.state = ReconciliationState.DECLINED
            return result

        record = self.store.get(reg_id)

        # a reconciled record is final, whatever the redelivery carries
        if record.is_reconciled:
            notified = notification.amount_minor
            if (
                notified > 0
                and record.paid_amount is not None
                and record.paid_amount != minor_to_major(notified)
            ):
                logger.warning(
                    "duplicate_notification_amount_mismatch",
                    stored_amount=str(record.paid_amount),
                    notified_amount=str(minor_to_major(notified))
                )
            logger.info("notification_already_reconciled", document_id=record.document_id)
            result.state = ReconciliationState.ALREADY_RECONCILED
            result.paid_amount = record.paid_amount
            result.document_id = record.document_id
            result.receipt_url = record.receipt_url
            return result

        try:
            amount = normalize_amount(minor_to_major(notification.amount_minor))
        except BridgeError as e:
            return self._fail(result, record, f"approved payment without usable amount: {e.message}")

        result.paid_amount = amount

        customer = CustomerRecord(
            external_identifier=reg_id,
            name=record.customer_name,
            email=record.customer_email,
            phone=record.customer_phone,
            city=record.customer_city,
            address=record.customer_address
        )
        result.customer_upsert = await self.accounting.upsert_customer(customer)

        request = DocumentRequest(
            customer=customer,
            item=LineItem(
                description=self.settings.document_item_description,
                unit_price=amount
            ),
            payment=PaymentBlock(
                method=PaymentMethod.CREDIT,
                amount=amount,
                last4=notification.last4,
                payments=notification.payments
            ),
            currency=self.settings.document_currency
        )

        try:
            document = await self.accounting.create_document(request)
        except BridgeError as e:
            return self._fail(result, record, e.message)

        updated = record.model_copy(update={
            "reg_id": reg_id,
            "paid_amount": amount,
            "receipt_url": document.receipt_url,
            "document_id": document.document_id,
            "reconciliation_status": "reconciled",
            "last_error": None,
        })
        self.store.put(reg_id, updated)

        logger.info("reconciled", document_id=document.document_id, amount=str(amount))
        result.state = ReconciliationState.RECONCILED
        result.document_id = document.document_id
        result.receipt_url = document.receipt_url
        return result

    def _fail(
        self,
        result: ReconciliationResult,
        record: RegistrationContext,
        error: str
    ) -> ReconciliationResult:
        """Money collected, no receipt - alert on this event"""
        logger.error("reconciliation_failed", error=error)
        self.store.put(result.reg_id, record.model_copy(update={
            "reg_id": result.reg_id,
            "reconciliation_status": "failed",
            "last_error": error,
        }))
        result.state = ReconciliationState.RECONCILIATION_FAILED
        result.error = error
        return result

    async def lookup_display(
        self,
        reg_id: str,
        transaction_id: Optional[str] = None
    ) -> Tuple[Optional[Decimal], Optional[str]]:
        """
        Redirect path: amount + receipt to show the user

        Read-only. Falls back to a gateway lookup for the amount while
        the webhook has not landed yet; never creates a document.
        """
        record = self.store.get(reg_id) if reg_id else RegistrationContext()
        if record.paid_amount is not None:
            return record.paid_amount, record.receipt_url

        if not transaction_id:
            return None, record.receipt_url

        details = await self.gateway.fetch_transaction(transaction_id)
        if details is None:
            return None, record.receipt_url

        notification = build_notification(details.fields)
        if not is_approved(notification.status_code) or notification.amount_minor <= 0:
            return None, record.receipt_url

        return minor_to_major(notification.amount_minor), record.receipt_url
