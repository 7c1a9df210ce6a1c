# backend/integrations/models.py
# Domain models shared by the gateway client, accounting client and workflow

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class PaymentMethod(str, Enum):
    """Payment method → Summit payment type code"""
    CASH = "cash"
    CREDIT = "credit"
    BANK = "bank"

    @property
    def summit_type(self) -> int:
        return {
            PaymentMethod.CASH: 1,
            PaymentMethod.BANK: 4,
            PaymentMethod.CREDIT: 5,
        }[self]


class SideCallOutcome(str, Enum):
    """Result of a best-effort call (customer upsert, transaction lookup)"""
    APPLIED = "applied"
    SKIPPED_NOT_FOUND = "skipped_not_found"
    FAILED_IGNORED = "failed_ignored"


class ReconciliationState(str, Enum):
    INITIATED = "initiated"
    NOTIFIED_PENDING = "notified_pending"
    DECLINED = "declined"
    RECONCILED = "reconciled"
    RECONCILIATION_FAILED = "reconciliation_failed"
    ALREADY_RECONCILED = "already_reconciled"


class RegistrationContext(BaseModel):
    """
    Scratch record for one registration

    Written at session init (customer fields), completed by the
    webhook (amount, receipt, document id).
    """
    model_config = ConfigDict(populate_by_name=True)

    reg_id: Optional[str] = Field(None, alias="RegID")
    customer_name: Optional[str] = Field(None, alias="CustomerName")
    customer_email: Optional[str] = Field(None, alias="CustomerEmail")
    customer_phone: Optional[str] = Field(None, alias="CustomerPhone")
    customer_city: Optional[str] = Field(None, alias="CustomerCity")
    customer_address: Optional[str] = Field(None, alias="CustomerAddress")
    paid_amount: Optional[Decimal] = Field(None, alias="paidAmount")
    receipt_url: Optional[str] = Field(None, alias="receiptUrl")
    document_id: Optional[str] = Field(None, alias="documentId")
    reconciliation_status: Optional[str] = Field(None, alias="reconciliationStatus")
    last_error: Optional[str] = Field(None, alias="lastError")

    @field_serializer("paid_amount", when_used="json-unless-none")
    def _amount_as_number(self, value: Decimal) -> float:
        return float(value)

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    @property
    def is_reconciled(self) -> bool:
        return self.reconciliation_status == "reconciled" or bool(self.document_id)

    def to_store(self) -> Dict[str, Any]:
        """JSON shape persisted per registration"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PaymentNotification(BaseModel):
    """Gateway notification, resolved from whatever shape it arrived in"""
    transaction_id: Optional[str] = None
    reg_id: Optional[str] = None
    status_code: Optional[str] = None
    amount_minor: int = 0
    payments: int = 1
    card_mask: Optional[str] = None
    fields: Dict[str, Any] = {}

    @property
    def last4(self) -> Optional[str]:
        if not self.card_mask:
            return None
        digits = "".join(ch for ch in self.card_mask if ch.isdigit())
        return digits[-4:] or None


class TransactionDetails(BaseModel):
    """Unwrapped ResultData of a Pelecard GetTransaction call"""
    fields: Dict[str, Any] = {}


class CustomerRecord(BaseModel):
    external_identifier: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None
    company_number: Optional[str] = None


class PaymentBlock(BaseModel):
    method: PaymentMethod = PaymentMethod.CREDIT
    amount: Decimal
    last4: Optional[str] = None
    payments: int = 1
    bank: Optional[str] = None
    branch: Optional[str] = None
    account: Optional[str] = None


class LineItem(BaseModel):
    description: str
    unit_price: Decimal
    sku: Optional[str] = None
    quantity: int = 1


class DocumentRequest(BaseModel):
    customer: CustomerRecord
    item: LineItem
    payment: PaymentBlock
    currency: str = "ILS"
    vat_included: bool = True


class DocumentResult(BaseModel):
    document_id: str
    receipt_url: Optional[str] = None
