# backend/integrations/normalize.py
# Normalization - loosely typed external input → validated domain values

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional, Sequence

from core.errors import ValidationError
from .models import PaymentMethod


CENTS = Decimal("0.01")

# Human-readable labels as they arrive from the registration form / CRM
PAYMENT_METHOD_LABELS = {
    "מזומן": PaymentMethod.CASH,
    "כרטיס אשראי": PaymentMethod.CREDIT,
    "העברה בנקאית": PaymentMethod.BANK,
}

# Candidate field names per value, highest priority first.
# Different Pelecard response shapes (init feedback, GetTransaction,
# legacy redirect params) name the same value differently.
AMOUNT_FIELDS = ("DebitTotal", "TotalX100", "Total", "Amount")
PAYMENT_COUNT_FIELDS = ("TotalPayments", "NumberOfPayments", "Payments")
TRANSACTION_ID_FIELDS = ("TransactionId", "PelecardTransactionId", "transactionId")
REG_ID_FIELDS = ("ParamX", "AdditionalDetailsParamX", "paramX", "RegID")
STATUS_FIELDS = ("ShvaResult", "StatusCode", "PelecardStatusCode", "ResultCode")
CARD_FIELDS = ("CreditCardNumber", "CardNumber", "Last4")


def normalize_amount(raw: Any) -> Decimal:
    """'₪1,250.50' → Decimal('1250.50'); empty, zero or negative fails"""
    if raw is None or isinstance(raw, bool):
        raise ValidationError("amount invalid")

    text = str(raw).strip()
    if not text or "-" in text:
        raise ValidationError("amount invalid")

    cleaned = re.sub(r"[^\d.]", "", text)
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValidationError("amount invalid")

    if not amount.is_finite() or amount <= 0:
        raise ValidationError("amount invalid")

    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def normalize_payment_count(raw: Any) -> int:
    """Installment count - anything unusable becomes 1"""
    if raw is None or isinstance(raw, bool):
        return 1
    try:
        count = int(Decimal(str(raw).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return 1
    return count if count > 0 else 1


def normalize_payment_method(raw: Optional[str]) -> PaymentMethod:
    if raw is None or not str(raw).strip():
        return PaymentMethod.CREDIT

    method = PAYMENT_METHOD_LABELS.get(str(raw).strip())
    if method is None:
        raise ValidationError("unsupported payment method")
    return method


def normalize_phone(raw: Optional[str]) -> str:
    if raw is None:
        raise ValidationError("phone required")

    digits = re.sub(r"\D", "", str(raw))
    if not digits:
        raise ValidationError("phone required")
    return digits


def normalize_person_id(raw: Any) -> str:
    """Summit expects a contiguous number"""
    return re.sub(r"\s+", "", str(raw))


def minor_to_major(minor: int) -> Decimal:
    return (Decimal(minor) / 100).quantize(CENTS, rounding=ROUND_HALF_UP)


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None

    text = str(value).strip()
    if re.fullmatch(r"-?\d+", text):
        return int(text)
    return None


def first_present(fields: Dict[str, Any], candidates: Sequence[str]) -> Optional[str]:
    """First candidate with a non-empty value, as a string"""
    for name in candidates:
        value = fields.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def extract_amount_minor_units(
    fields: Dict[str, Any],
    candidates: Sequence[str] = AMOUNT_FIELDS
) -> int:
    """First candidate that parses as an integer wins; 0 if none does"""
    for name in candidates:
        parsed = _parse_int(fields.get(name))
        if parsed is not None:
            return parsed
    return 0


def extract_payment_count(
    fields: Dict[str, Any],
    candidates: Sequence[str] = PAYMENT_COUNT_FIELDS
) -> int:
    for name in candidates:
        parsed = _parse_int(fields.get(name))
        if parsed is not None:
            return normalize_payment_count(parsed)
    return 1
