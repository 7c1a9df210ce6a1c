# backend/webhooks/summit_api.py
# Direct document creation - JSON API and the CRM button redirect

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from core.config import Settings
from core.errors import BridgeError, ValidationError
from integrations.models import (
    CustomerRecord,
    DocumentRequest,
    LineItem,
    PaymentBlock,
    PaymentMethod
)
from integrations.normalize import (
    normalize_amount,
    normalize_payment_count,
    normalize_payment_method,
    normalize_person_id,
    normalize_phone
)
from integrations.summit_client import SummitClient
from .deps import get_accounting, get_app_settings


router = APIRouter()
logger = structlog.get_logger(__name__)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _require(value: Any, message: str) -> str:
    text = _text(value)
    if text is None:
        raise ValidationError(message)
    return text


def _payment_block(
    method: PaymentMethod,
    amount,
    data: Dict[str, Any],
    last4_key: str = "last4"
) -> PaymentBlock:
    block = PaymentBlock(
        method=method,
        amount=amount,
        last4=_text(data.get(last4_key)),
        payments=normalize_payment_count(data.get("payments", 1)),
        bank=_text(data.get("bank")),
        branch=_text(data.get("branch")),
        account=_text(data.get("account"))
    )
    if method == PaymentMethod.BANK and not (block.bank and block.branch and block.account):
        raise ValidationError("bank, branch and account are required for bank transfer")
    return block


def document_from_body(body: Dict[str, Any], settings: Settings) -> DocumentRequest:
    """POST /summit body → document request"""
    saved = body.get("saved") or {}
    if not isinstance(saved, dict):
        raise ValidationError("saved must be an object")

    sku = _require(body.get("sku"), "SKU Item is required")
    if _text(body.get("amount")) is None:
        raise ValidationError("amount is required for payment")
    amount = normalize_amount(body.get("amount"))
    external_id = _require(saved.get("customerexternalidentifier"), "customerexternalidentifier is required")
    person_id = normalize_person_id(_require(saved.get("personid"), "personid is required"))
    method = normalize_payment_method(body.get("paymentMethod"))

    customer = CustomerRecord(
        external_identifier=external_id,
        company_number=person_id,
        name=_text(saved.get("CustomerName")),
        email=_text(saved.get("CustomerEmail")),
        phone=_text(saved.get("CustomerPhone")),
        city=_text(saved.get("CustomerCity")),
        address=_text(saved.get("CustomerAddress"))
    )

    return DocumentRequest(
        customer=customer,
        item=LineItem(description=settings.document_item_description, unit_price=amount, sku=sku),
        payment=_payment_block(method, amount, body),
        currency=settings.document_currency
    )


def document_from_query(params: Dict[str, Any], settings: Settings) -> DocumentRequest:
    """GET /summit-from-sf query → document request (customer keyed by familyid)"""
    sku = _require(params.get("sku"), "sku is required")
    _require(params.get("paymentId"), "paymentId is required")
    family_id = _require(params.get("familyid"), "familyid is required")
    person_id = normalize_person_id(_require(params.get("personid"), "personid is required"))
    if _text(params.get("amount")) is None:
        raise ValidationError("amount is required for payment")
    amount = normalize_amount(params.get("amount"))
    method = normalize_payment_method(params.get("paymentMethod"))
    phone = normalize_phone(_text(params.get("phone")))

    customer = CustomerRecord(
        external_identifier=family_id,
        company_number=person_id,
        name=_text(params.get("customerName")),
        phone=phone,
        email=_text(params.get("email")),
        city=_text(params.get("city")),
        address=_text(params.get("address"))
    )

    return DocumentRequest(
        customer=customer,
        item=LineItem(description=settings.document_item_description, unit_price=amount, sku=sku),
        payment=_payment_block(method, amount, params),
        currency=settings.document_currency
    )


@router.post("/summit")
async def create_summit_document(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    accounting: SummitClient = Depends(get_accounting)
):
    """Invoice/receipt straight from a JSON body"""
    try:
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("request body must be JSON")
        if not isinstance(body, dict):
            raise ValidationError("request body must be a JSON object")

        document = await accounting.create_document(document_from_body(body, settings))
    except BridgeError as e:
        logger.error("summit_document_error", error=e.message)
        return JSONResponse({"ok": False, "error": e.message}, status_code=500)

    return {
        "ok": True,
        "documentId": document.document_id,
        "receiptUrl": document.receipt_url
    }


@router.get("/summit-from-sf")
async def create_summit_document_from_crm(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    accounting: SummitClient = Depends(get_accounting)
):
    """
    CRM button entry point

    Upserts the family as a Summit customer, issues the document and
    sends the browser back to the CRM with the receipt link.
    """
    params = dict(request.query_params)

    try:
        document_request = document_from_query(params, settings)
        outcome = await accounting.upsert_customer(document_request.customer)
        logger.info(
            "crm_customer_upsert",
            payment_id=params.get("paymentId"),
            outcome=outcome.value
        )
        document = await accounting.create_document(document_request)
    except BridgeError as e:
        logger.error("crm_document_error", payment_id=params.get("paymentId"), error=e.message)
        return PlainTextResponse(e.message, status_code=500)

    query = urlencode({
        "recordId": params["paymentId"],
        "receiptUrl": document.receipt_url or ""
    })
    return RedirectResponse(f"{settings.sf_return_url}?{query}", status_code=302)
