# backend/webhooks/pelecard_webhook.py
# Pelecard flow - session init, server-side webhook, user redirect

import json
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from core.config import Settings
from core.errors import GatewayError, ValidationError
from integrations.models import RegistrationContext
from integrations.normalize import normalize_phone
from integrations.pelecard_client import PelecardClient
from storage.scratch_store import ScratchStore
from .deps import get_app_settings, get_gateway, get_store, get_workflow
from .reconcile import ReconciliationWorkflow


router = APIRouter()
logger = structlog.get_logger(__name__)


async def read_payload(request: Request) -> Dict[str, Any]:
    """JSON or form body as a plain dict; {} when unreadable"""
    content_type = request.headers.get("content-type", "")

    if "application/json" in content_type:
        try:
            data = await request.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    # body is cached, so form() below still sees it
    body = await request.body()

    # JSON posted without a JSON content type
    if body.lstrip().startswith(b"{"):
        try:
            data = json.loads(body)
        except ValueError:
            data = None
        if isinstance(data, dict):
            return data

    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.get("/")
async def start_payment(
    reg_id: Optional[str] = Query(None, alias="RegID"),
    customer_name: Optional[str] = Query(None, alias="CustomerName"),
    customer_email: Optional[str] = Query(None, alias="CustomerEmail"),
    customer_phone: Optional[str] = Query(None, alias="CustomerPhone"),
    customer_city: Optional[str] = Query(None, alias="CustomerCity"),
    customer_address: Optional[str] = Query(None, alias="CustomerAddress"),
    store: ScratchStore = Depends(get_store),
    gateway: PelecardClient = Depends(get_gateway)
):
    """
    Session init

    Saves the customer details under RegID and sends the user to the
    Pelecard hosted payment page.
    """
    if not reg_id:
        return PlainTextResponse("RegID is required", status_code=400)

    changes = {
        "reg_id": reg_id,
        "customer_name": customer_name,
        "customer_email": customer_email,
        "customer_city": customer_city,
        "customer_address": customer_address,
    }
    if customer_phone:
        try:
            changes["customer_phone"] = normalize_phone(customer_phone)
        except ValidationError as e:
            return PlainTextResponse(e.message, status_code=400)

    # keep what an earlier session or the webhook already wrote
    existing = store.get(reg_id)
    record = existing.model_copy(update={k: v for k, v in changes.items() if v is not None})
    store.put(reg_id, record)

    try:
        url = await gateway.initiate_session(reg_id, customer_email)
    except GatewayError as e:
        return PlainTextResponse(e.body or e.message, status_code=500)

    return RedirectResponse(url, status_code=302)


@router.post("/pelecard-callback", response_class=PlainTextResponse)
async def pelecard_callback(
    request: Request,
    workflow: ReconciliationWorkflow = Depends(get_workflow)
):
    """
    Server-side feedback from Pelecard

    Always 200 "OK": a non-2xx makes the gateway redeliver.
    """
    try:
        payload = await read_payload(request)
        result = await workflow.handle(payload)
        logger.info("webhook_handled", state=result.state.value, reg_id=result.reg_id)
    except Exception:
        logger.exception("webhook_unhandled_error")

    return PlainTextResponse("OK")


@router.get("/callback")
async def payment_redirect(
    status: str = Query("", alias="Status"),
    reg_id: str = Query("", alias="RegID"),
    pelecard_transaction_id: Optional[str] = Query(None, alias="PelecardTransactionId"),
    transaction_id: Optional[str] = Query(None, alias="TransactionId"),
    settings: Settings = Depends(get_app_settings),
    workflow: ReconciliationWorkflow = Depends(get_workflow)
):
    """User redirect - shows whatever is known so far, creates nothing"""
    total, receipt_url = await workflow.lookup_display(
        reg_id,
        pelecard_transaction_id or transaction_id
    )

    params = {
        "RegID": reg_id,
        "Status": status,
        "Total": f"{total:.2f}" if total is not None else "",
        "ReceiptURL": receipt_url or "",
    }
    return RedirectResponse(f"{settings.result_page_url}?{urlencode(params)}", status_code=302)
