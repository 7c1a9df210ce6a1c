# backend/integrations/pelecard_client.py
# Pelecard payment gateway client (hosted payment page + transaction lookup)

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
import structlog

from core.config import Settings
from core.errors import GatewayError
from .models import TransactionDetails


logger = structlog.get_logger(__name__)

# Shva result / API status meaning "approved"
APPROVED_CODES = {"000", "0"}

CURRENCY_ILS = "1"
ACTION_DEBIT = "J4"


def is_approved(code: Any) -> bool:
    return code is not None and str(code).strip() in APPROVED_CODES


class PelecardClient:
    """Pelecard PaymentGW API"""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.base_url = settings.pelecard_base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.http_timeout_seconds
        )

    def _credentials(self) -> Dict[str, str]:
        return {
            "terminal": self.settings.pelecard_terminal,
            "user": self.settings.pelecard_user,
            "password": self.settings.pelecard_password,
        }

    def _callback_url(self, path: str, **params: str) -> str:
        base = self.settings.public_base_url.rstrip("/")
        query = f"?{urlencode(params)}" if params else ""
        return f"{base}{path}{query}"

    def build_session_request(self, reg_id: str, customer_email: Optional[str] = None) -> Dict[str, Any]:
        """Free-amount hosted page; the registration id rides along as ParamX"""
        payload = {
            **self._credentials(),
            "ActionType": ACTION_DEBIT,
            "Currency": CURRENCY_ILS,
            "Total": 0,
            "FreeTotal": True,
            "MinPayments": self.settings.pelecard_min_payments,
            "MaxPayments": self.settings.pelecard_max_payments,
            "ParamX": reg_id,
            "GoodURL": self._callback_url("/callback", Status="approved", RegID=reg_id),
            "ErrorURL": self._callback_url("/callback", Status="failed", RegID=reg_id),
            "ServerSideGoodFeedbackURL": self._callback_url("/pelecard-callback"),
            "ServerSideErrorFeedbackURL": self._callback_url("/pelecard-callback"),
            "Language": "HE",
        }
        if customer_email:
            payload["CustomerEmail"] = customer_email
        return payload

    async def initiate_session(self, reg_id: str, customer_email: Optional[str] = None) -> str:
        """Returns the hosted payment page URL to redirect the user to"""
        payload = self.build_session_request(reg_id, customer_email)

        try:
            response = await self.http_client.post(f"{self.base_url}/init", json=payload)
        except httpx.HTTPError as e:
            logger.error("pelecard_init_unreachable", reg_id=reg_id, error=str(e))
            raise GatewayError("payment gateway unreachable", body=str(e))

        try:
            data = response.json()
        except ValueError:
            data = None

        url = data.get("URL") if isinstance(data, dict) else None
        if not url:
            logger.error(
                "pelecard_init_failed",
                reg_id=reg_id,
                status_code=response.status_code,
                body=response.text[:500]
            )
            raise GatewayError("payment gateway returned no URL", body=response.text)

        logger.info("pelecard_session_created", reg_id=reg_id)
        return url

    async def fetch_transaction(self, transaction_id: str) -> Optional[TransactionDetails]:
        """Best-effort lookup - None on any transport, HTTP or parse failure"""
        payload = {**self._credentials(), "TransactionId": transaction_id}

        try:
            response = await self.http_client.post(f"{self.base_url}/GetTransaction", json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("pelecard_lookup_failed", transaction_id=transaction_id, error=str(e))
            return None

        if not isinstance(data, dict) or not is_approved(data.get("StatusCode")):
            logger.warning(
                "pelecard_lookup_rejected",
                transaction_id=transaction_id,
                status=data.get("StatusCode") if isinstance(data, dict) else None
            )
            return None

        result = data.get("ResultData")
        if not isinstance(result, dict):
            return None

        return TransactionDetails(fields=result)

    async def close(self):
        await self.http_client.aclose()
