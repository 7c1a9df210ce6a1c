# tests/conftest.py
# Pytest shared setup and fixtures

import pytest
import sys
import os

# backend path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from fastapi.testclient import TestClient

from core.config import Settings
from core.errors import AccountingError
from integrations.models import DocumentResult, SideCallOutcome, TransactionDetails
from storage.scratch_store import ScratchStore


@pytest.fixture
def settings(tmp_path):
    """Settings with fake credentials and a temporary scratch dir"""
    return Settings(
        _env_file=None,
        summit_company_id="12345",
        summit_api_key="summit_test_key",
        pelecard_terminal="0962210",
        pelecard_user="testuser",
        pelecard_password="testpass",
        public_base_url="https://bridge.example.org",
        result_page_url="https://site.example.org/result",
        sf_return_url="https://crm.example.org/receipt",
        scratch_dir=tmp_path / "registrations",
        log_json=False,
    )


@pytest.fixture
def store(settings):
    return ScratchStore(settings.scratch_dir)


@pytest.fixture
def client(settings):
    """TestClient with the lifespan running"""
    from main import create_app

    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def approved_notification():
    """Flat Pelecard feedback for an approved 150.00 payment"""
    return {
        "TransactionId": "tx-1001",
        "ParamX": "ABC",
        "ShvaResult": "000",
        "DebitTotal": "15000",
        "TotalPayments": "3",
        "CreditCardNumber": "458012******4242",
    }


@pytest.fixture
def declined_notification():
    return {
        "TransactionId": "tx-1002",
        "ParamX": "ABC",
        "ShvaResult": "001",
        "DebitTotal": "15000",
    }


class FakeGateway:
    """PelecardClient stand-in - lookup returns the given details"""

    def __init__(self, details=None):
        self.details = details
        self.lookups = []

    async def fetch_transaction(self, transaction_id):
        self.lookups.append(transaction_id)
        if self.details is None:
            return None
        return TransactionDetails(fields=self.details)


class FakeAccounting:
    """SummitClient stand-in - records every call"""

    def __init__(self, error=None, upsert_outcome=SideCallOutcome.APPLIED):
        self.error = error
        self.upsert_outcome = upsert_outcome
        self.customers = []
        self.documents = []

    async def upsert_customer(self, customer):
        self.customers.append(customer)
        return self.upsert_outcome

    async def create_document(self, request):
        if self.error:
            raise AccountingError(self.error)
        self.documents.append(request)
        number = len(self.documents)
        return DocumentResult(
            document_id=f"DOC-{number}",
            receipt_url=f"https://app.sumit.co.il/docs/{number}.pdf"
        )


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def fake_accounting():
    return FakeAccounting()
