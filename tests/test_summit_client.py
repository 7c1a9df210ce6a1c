# tests/test_summit_client.py
# Summit client tests (HTTP mocked with respx)

import json
import pytest
import sys
import os
from decimal import Decimal

import httpx
import respx

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from core.errors import AccountingError
from integrations.models import (
    CustomerRecord,
    DocumentRequest,
    LineItem,
    PaymentBlock,
    PaymentMethod,
    SideCallOutcome
)
from integrations.summit_client import SummitClient, unwrap_summit


DOCUMENT_URL = "https://app.sumit.co.il/accounting/documents/create/"
UPDATE_URL = "https://app.sumit.co.il/accounting/customers/update/"
CREATE_URL = "https://app.sumit.co.il/accounting/customers/create/"


def make_request(method=PaymentMethod.CREDIT, **payment):
    return DocumentRequest(
        customer=CustomerRecord(external_identifier="FAM-7", name="Jane", company_number="012345678"),
        item=LineItem(description="Registration", unit_price=Decimal("150.00"), sku="SKU-1"),
        payment=PaymentBlock(method=method, amount=Decimal("150.00"), **payment)
    )


class TestUnwrap:
    """Response envelope"""

    def test_success_returns_data(self):
        assert unwrap_summit({"Status": 0, "Data": {"DocumentID": 5}}) == {"DocumentID": 5}

    def test_success_without_data(self):
        assert unwrap_summit({"Status": 0}) == {}

    def test_user_message_first(self):
        with pytest.raises(AccountingError) as exc:
            unwrap_summit({"Status": 1, "UserErrorMessage": "לקוח לא נמצא", "TechnicalErrorDetails": "E42"})
        assert exc.value.message == "לקוח לא נמצא"

    def test_technical_details_second(self):
        with pytest.raises(AccountingError) as exc:
            unwrap_summit({"Status": 2, "TechnicalErrorDetails": "E42"})
        assert exc.value.message == "E42"

    def test_generic_fallback(self):
        with pytest.raises(AccountingError) as exc:
            unwrap_summit({"Status": 2})
        assert exc.value.message == "Summit returned an error"

    def test_invalid_envelope(self):
        with pytest.raises(AccountingError) as exc:
            unwrap_summit({"Data": {}})
        assert exc.value.message == "Invalid response from Summit"

    @pytest.mark.parametrize("data", [[1, 2], "DOC-1", 42])
    def test_non_object_data(self, data):
        """Data must be an object on success"""
        with pytest.raises(AccountingError) as exc:
            unwrap_summit({"Status": 0, "Data": data})
        assert exc.value.message == "Invalid response from Summit"


class TestDocumentPayload:
    """Request body shape"""

    def test_credit_card_payload(self, settings):
        client = SummitClient(settings)
        payload = client.build_document_payload(make_request(last4="4242", payments=3))

        assert payload["Details"]["Type"] == 1
        assert payload["Details"]["IsDraft"] is False
        assert payload["Details"]["Customer"]["ExternalIdentifier"] == "FAM-7"
        assert payload["Details"]["Customer"]["SearchMode"] == 2
        assert payload["Items"][0]["Quantity"] == 1
        assert payload["Items"][0]["UnitPrice"] == 150.0
        assert payload["Items"][0]["TotalPrice"] == 150.0
        assert payload["Items"][0]["Item"]["SKU"] == "SKU-1"
        assert payload["Payments"][0] == {
            "Amount": 150.0,
            "Type": 5,
            "Details_CreditCard": {"Last4Digits": "4242", "Payments": 3}
        }
        assert payload["VATIncluded"] is True

    def test_bank_transfer_payload(self, settings):
        client = SummitClient(settings)
        payload = client.build_document_payload(
            make_request(PaymentMethod.BANK, bank="12", branch="600", account="123456")
        )

        assert payload["Payments"][0]["Type"] == 4
        assert payload["Payments"][0]["Details_BankTransfer"] == {
            "BankNumber": "12",
            "BranchNumber": "600",
            "AccountNumber": "123456"
        }

    def test_cash_payload(self, settings):
        client = SummitClient(settings)
        payload = client.build_document_payload(make_request(PaymentMethod.CASH))
        assert payload["Payments"][0] == {"Amount": 150.0, "Type": 1}


class TestCreateDocument:

    @pytest.mark.asyncio
    async def test_success(self, settings):
        client = SummitClient(settings)
        try:
            with respx.mock() as router:
                route = router.post(DOCUMENT_URL).respond(200, json={
                    "Status": 0,
                    "Data": {"DocumentID": 9001, "DocumentDownloadURL": "https://app.sumit.co.il/d/9001.pdf"}
                })
                result = await client.create_document(make_request())
        finally:
            await client.close()

        assert result.document_id == "9001"
        assert result.receipt_url == "https://app.sumit.co.il/d/9001.pdf"

        sent = json.loads(route.calls.last.request.content)
        assert sent["Credentials"] == {"CompanyID": 12345, "APIKey": "summit_test_key"}

    @pytest.mark.asyncio
    async def test_success_without_document_id(self, settings):
        client = SummitClient(settings)
        try:
            with respx.mock() as router:
                router.post(DOCUMENT_URL).respond(200, json={"Status": 0, "Data": {}})
                with pytest.raises(AccountingError) as exc:
                    await client.create_document(make_request())
        finally:
            await client.close()

        assert exc.value.message == "document creation failed"

    @pytest.mark.asyncio
    async def test_remote_error_message(self, settings):
        client = SummitClient(settings)
        try:
            with respx.mock() as router:
                router.post(DOCUMENT_URL).respond(200, json={"Status": 1, "UserErrorMessage": "פריט לא קיים"})
                with pytest.raises(AccountingError) as exc:
                    await client.create_document(make_request())
        finally:
            await client.close()

        assert exc.value.message == "פריט לא קיים"

    @pytest.mark.asyncio
    async def test_missing_credentials(self, settings):
        blank = settings.model_copy(update={"summit_api_key": ""})
        client = SummitClient(blank)
        try:
            with respx.mock(assert_all_called=False) as router:
                route = router.post(DOCUMENT_URL).respond(200, json={"Status": 0})
                with pytest.raises(AccountingError) as exc:
                    await client.create_document(make_request())
                assert not route.called
        finally:
            await client.close()

        assert exc.value.message == "Missing Summit credentials in env variables"

    @pytest.mark.asyncio
    async def test_transport_error(self, settings):
        client = SummitClient(settings)
        try:
            with respx.mock() as router:
                router.post(DOCUMENT_URL).mock(side_effect=httpx.ConnectTimeout("slow"))
                with pytest.raises(AccountingError):
                    await client.create_document(make_request())
        finally:
            await client.close()


class TestUpsertCustomer:
    """Update first, create as fallback, never raises"""

    @pytest.mark.asyncio
    async def test_update_succeeds(self, settings):
        client = SummitClient(settings)
        try:
            with respx.mock(assert_all_called=False) as router:
                update = router.post(UPDATE_URL).respond(200, json={"Status": 0, "Data": {"CustomerID": 1}})
                create = router.post(CREATE_URL).respond(200, json={"Status": 0})
                outcome = await client.upsert_customer(CustomerRecord(external_identifier="FAM-7", name="Jane"))
        finally:
            await client.close()

        assert outcome == SideCallOutcome.APPLIED
        assert update.called
        assert not create.called

    @pytest.mark.asyncio
    async def test_falls_back_to_create(self, settings):
        client = SummitClient(settings)
        try:
            with respx.mock() as router:
                router.post(UPDATE_URL).respond(200, json={"Status": 1, "UserErrorMessage": "not found"})
                create = router.post(CREATE_URL).respond(200, json={"Status": 0, "Data": {"CustomerID": 2}})
                outcome = await client.upsert_customer(CustomerRecord(external_identifier="FAM-7"))
        finally:
            await client.close()

        assert outcome == SideCallOutcome.APPLIED
        sent = json.loads(create.calls.last.request.content)
        assert sent["Details"]["ExternalIdentifier"] == "FAM-7"

    @pytest.mark.asyncio
    async def test_both_fail_is_ignored(self, settings):
        client = SummitClient(settings)
        try:
            with respx.mock() as router:
                router.post(UPDATE_URL).respond(200, json={"Status": 1})
                router.post(CREATE_URL).mock(side_effect=httpx.ConnectError("down"))
                outcome = await client.upsert_customer(CustomerRecord(external_identifier="FAM-7"))
        finally:
            await client.close()

        assert outcome == SideCallOutcome.FAILED_IGNORED

    @pytest.mark.asyncio
    async def test_without_identifier_skipped(self, settings):
        client = SummitClient(settings)
        try:
            outcome = await client.upsert_customer(CustomerRecord(name="Jane"))
        finally:
            await client.close()

        assert outcome == SideCallOutcome.SKIPPED_NOT_FOUND
