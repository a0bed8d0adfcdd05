import json
import logging
from io import StringIO
from unittest.mock import Mock, patch

import pytest
from django.apps import apps
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import Client, RequestFactory

from payments.services import AuthenticationError, ConfigurationError
from payments.transactions import TransactionStatus
from payments.views import InitiatePaymentView, PaymentStatusView, StkCallbackView
from tests.test_transactions import SUCCESS_ITEMS, stk_payload

ACK = {"ResultCode": 0, "ResultDesc": "Success"}


@pytest.fixture
def rf():
    return RequestFactory()


@pytest.fixture
def daraja():
    daraja = Mock()
    daraja.push_payment.return_value = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": "ws_CO_1",
        "ResponseCode": "0",
        "ResponseDescription": "Success. Request accepted for processing",
    }
    return daraja


def _post_json(rf, path, data):
    return rf.post(path, data=json.dumps(data), content_type="application/json")


class TestInitiatePayment:
    def _view(self, store, daraja):
        return InitiatePaymentView.as_view(store=store, client_factory=lambda: daraja)

    def test_accepted_push_is_registered_pending(self, rf, store, daraja):
        request = _post_json(rf, "/payments/mpesa/initiate/", {"phone_number": "254712345678", "amount": "10"})

        response = self._view(store, daraja)(request)

        assert response.status_code == 200
        assert json.loads(response.content) == {
            "success": True,
            "message": "Payment initiated",
            "CheckoutRequestID": "ws_CO_1",
        }
        assert store.get_status("ws_CO_1").status is TransactionStatus.PENDING
        kwargs = daraja.push_payment.call_args[1]
        assert kwargs["phone_number"] == "254712345678"
        assert kwargs["amount"] == 10
        assert kwargs["account_reference"].startswith("TEST")

    def test_form_encoded_body(self, rf, store, daraja):
        request = rf.post("/payments/mpesa/initiate/", {"phone_number": "254712345678", "amount": "1"})
        response = self._view(store, daraja)(request)
        assert response.status_code == 200

    @pytest.mark.parametrize("data, message", [
        ({"phone_number": "0712345678", "amount": "10"}, "Invalid phone number format"),
        ({"phone_number": "254712345678", "amount": "ten"}, "Amount must be a number"),
        ({"phone_number": "254712345678", "amount": "0"}, "at least 1"),
    ])
    def test_validation(self, rf, store, daraja, data, message):
        response = self._view(store, daraja)(_post_json(rf, "/payments/mpesa/initiate/", data))

        assert response.status_code == 400
        assert message in json.loads(response.content)["message"]
        daraja.push_payment.assert_not_called()

    def test_client_error_is_reported(self, rf, store, daraja):
        daraja.push_payment.side_effect = AuthenticationError("Token generation failed: Invalid credentials")

        response = self._view(store, daraja)(
            _post_json(rf, "/payments/mpesa/initiate/", {"phone_number": "254712345678", "amount": "1"})
        )

        assert response.status_code == 500
        body = json.loads(response.content)
        assert body["success"] is False
        assert "failed" in body["message"]
        assert len(store) == 0

    def test_missing_configuration_is_reported(self, rf, store):
        def broken():
            raise ConfigurationError.for_missing(["passkey"])

        view = InitiatePaymentView.as_view(store=store, client_factory=broken)
        response = view(_post_json(rf, "/payments/mpesa/initiate/", {"phone_number": "254712345678", "amount": "1"}))

        assert response.status_code == 500
        assert "passkey" in json.loads(response.content)["message"]

    def test_not_accepted_is_not_registered(self, rf, store, daraja):
        daraja.push_payment.return_value = {"ResponseCode": "1", "errorMessage": "Rejected"}

        response = self._view(store, daraja)(
            _post_json(rf, "/payments/mpesa/initiate/", {"phone_number": "254712345678", "amount": "1"})
        )

        assert response.status_code == 502
        assert len(store) == 0

    @pytest.mark.parametrize("body", [None, ["ws_CO_1"], "accepted"])
    def test_non_object_response_is_rejected(self, rf, store, daraja, body):
        daraja.push_payment.return_value = body

        response = self._view(store, daraja)(
            _post_json(rf, "/payments/mpesa/initiate/", {"phone_number": "254712345678", "amount": "1"})
        )

        assert response.status_code == 502
        assert json.loads(response.content)["success"] is False
        assert len(store) == 0


class TestStkCallback:
    def _post(self, rf, store, body, content_type="application/json"):
        view = StkCallbackView.as_view(store=store)
        raw = body if isinstance(body, (str, bytes)) else json.dumps(body)
        return view(rf.post("/payments/mpesa/callback/", data=raw, content_type=content_type))

    def test_success_callback(self, rf, store):
        store.register_pending("ws_CO_1")

        response = self._post(rf, store, stk_payload(items=SUCCESS_ITEMS))

        assert response.status_code == 200
        assert json.loads(response.content) == ACK
        record = store.get_status("ws_CO_1")
        assert record.status is TransactionStatus.SUCCESS
        assert record.receipt_number == "ABC123"
        assert store.callback_failures == 0

    def test_failed_payment(self, rf, store):
        store.register_pending("ws_CO_1")
        self._post(rf, store, stk_payload(result_code=1032, result_desc="Request cancelled by user"))

        record = store.get_status("ws_CO_1")
        assert record.status is TransactionStatus.FAILED
        assert record.message == "Request cancelled by user"

    @pytest.mark.parametrize("body", ["not json", "[]", {"Body": {}}, ""])
    def test_malformed_body_still_acknowledged(self, rf, store, body):
        response = self._post(rf, store, body)

        assert response.status_code == 200
        assert json.loads(response.content) == ACK
        assert store.callback_failures == 1

    def test_internal_failure_still_acknowledged(self, rf, store, caplog):
        with patch.object(store, "apply_callback", side_effect=RuntimeError("boom")), \
                caplog.at_level(logging.INFO, logger="payments"):
            response = self._post(rf, store, stk_payload())

        assert json.loads(response.content) == ACK
        assert store.callback_failures == 1

        failed = [r for r in caplog.records if r.getMessage() == "payments.callback_failed"]
        assert len(failed) == 1
        assert failed[0].name == "payments.views"
        assert failed[0].levelno == logging.ERROR
        assert failed[0].exc_info is not None
        assert failed[0].checkout_request_id == "ws_CO_1"
        assert failed[0].error == "boom"

    def test_malformed_body_failure_is_logged(self, rf, store, caplog):
        with caplog.at_level(logging.INFO, logger="payments"):
            self._post(rf, store, "not json")

        failed = [r for r in caplog.records if r.getMessage() == "payments.callback_failed"]
        assert len(failed) == 1
        assert failed[0].checkout_request_id is None
        assert failed[0].error
        assert failed[0].body_preview == "not json"

    def test_redelivery_is_idempotent(self, rf, store):
        store.register_pending("ws_CO_1")
        self._post(rf, store, stk_payload(items=SUCCESS_ITEMS))
        first = store.get_status("ws_CO_1")

        response = self._post(rf, store, stk_payload(items=SUCCESS_ITEMS))

        assert json.loads(response.content) == ACK
        assert store.get_status("ws_CO_1") == first


class TestPaymentStatus:
    def test_unknown(self, rf, store):
        view = PaymentStatusView.as_view(store=store)
        response = view(rf.get("/payments/mpesa/status/nope/"), checkout_request_id="nope")
        assert json.loads(response.content) == {"status": "UNKNOWN", "message": "Transaction not found"}

    def test_pending(self, rf, store):
        store.register_pending("ws_CO_1")
        view = PaymentStatusView.as_view(store=store)
        response = view(rf.get("/payments/mpesa/status/ws_CO_1/"), checkout_request_id="ws_CO_1")
        assert json.loads(response.content) == {"status": "PENDING", "message": ""}


class TestRouting:
    """Full request cycle through the URLconf and the app-owned store."""

    @pytest.fixture
    def app_store(self):
        store = apps.get_app_config("payments").store
        store.clear()
        yield store
        store.clear()

    def test_index(self):
        response = Client().get("/")
        assert response.status_code == 200
        assert "mpesa_callback" in response.json()["endpoints"]

    def test_callback_then_poll(self, app_store):
        http = Client()
        app_store.register_pending("ws_CO_1")

        response = http.post("/payments/mpesa/callback/", data=stk_payload(items=SUCCESS_ITEMS),
                             content_type="application/json")
        assert response.json() == ACK

        status = http.get("/payments/mpesa/status/ws_CO_1/").json()
        assert status["status"] == "SUCCESS"
        assert status["amount"] == 500

    def test_callback_is_csrf_exempt(self, app_store):
        http = Client(enforce_csrf_checks=True)
        response = http.post("/payments/mpesa/callback/", data=stk_payload(), content_type="application/json")
        assert response.status_code == 200

    def test_initiate_requires_csrf_token(self, app_store):
        http = Client(enforce_csrf_checks=True)
        response = http.post("/payments/mpesa/initiate/", data={"phone_number": "254712345678", "amount": "1"},
                             content_type="application/json")
        assert response.status_code == 403
        assert len(app_store) == 0

    def test_form_page_renders(self):
        response = Client().get("/payments/mpesa/initiate/")
        assert response.status_code == 200
        assert b"M-Pesa Payment" in response.content

    def test_sweeper_disabled_in_tests(self):
        assert apps.get_app_config("payments").sweeper is None


class TestDarajaCommand:
    @pytest.fixture
    def daraja_cls(self):
        with patch("payments.management.commands.daraja.DarajaClient") as cls:
            yield cls

    def test_balance(self, daraja_cls):
        daraja_cls.return_value.query_account_balance.return_value = {"ResponseCode": "0"}
        out = StringIO()

        call_command("daraja", "balance", stdout=out)

        assert json.loads(out.getvalue()) == {"ResponseCode": "0"}

    def test_stk_push(self, daraja_cls):
        daraja_cls.return_value.push_payment.return_value = {"CheckoutRequestID": "ws_CO_1"}
        out = StringIO()

        call_command("daraja", "stk-push", "--phone", "254712345678", "--amount", "5", stdout=out)

        daraja_cls.return_value.push_payment.assert_called_once_with(
            phone_number="254712345678",
            amount=5,
            account_reference="TEST001",
            transaction_desc="Test Payment",
        )
        assert "ws_CO_1" in out.getvalue()

    def test_errors_become_command_errors(self, daraja_cls):
        daraja_cls.return_value.query_transaction_status.side_effect = AuthenticationError(
            "Token generation failed: Invalid credentials"
        )
        with pytest.raises(CommandError, match="Token generation failed"):
            call_command("daraja", "status", "OGR5100KTO", stdout=StringIO())
