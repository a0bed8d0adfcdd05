import json
import logging
import re
import time

from django.http import JsonResponse
from django.shortcuts import render
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from .callbacks import ACKNOWLEDGEMENT, parse_stk_callback
from .services import DarajaError

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^254[0-9]{9}$")


def _request_data(request):
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body.decode("utf-8") or "{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return request.POST


class InitiatePaymentView(View):
    """GET renders the payment form, POST sends the STK push."""

    store = None
    client_factory = None

    def get(self, request):
        return render(request, "payments/mpesa_initiate.html")

    def post(self, request):
        data = _request_data(request)
        phone_number = str(data.get("phone_number") or data.get("phoneNumber") or "").strip()
        amount_str = str(data.get("amount") or "").strip()

        if not PHONE_RE.match(phone_number):
            return JsonResponse(
                {"success": False, "message": "Invalid phone number format. Use 254XXXXXXXXX"},
                status=400,
            )
        try:
            amount = int(float(amount_str))
        except (ValueError, OverflowError):
            return JsonResponse({"success": False, "message": "Amount must be a number."}, status=400)
        if amount < 1:
            return JsonResponse({"success": False, "message": "Amount must be at least 1 KES"}, status=400)

        try:
            client = self.client_factory()
            resp = client.push_payment(
                phone_number=phone_number,
                amount=amount,
                account_reference="TEST" + str(int(time.time() * 1000)),
                transaction_desc="Payment for services",
            )
        except DarajaError as e:
            logger.error("payments.stk_push_error", extra={"error": str(e), "phone_number": phone_number})
            return JsonResponse({"success": False, "message": str(e)}, status=500)

        if not isinstance(resp, dict):
            logger.error("payments.stk_push_bad_body", extra={"body": resp})
            return JsonResponse({"success": False, "message": "Unexpected response from M-Pesa"}, status=502)

        checkout_id = resp.get("CheckoutRequestID")
        if str(resp.get("ResponseCode")) != "0" or not checkout_id:
            logger.warning("payments.stk_push_not_accepted", extra={"body": resp})
            return JsonResponse(
                {"success": False, "message": resp.get("errorMessage") or "STK Push was not accepted"},
                status=502,
            )

        # Save CheckoutRequestID for correlating the callback
        self.store.register_pending(checkout_id)
        return JsonResponse({
            "success": True,
            "message": "Payment initiated",
            "CheckoutRequestID": checkout_id,
        })


@method_decorator(csrf_exempt, name="dispatch")
class StkCallbackView(View):
    """
    Receives Safaricom's STK result. The answer is always the fixed
    acknowledgement, otherwise Safaricom redelivers the callback.
    """

    store = None

    def post(self, request):
        callback = None
        try:
            data = json.loads(request.body.decode("utf-8"))
            callback = parse_stk_callback(data)
            record = self.store.apply_callback(
                callback.checkout_request_id,
                callback.result_code,
                callback.result_desc,
                callback.items,
            )
            logger.info(
                "payments.callback_processed",
                extra={
                    "checkout_request_id": callback.checkout_request_id,
                    "result_code": callback.result_code,
                    "status": record.status.value,
                },
            )
        except Exception as e:
            self.store.record_failure()
            logger.exception(
                "payments.callback_failed",
                extra={
                    "checkout_request_id": callback.checkout_request_id if callback else None,
                    "error": str(e),
                    "body_preview": request.body[:500].decode("utf-8", "replace"),
                },
            )
        return JsonResponse(ACKNOWLEDGEMENT)


class PaymentStatusView(View):
    store = None

    def get(self, request, checkout_request_id):
        return JsonResponse(self.store.get_status(checkout_request_id).to_dict())
