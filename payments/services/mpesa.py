import base64
import datetime as dt
import logging

import requests
from requests.auth import HTTPBasicAuth

from .base import PaymentProvider
from .config import DarajaConfig
from .errors import AuthenticationError, OperationError, TransportError

logger = logging.getLogger(__name__)


class DarajaClient(PaymentProvider):
    """
    Client for the Safaricom Daraja API.

    The OAuth access token is fetched on first use and kept for the lifetime
    of the client. Every call is a single request; nothing is retried.
    """

    TOKEN_PATH = "/oauth/v1/generate?grant_type=client_credentials"
    STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
    STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"
    B2C_PATH = "/mpesa/b2c/v1/paymentrequest"
    B2B_PATH = "/mpesa/b2b/v1/paymentrequest"
    TRANSACTION_STATUS_PATH = "/mpesa/transactionstatus/v1/query"
    ACCOUNT_BALANCE_PATH = "/mpesa/accountbalance/v1/query"
    REVERSAL_PATH = "/mpesa/reversal/v1/request"
    C2B_REGISTER_PATH = "/mpesa/c2b/v1/registerurl"
    C2B_SIMULATE_PATH = "/mpesa/c2b/v1/simulate"

    def __init__(self, config=None, fallback=None, session=None):
        self.config = DarajaConfig.resolve(config, fallback=fallback)
        self.session = session or requests.Session()
        self.access_token = None

    @property
    def base_url(self):
        return self.config.base_url

    # -- auth -------------------------------------------------------------

    def acquire_credential(self):
        url = f"{self.base_url}{self.TOKEN_PATH}"
        try:
            response = self.session.get(
                url,
                auth=HTTPBasicAuth(self.config.consumer_key, self.config.consumer_secret),
                headers={"Accept": "application/json"},
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise AuthenticationError(f"Token generation failed: {e}") from e

        if not response.ok:
            raise AuthenticationError(
                f"Token generation failed: {_error_message(response)}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise AuthenticationError(
                f"Token generation failed: non-JSON body (status={response.status_code})"
            ) from e
        if not isinstance(data, dict) or not data.get("access_token"):
            raise AuthenticationError(f"Token generation failed: access_token missing from {data}")

        self.access_token = data["access_token"]
        logger.info("mpesa.token_acquired", extra={"environment": self.config.environment})
        return self.access_token

    def _timestamp(self):
        return dt.datetime.now(dt.timezone.utc).strftime("%Y%m%d%H%M%S")

    def _password(self, timestamp):
        raw = f"{self.config.shortcode}{self.config.passkey}{timestamp}".encode("utf-8")
        return base64.b64encode(raw).decode("utf-8")

    def _post(self, path, payload, operation):
        if not self.access_token:
            self.acquire_credential()

        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            response = self.session.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            logger.error("mpesa.transport_error", extra={"operation": operation, "error": str(e)})
            raise TransportError(f"{operation} failed: {e}", operation=operation) from e

        if not response.ok:
            logger.warning(
                "mpesa.request_rejected",
                extra={"operation": operation, "status_code": response.status_code},
            )
            raise OperationError(
                f"{operation} failed: {_error_message(response)}",
                operation=operation,
                status_code=response.status_code,
                body=_json_or_none(response),
            )

        data = _json_or_none(response)
        if data is None:
            raise OperationError(
                f"{operation} failed: non-JSON body (status={response.status_code})",
                operation=operation,
                status_code=response.status_code,
            )
        return data

    # -- Lipa na M-Pesa Online (STK push) ---------------------------------

    def push_payment(self, phone_number, amount, account_reference, transaction_desc):
        timestamp = self._timestamp()
        payload = {
            "BusinessShortCode": self.config.shortcode,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount,
            "PartyA": phone_number,
            "PartyB": self.config.shortcode,
            "PhoneNumber": phone_number,
            "CallBackURL": self.config.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": transaction_desc,
        }
        return self._post(self.STK_PUSH_PATH, payload, "STK push")

    def query_push_status(self, checkout_request_id):
        timestamp = self._timestamp()
        payload = {
            "BusinessShortCode": self.config.shortcode,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id,
        }
        return self._post(self.STK_QUERY_PATH, payload, "STK push query")

    # -- initiator operations ---------------------------------------------

    def disburse(self, amount, phone_number, command_id=None, remarks=None, occasion=""):
        """
        B2C payment from the business short code to a customer.

        command_id is one of BusinessPayment (default), SalaryPayment or
        PromotionPayment.
        """
        payload = {
            "InitiatorName": self.config.initiator_name,
            "SecurityCredential": self.config.security_credential,
            "CommandID": command_id or "BusinessPayment",
            "Amount": amount,
            "PartyA": self.config.shortcode,
            "PartyB": phone_number,
            "Remarks": remarks or "B2C Payment",
            "QueueTimeOutURL": self.config.timeout_url,
            "ResultURL": self.config.result_url,
            "Occasion": occasion,
        }
        return self._post(self.B2C_PATH, payload, "B2C payment")

    def query_transaction_status(self, transaction_id, remarks="Transaction Status Query", occasion=""):
        payload = {
            "Initiator": self.config.initiator_name,
            "SecurityCredential": self.config.security_credential,
            "CommandID": "TransactionStatusQuery",
            "TransactionID": transaction_id,
            "PartyA": self.config.shortcode,
            "IdentifierType": "4",
            "ResultURL": self.config.result_url,
            "QueueTimeOutURL": self.config.timeout_url,
            "Remarks": remarks,
            "Occasion": occasion,
        }
        return self._post(self.TRANSACTION_STATUS_PATH, payload, "Transaction status query")

    def query_account_balance(self, remarks="Account Balance Query"):
        payload = {
            "Initiator": self.config.initiator_name,
            "SecurityCredential": self.config.security_credential,
            "CommandID": "AccountBalance",
            "PartyA": self.config.shortcode,
            "IdentifierType": "4",
            "Remarks": remarks,
            "QueueTimeOutURL": self.config.timeout_url,
            "ResultURL": self.config.result_url,
        }
        return self._post(self.ACCOUNT_BALANCE_PATH, payload, "Account balance query")

    def business_transfer(self, amount, receiver_shortcode, account_reference,
                          command_id="BusinessPayBill", remarks="B2B Payment"):
        payload = {
            "Initiator": self.config.initiator_name,
            "SecurityCredential": self.config.security_credential,
            "CommandID": command_id,
            "SenderIdentifierType": "4",
            "RecieverIdentifierType": "4",
            "Amount": amount,
            "PartyA": self.config.shortcode,
            "PartyB": receiver_shortcode,
            "AccountReference": account_reference,
            "Remarks": remarks,
            "QueueTimeOutURL": self.config.timeout_url,
            "ResultURL": self.config.result_url,
        }
        return self._post(self.B2B_PATH, payload, "B2B payment")

    def reverse_transaction(self, transaction_id, amount, remarks="Transaction Reversal", occasion=""):
        payload = {
            "Initiator": self.config.initiator_name,
            "SecurityCredential": self.config.security_credential,
            "CommandID": "TransactionReversal",
            "TransactionID": transaction_id,
            "Amount": amount,
            "ReceiverParty": self.config.shortcode,
            "RecieverIdentifierType": "11",
            "ResultURL": self.config.result_url,
            "QueueTimeOutURL": self.config.timeout_url,
            "Remarks": remarks,
            "Occasion": occasion,
        }
        return self._post(self.REVERSAL_PATH, payload, "Transaction reversal")

    # -- C2B ----------------------------------------------------------------

    def register_notification_urls(self, confirmation_url, validation_url, response_type="Completed"):
        payload = {
            "ShortCode": self.config.shortcode,
            "ResponseType": response_type,
            "ConfirmationURL": confirmation_url,
            "ValidationURL": validation_url,
        }
        return self._post(self.C2B_REGISTER_PATH, payload, "C2B URL registration")

    def merchant_simulate(self, amount, phone_number, bill_ref_number, command_id="CustomerPayBillOnline"):
        """Sandbox-only: pretend a customer paid the short code."""
        payload = {
            "ShortCode": self.config.shortcode,
            "CommandID": command_id,
            "Amount": amount,
            "Msisdn": phone_number,
            "BillRefNumber": bill_ref_number,
        }
        return self._post(self.C2B_SIMULATE_PATH, payload, "C2B simulation")


def _json_or_none(response):
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response):
    # Daraja error bodies look like {"requestId", "errorCode", "errorMessage"}
    body = _json_or_none(response)
    if isinstance(body, dict) and body.get("errorMessage"):
        return body["errorMessage"]
    return f"status={response.status_code}, body={response.text}"
