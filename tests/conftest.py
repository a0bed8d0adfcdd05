"""Pytest fixtures shared by the client, store and view tests."""
import json
import os
from unittest.mock import Mock

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "daraja_project.settings")
os.environ["MPESA_SWEEP_INTERVAL"] = "0"
os.environ.update({
    "CONSUMER_KEY": "test_consumer_key",
    "CONSUMER_SECRET": "test_consumer_secret",
    "BUSINESS_SHORT_CODE": "174379",
    "PASS_KEY": "test_pass_key",
    "CALLBACK_URL": "https://example.com/callback",
    "INITIATOR_NAME": "testapi",
    "SECURITY_CREDENTIAL": "encrypted_cred_b64==",
    "RESULT_URL": "https://example.com/result",
    "TIMEOUT_URL": "https://example.com/timeout",
    "ENVIRONMENT": "sandbox",
})
django.setup()


BASE_CONFIG = {
    "consumer_key": "test_consumer_key",
    "consumer_secret": "test_consumer_secret",
    "environment": "sandbox",
    "shortcode": "174379",
    "passkey": "test_pass_key",
    "callback_url": "https://example.com/callback",
    "initiator_name": "testapi",
    "security_credential": "encrypted_cred_b64==",
    "result_url": "https://example.com/result",
    "timeout_url": "https://example.com/timeout",
}


def mock_http_response(json_data, status_code=200):
    """Mock requests.Response whose .json() returns json_data."""
    resp = Mock()
    resp.ok = 200 <= status_code < 400
    resp.status_code = status_code
    if json_data is None:
        resp.json.side_effect = ValueError("No JSON object could be decoded")
        resp.text = "<html>error</html>"
    else:
        resp.json.return_value = json_data
        resp.text = json.dumps(json_data)
    return resp


def token_response():
    return mock_http_response({"access_token": "test_access_token", "expires_in": "3599"})


@pytest.fixture
def session():
    session = Mock()
    session.get.return_value = token_response()
    return session


@pytest.fixture
def client(session):
    from payments.services import DarajaClient

    return DarajaClient(BASE_CONFIG, fallback={}, session=session)


@pytest.fixture
def store():
    from payments.transactions import TransactionStore

    return TransactionStore()
