import os

import pytest
import requests

from common.config import Settings
from common.errors import RetryExhausted, TransportError
from policy.document import PolicyDocumentClient

URL = "https://www.example.com/privacy"


@pytest.fixture
def settings(mocker):
    """Fixture to create a Settings object for tests."""
    mocker.patch.dict(os.environ, {"MAX_RETRIES": "3", "USER_AGENT": "test-agent"}, clear=True)
    return Settings()


@pytest.fixture
def document_client(settings):
    client = PolicyDocumentClient(settings)
    yield client
    client.close()


def test_fetch_parses_document(document_client, requests_mock):
    requests_mock.get(URL, text="<html><body><p>Hello privacy</p></body></html>")

    document = document_client.fetch(URL)

    assert document.find("p").get_text() == "Hello privacy"
    assert requests_mock.last_request.headers["User-Agent"] == "test-agent"
    assert requests_mock.last_request.timeout == 30


def test_fetch_follows_redirects(document_client, requests_mock):
    requests_mock.get(URL, status_code=301, headers={"Location": URL + "-v2"})
    requests_mock.get(URL + "-v2", text="<p>Moved policy</p>")

    assert document_client.fetch_html(URL) == "<p>Moved policy</p>"


def test_http_error_raises_transport_error(document_client, requests_mock, mocker):
    sleep_spy = mocker.patch("common.utils._sleep")
    requests_mock.get(URL, status_code=404)

    with pytest.raises(TransportError, match="Failed to fetch policy document"):
        document_client.fetch_html(URL)

    assert requests_mock.call_count == 1
    sleep_spy.assert_not_called()


def test_connection_errors_are_retried(document_client, requests_mock, mocker):
    sleep_spy = mocker.patch("common.utils._sleep")
    requests_mock.get(
        URL,
        [
            {"exc": requests.exceptions.ConnectionError("reset")},
            {"text": "<p>Recovered</p>"},
        ],
    )

    assert document_client.fetch_html(URL) == "<p>Recovered</p>"
    assert requests_mock.call_count == 2
    sleep_spy.assert_called_once_with(1.5)


def test_connection_errors_exhaust_retries(document_client, requests_mock, mocker):
    mocker.patch("common.utils._sleep")
    requests_mock.get(URL, exc=requests.exceptions.ConnectTimeout("slow"))

    with pytest.raises(RetryExhausted, match="_get failed after 3 attempts"):
        document_client.fetch_html(URL)

    assert requests_mock.call_count == 3
