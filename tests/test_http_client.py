from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest
import requests

from http_client import HTTPRequestError, RateLimitExceeded, RetryingHTTPClient, ensure_ok


def _resp(status: int) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status
    return mock


def _client(*responses: object) -> tuple[RetryingHTTPClient, MagicMock]:
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = list(responses)
    return RetryingHTTPClient(session=session), session


def test_success_returns_first_response() -> None:
    client, session = _client(_resp(200))

    with patch("http_client.time.sleep") as mock_sleep:
        response = client.get("https://example.com", params={"a": "1"})

    assert response.status_code == 200
    assert session.get.call_count == 1
    mock_sleep.assert_not_called()


def test_server_errors_retried_with_linear_backoff() -> None:
    client, session = _client(_resp(502), _resp(503), _resp(200))

    with patch("http_client.time.sleep") as mock_sleep:
        response = client.get("https://example.com")

    assert response.status_code == 200
    assert session.get.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]


def test_persistent_server_error_returned_after_retries() -> None:
    client, session = _client(_resp(500), _resp(500), _resp(500))

    with patch("http_client.time.sleep"):
        response = client.get("https://example.com")

    assert response.status_code == 500
    assert session.get.call_count == 3


def test_retried_server_error_responses_are_closed() -> None:
    first, second, last = _resp(500), _resp(502), _resp(503)
    client, _ = _client(first, second, last)

    with patch("http_client.time.sleep"):
        response = client.get("https://example.com")

    assert response is last
    first.close.assert_called_once()
    second.close.assert_called_once()
    last.close.assert_not_called()


def test_connection_errors_retried_then_raised() -> None:
    client, session = _client(
        requests.ConnectionError("reset"),
        requests.Timeout("slow"),
        requests.ConnectionError("reset again"),
    )

    with patch("http_client.time.sleep"), pytest.raises(HTTPRequestError, match="reset again"):
        client.get("https://example.com")

    assert session.get.call_count == 3


def test_connection_error_then_success() -> None:
    client, _ = _client(requests.ConnectionError("reset"), _resp(200))

    with patch("http_client.time.sleep"):
        assert client.get("https://example.com").status_code == 200


def test_rate_limit_is_never_retried() -> None:
    client, session = _client(_resp(429), _resp(200))

    with patch("http_client.time.sleep") as mock_sleep, pytest.raises(RateLimitExceeded):
        client.get("https://example.com")

    assert session.get.call_count == 1
    mock_sleep.assert_not_called()


def test_rate_limit_after_server_error() -> None:
    client, session = _client(_resp(503), _resp(429))

    with patch("http_client.time.sleep"), pytest.raises(RateLimitExceeded):
        client.get("https://example.com")

    assert session.get.call_count == 2


def test_client_errors_returned_without_retry() -> None:
    client, session = _client(_resp(404))

    response = client.get("https://example.com")

    assert response.status_code == 404
    assert session.get.call_count == 1


def test_cancelled_run_stops_retrying() -> None:
    cancel = threading.Event()
    cancel.set()
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = [_resp(503), _resp(200)]
    client = RetryingHTTPClient(session=session, cancel=cancel)

    response = client.get("https://example.com")

    assert response.status_code == 503
    assert session.get.call_count == 1


def test_user_agent_set_on_session() -> None:
    session = MagicMock()
    session.headers = {}
    RetryingHTTPClient(session=session, user_agent="steam-pick/1.0")
    assert session.headers["User-Agent"] == "steam-pick/1.0"


def test_ensure_ok() -> None:
    ensure_ok(_resp(200), "svc")
    with pytest.raises(HTTPRequestError, match="svc returned status: 404") as excinfo:
        ensure_ok(_resp(404), "svc")
    assert excinfo.value.status_code == 404
