"""Tests for the admin users serverless endpoint."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from api.admin_users import handler
from tests.utils.assertions import assert_json_response
from tests.utils.helpers import run_handler


@pytest.fixture
def mock_handle():
    with patch("api.admin_users.handle_admin_users", new_callable=AsyncMock) as handle:
        handle.return_value = (200, {"users": []})
        yield handle


@pytest.mark.unit
def test_options_preflight():
    response = run_handler(handler, "OPTIONS", "/api/admin_users")

    assert response["status"] == 204
    assert response["body"] == ""
    assert response["headers"]["access-control-allow-origin"] == "*"
    assert "authorization" in response["headers"]["access-control-allow-headers"]


@pytest.mark.unit
def test_get_passes_authorization(mock_handle):
    response = run_handler(
        handler, "GET", "/api/admin_users",
        headers={"Authorization": "Bearer admin-jwt"},
    )

    assert assert_json_response(response, 200) == {"users": []}
    assert response["headers"]["access-control-allow-methods"] == "GET,POST,OPTIONS"
    mock_handle.assert_awaited_once_with("GET", "Bearer admin-jwt", None)


@pytest.mark.unit
def test_post_forwards_body(mock_handle):
    mock_handle.return_value = (200, {"approved": None, "email_sent": False, "email_error": None})

    response = run_handler(
        handler, "POST", "/api/admin_users",
        headers={"Authorization": "Bearer admin-jwt", "Content-Type": "application/json"},
        body={"user_id": "u-1"},
    )

    assert_json_response(response, 200)
    method, auth, raw_body = mock_handle.await_args.args
    assert method == "POST"
    assert json.loads(raw_body) == {"user_id": "u-1"}


@pytest.mark.unit
@pytest.mark.parametrize("status, error", [
    (401, "Missing Authorization Bearer token"),
    (403, "Forbidden"),
    (400, "Missing body.user_id"),
])
def test_error_statuses_pass_through(mock_handle, status, error):
    mock_handle.return_value = (status, {"error": error})

    response = run_handler(handler, "POST", "/api/admin_users")

    assert assert_json_response(response, status) == {"error": error}


@pytest.mark.unit
def test_put_routes_to_service(mock_handle):
    mock_handle.return_value = (405, {"error": "Method not allowed"})

    response = run_handler(handler, "PUT", "/api/admin_users", headers={"Authorization": "Bearer x"})

    assert response["status"] == 405
    assert mock_handle.await_args.args[0] == "PUT"


@pytest.mark.unit
def test_correlation_id_echoed(mock_handle):
    response = run_handler(
        handler, "GET", "/api/admin_users",
        headers={"X-Correlation-ID": "req-42"},
    )

    assert response["headers"]["x-correlation-id"] == "req-42"


@pytest.mark.unit
def test_unexpected_error_is_500(mock_handle):
    mock_handle.side_effect = RuntimeError("event loop exploded")

    response = run_handler(handler, "GET", "/api/admin_users")

    assert assert_json_response(response, 500) == {"error": "event loop exploded"}
