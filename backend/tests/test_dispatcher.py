"""Tests for the operation table and body parsing."""

import pytest
from starlette.requests import Request

from connectauth.auth.dispatcher import OPERATIONS, Operation, operation_name, read_body_params
from connectauth.auth.providers import Flow, Provider


def make_request(body: bytes, content_type: str = "application/json") -> Request:
    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": "POST",
        "path": "/auth/oauth",
        "query_string": b"",
        "headers": [(b"content-type", content_type.encode())],
    }
    return Request(scope, receive)


def test_every_operation_is_routed():
    assert set(OPERATIONS) == set(Operation)
    assert len(OPERATIONS) == 11


@pytest.mark.parametrize("operation, flow, provider", [
    ("loginWithApple", Flow.LOGIN, Provider.APPLE),
    ("signupWithGithub", Flow.SIGNUP, Provider.GITHUB),
    ("linkGoogleAccount", Flow.LINK, Provider.GOOGLE),
    ("unlinkAccount", Flow.UNLINK, None),
    ("getConnectedAccounts", Flow.LIST_CONNECTIONS, None),
])
def test_operation_routes(operation, flow, provider):
    assert OPERATIONS[Operation(operation)] == (flow, provider)


def test_operation_names_round_trip():
    for operation, (flow, provider) in OPERATIONS.items():
        assert operation_name(flow, provider) == operation.value


@pytest.mark.asyncio
async def test_json_body():
    params = await read_body_params(make_request(b'{"method": "unlinkAccount", "provider": "apple"}'))

    assert params == {"method": "unlinkAccount", "provider": "apple"}


@pytest.mark.asyncio
async def test_form_body():
    params = await read_body_params(make_request(
        b"code=c.0.abc&state=%2Fhome&user=%7B%22name%22%3A%7B%7D%7D",
        content_type="application/x-www-form-urlencoded",
    ))

    assert params["code"] == "c.0.abc"
    assert params["state"] == "/home"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"", b"[1, 2]", b"42"])
async def test_bodies_without_params(body):
    assert await read_body_params(make_request(body)) == {}
