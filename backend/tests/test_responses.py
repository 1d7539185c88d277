"""Tests for response shaping."""

import httpx
import pytest

from connectauth.auth.errors import ErrorMessages, LastCredentialError, NoSuchAccountError
from connectauth.auth.orchestrator import FlowResult, RequestContext
from connectauth.auth.providers import Flow, Provider
from connectauth.auth.responses import ResponseShaper


@pytest.fixture
def shaper() -> ResponseShaper:
    return ResponseShaper(
        ErrorMessages({"noSuchAccount": "No account for {provider}."}),
        frontend_url="http://localhost:8910",
        allowed_origins=["http://localhost:8910", "https://app.example.com"],
    )


def ctx(flow: Flow, state: str | None = None) -> RequestContext:
    return RequestContext(operation="op", flow=flow, provider=Provider.GITHUB, state=state)


class TestReturnUrl:

    def test_defaults_to_frontend(self, shaper):
        assert shaper.return_url(None) == "http://localhost:8910"

    def test_path_is_resolved_against_frontend(self, shaper):
        assert shaper.return_url("/settings/accounts") == "http://localhost:8910/settings/accounts"

    def test_allowed_origin_kept(self, shaper):
        assert shaper.return_url("https://app.example.com/welcome") == "https://app.example.com/welcome"

    @pytest.mark.parametrize("state", [
        "https://evil.example.com/phish",
        "//evil.example.com/phish",
        "javascript:alert(1)",
        "https://app.example.com.evil.example/",
    ])
    def test_foreign_origin_falls_back(self, shaper, state):
        assert shaper.return_url(state) == "http://localhost:8910"


class TestSuccess:

    def test_redirect_with_cookies(self, shaper):
        result = FlowResult.redirect(session_headers=["session=abc; HttpOnly; Path=/"])

        response = shaper.success(ctx(Flow.LOGIN, "/home"), result)

        assert response.status_code == 303
        assert response.headers["location"] == "http://localhost:8910/home"
        assert response.headers.getlist("set-cookie") == ["session=abc; HttpOnly; Path=/"]

    def test_redirect_with_query(self, shaper):
        response = shaper.success(ctx(Flow.LINK, "/settings?tab=accounts"), FlowResult.redirect({"linkedAccount": "github"}))

        location = httpx.URL(response.headers["location"])
        assert location.path == "/settings"
        assert location.params["tab"] == "accounts"
        assert location.params["linkedAccount"] == "github"

    def test_json(self, shaper):
        response = shaper.success(ctx(Flow.LIST_CONNECTIONS), FlowResult.json([]))

        assert response.status_code == 200
        assert response.body == b"[]"


class TestFailure:

    def test_redirect_flow_error(self, shaper):
        response = shaper.failure(ctx(Flow.LOGIN), NoSuchAccountError("github"))

        assert response.status_code == 303
        location = httpx.URL(response.headers["location"])
        assert location.params["oAuthError"] == "No account for github."
        assert "set-cookie" not in response.headers

    def test_json_flow_error(self, shaper):
        response = shaper.failure(ctx(Flow.UNLINK), LastCredentialError("github"))

        assert response.status_code == 400
        assert b"only way to log in" in response.body

    def test_unexpected_error_is_generic(self, shaper):
        response = shaper.failure(ctx(Flow.SIGNUP), RuntimeError("connection reset by peer"))

        location = httpx.URL(response.headers["location"])
        assert location.params["oAuthError"] == "Something went wrong. Please try again."

    def test_not_found(self, shaper):
        assert shaper.not_found("Unknown method: x").status_code == 404
