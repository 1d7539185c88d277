"""Method dispatch for the single OAuth endpoint.

Every OAuth request hits one URL and names its operation in ``method``,
either in the query string or in the body. The operation decides the flow
and provider; the HTTP verb must match the one the registry expects. Providers
that post their callback cross-site are bounced to a GET first.
"""

import json
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import parse_qsl

import httpx
from fastapi import status
from fastapi.responses import RedirectResponse
from starlette.requests import Request
from starlette.responses import Response

from connectauth.auth.orchestrator import FlowOrchestrator, RequestContext
from connectauth.auth.providers import Flow, Provider, ProviderRegistry
from connectauth.auth.responses import ResponseShaper
from connectauth.auth.session import SessionAuth
from connectauth.auth.store import AccountStore
from connectauth.core.logging import get_logger, set_log_context

logger = get_logger(__name__)


class Operation(str, Enum):
    LOGIN_WITH_APPLE = "loginWithApple"
    LOGIN_WITH_GOOGLE = "loginWithGoogle"
    LOGIN_WITH_GITHUB = "loginWithGithub"
    SIGNUP_WITH_APPLE = "signupWithApple"
    SIGNUP_WITH_GOOGLE = "signupWithGoogle"
    SIGNUP_WITH_GITHUB = "signupWithGithub"
    LINK_APPLE_ACCOUNT = "linkAppleAccount"
    LINK_GOOGLE_ACCOUNT = "linkGoogleAccount"
    LINK_GITHUB_ACCOUNT = "linkGithubAccount"
    UNLINK_ACCOUNT = "unlinkAccount"
    GET_CONNECTED_ACCOUNTS = "getConnectedAccounts"


def operation_name(flow: Flow, provider: Provider | None = None) -> str:
    """Wire name of the operation running ``flow`` (with ``provider``)."""
    if flow is Flow.LOGIN:
        return f"loginWith{provider.method_suffix}"
    if flow is Flow.SIGNUP:
        return f"signupWith{provider.method_suffix}"
    if flow is Flow.LINK:
        return f"link{provider.method_suffix}Account"
    if flow is Flow.UNLINK:
        return Operation.UNLINK_ACCOUNT.value
    return Operation.GET_CONNECTED_ACCOUNTS.value


def _build_operations() -> Mapping[Operation, tuple[Flow, Provider | None]]:
    table: dict[Operation, tuple[Flow, Provider | None]] = {
        Operation.UNLINK_ACCOUNT: (Flow.UNLINK, None),
        Operation.GET_CONNECTED_ACCOUNTS: (Flow.LIST_CONNECTIONS, None),
    }
    for flow in (Flow.LOGIN, Flow.SIGNUP, Flow.LINK):
        for provider in Provider:
            table[Operation(operation_name(flow, provider))] = (flow, provider)
    return MappingProxyType(table)


OPERATIONS = _build_operations()


async def read_body_params(request: Request) -> dict[str, Any]:
    """Parse the request body as JSON, falling back to form encoding.

    Apple's ``form_post`` response mode posts the code as a form; API
    clients send JSON. Anything else yields no parameters.
    """
    raw = await request.body()
    if not raw:
        return {}
    text = raw.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(text)
    except ValueError:
        return dict(parse_qsl(text))
    return parsed if isinstance(parsed, dict) else {}


class MethodDispatcher:
    """Routes a request to its flow and shapes whatever comes back."""

    def __init__(
        self,
        registry: ProviderRegistry,
        orchestrator: FlowOrchestrator,
        shaper: ResponseShaper,
        session_auth: SessionAuth,
        oauth_url: str,
    ):
        self.registry = registry
        self.orchestrator = orchestrator
        self.shaper = shaper
        self.session_auth = session_auth
        self.oauth_url = oauth_url

    @property
    def store(self) -> AccountStore:
        return self.orchestrator.store

    def replay_as_get(self, operation: Operation, params: Mapping[str, Any]) -> Response:
        """Bounce a cross-site callback POST to a GET on this endpoint."""
        query = {"method": operation.value}
        query.update({key: str(params[key]) for key in ("code", "state") if params.get(key)})
        logger.info("Replaying provider callback as GET", method=operation.value)
        url = httpx.URL(self.oauth_url, params=query)
        return RedirectResponse(str(url), status_code=status.HTTP_303_SEE_OTHER)

    def resolve(self, method: str | None) -> Operation | None:
        if not method:
            return None
        try:
            return Operation(method)
        except ValueError:
            return None

    async def invoke(self, request: Request) -> Response:
        body = await read_body_params(request) if request.method != "GET" else {}
        params = {**body, **request.query_params}

        method = request.query_params.get("method") or body.get("method")
        operation = self.resolve(method)
        if operation is None:
            logger.info("Unknown OAuth method", method=method, verb=request.method)
            return self.shaper.not_found(f"Unknown method: {method}")

        flow, provider = OPERATIONS[operation]
        expected_verb = self.registry.verb_for(flow, provider)
        if self.registry.replays_callback(flow, provider):
            if request.method == expected_verb:
                return self.replay_as_get(operation, params)
            expected_verb = "GET"
        if request.method != expected_verb:
            logger.info(
                "OAuth method called with the wrong verb",
                method=operation.value,
                verb=request.method,
                expected=expected_verb,
            )
            return self.shaper.not_found(f"{operation.value} requires {expected_verb}")

        current_user = await self.session_auth.current_user_or_none(request)
        ctx = RequestContext(
            operation=operation.value,
            flow=flow,
            provider=provider,
            code=params.get("code"),
            state=params.get("state"),
            current_user=current_user,
            params=MappingProxyType(params),
        )
        set_log_context(operation=ctx.operation)

        try:
            result = await self.orchestrator.run(ctx)
        except Exception as e:
            await self.store.rollback()
            return self.shaper.failure(ctx, e)
        return self.shaper.success(ctx, result)
