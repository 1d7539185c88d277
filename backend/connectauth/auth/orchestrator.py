"""Flow orchestration.

Each flow is one short decision procedure: validate, exchange the code
(provider flows only), classify through the matcher, mutate the store, and
describe the outcome as a ``FlowResult``. Nothing is suspended between
requests.
"""

import secrets
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping

from connectauth.auth.errors import ConfigurationError, MissingParameterError
from connectauth.auth.exchange import CredentialExchange
from connectauth.auth.matcher import AccountMatcher
from connectauth.auth.providers import Flow, Provider, UserInfo
from connectauth.auth.session import SessionAuth
from connectauth.auth.store import AccountStore
from connectauth.core.logging import get_logger, set_log_context
from connectauth.schemas import ConnectedAccountOut, UnlinkResponse

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Everything one invocation knows about its request."""

    operation: str
    flow: Flow
    provider: Provider | None = None
    code: str | None = None
    state: str | None = None
    current_user: Any | None = None
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


class ResultKind(str, Enum):
    REDIRECT = "redirect"
    JSON = "json"


@dataclass(frozen=True)
class FlowResult:
    """What a flow produced, before it is turned into an HTTP response."""

    kind: ResultKind
    payload: Any = None
    query: Mapping[str, str] = field(default_factory=dict)
    session_headers: tuple[str, ...] = ()

    @classmethod
    def redirect(cls, query: Mapping[str, str] | None = None, session_headers: list[str] | None = None) -> "FlowResult":
        return cls(kind=ResultKind.REDIRECT, query=dict(query or {}), session_headers=tuple(session_headers or ()))

    @classmethod
    def json(cls, payload: Any) -> "FlowResult":
        return cls(kind=ResultKind.JSON, payload=payload)


class FlowOrchestrator:
    """Runs login, signup, link, unlink and listConnections."""

    def __init__(
        self,
        exchange: CredentialExchange,
        store: AccountStore,
        session_auth: SessionAuth,
    ):
        self.exchange = exchange
        self.store = store
        self.session_auth = session_auth
        self._flows: Mapping[Flow, Callable[[RequestContext], Awaitable[FlowResult]]] = MappingProxyType({
            Flow.LOGIN: self.login,
            Flow.SIGNUP: self.signup,
            Flow.LINK: self.link,
            Flow.UNLINK: self.unlink,
            Flow.LIST_CONNECTIONS: self.list_connections,
        })

    async def run(self, ctx: RequestContext) -> FlowResult:
        set_log_context(operation=ctx.operation)
        if ctx.current_user is not None:
            set_log_context(user_id=str(self.store.user_id(ctx.current_user)))
        return await self._flows[ctx.flow](ctx)

    def _matcher(self, ctx: RequestContext) -> AccountMatcher:
        return AccountMatcher(self.store, ctx.current_user)

    @staticmethod
    def _require_provider(ctx: RequestContext) -> Provider:
        if ctx.provider is None:
            raise ConfigurationError(f"{ctx.operation} was dispatched without a provider")
        return ctx.provider

    async def _user_info(self, ctx: RequestContext) -> tuple[Provider, UserInfo]:
        provider = self._require_provider(ctx)
        info = await self.exchange.exchange_code_for_user_info(provider, ctx.code, ctx.operation)
        return provider, info

    def _log_in(self, user: Any) -> list[str]:
        handler_user = self.session_auth.login_handler(user)
        return self.session_auth.create_session_headers(handler_user)

    async def login(self, ctx: RequestContext) -> FlowResult:
        provider, info = await self._user_info(ctx)
        match = await self._matcher(ctx).check_login(provider, info)

        headers = self._log_in(match.user)
        logger.info("OAuth login", provider=provider.value, user_id=str(self.store.user_id(match.user)))
        return FlowResult.redirect(session_headers=headers)

    async def signup(self, ctx: RequestContext) -> FlowResult:
        matcher = self._matcher(ctx)
        matcher.require_no_session()

        provider, info = await self._user_info(ctx)
        await matcher.check_signup(provider, info)

        user = await self.store.create_user(**self._new_user_fields(info))
        await self.store.create_connection(
            provider=provider,
            provider_user_id=info.uid,
            user_id=self.store.user_id(user),
            provider_username=info.provider_username,
        )
        await self.store.commit()

        headers = self._log_in(user)
        logger.info("OAuth signup", provider=provider.value, user_id=str(self.store.user_id(user)))
        return FlowResult.redirect(session_headers=headers)

    def _new_user_fields(self, info: UserInfo) -> dict[str, Any]:
        """Fields for a user created by signup.

        When the host logs in by email the email is the username. Otherwise
        the username is the email's local part plus a random suffix, and the
        email goes in its own field if the table has one.
        """
        schema = self.store.schema
        if schema.username_field == "email":
            return {schema.username_field: info.email}

        local_part = info.email.split("@", 1)[0]
        fields = {schema.username_field: f"{local_part}_{secrets.token_hex(4)}"}
        if schema.has_email_field:
            fields[schema.email_field] = info.email
        return fields

    async def link(self, ctx: RequestContext) -> FlowResult:
        matcher = self._matcher(ctx)
        matcher.require_session()

        provider, info = await self._user_info(ctx)
        session_user = await matcher.check_link(provider, info)

        await self.store.create_connection(
            provider=provider,
            provider_user_id=info.uid,
            user_id=self.store.user_id(session_user),
            provider_username=info.provider_username,
        )
        await self.store.commit()

        logger.info("Linked account", provider=provider.value, user_id=str(self.store.user_id(session_user)))
        return FlowResult.redirect(query={"linkedAccount": provider.value})

    async def unlink(self, ctx: RequestContext) -> FlowResult:
        matcher = self._matcher(ctx)
        matcher.require_session()
        provider = ctx.provider or self._provider_param(ctx)
        match = await matcher.check_unlink(provider)

        record = self.store.to_record(match.connection)
        await self.store.delete_connection(match.connection)
        await self.store.commit()

        logger.info("Unlinked account", provider=provider.value, user_id=str(self.store.user_id(match.user)))
        body = UnlinkResponse(provider_record=ConnectedAccountOut.model_validate(record))
        return FlowResult.json(body.model_dump(by_alias=True, mode="json"))

    @staticmethod
    def _provider_param(ctx: RequestContext) -> Provider:
        value = str(ctx.params.get("provider") or "").strip().lower()
        if not value:
            raise MissingParameterError("provider")
        try:
            return Provider(value)
        except ValueError:
            raise MissingParameterError("provider")

    async def list_connections(self, ctx: RequestContext) -> FlowResult:
        user = self._matcher(ctx).require_session()
        connections = await self.store.list_connections(self.store.user_id(user))
        return FlowResult.json([
            ConnectedAccountOut.model_validate(self.store.to_record(c)).model_dump(by_alias=True, mode="json")
            for c in connections
        ])
