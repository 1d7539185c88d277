"""Account matching.

Resolves an identity along three axes (provider identity, email, current
session) and decides whether a flow may proceed. These rules are what stand
between a provider login and an account takeover:

- login only ever trusts the provider identity, never an email match
- signup refuses anything that already exists
- link refuses identities owned by anyone, and emails owned by someone else
- unlink refuses to remove a user's last way to log in
"""

from dataclasses import dataclass
from typing import Any

from connectauth.auth.errors import (
    AlreadyLoggedInError,
    ConnectionNotFoundError,
    EmailAlreadyRegisteredError,
    EmailConflictError,
    LastCredentialError,
    NoSuchAccountError,
    NotLoggedInError,
    ProviderAlreadyLinkedError,
)
from connectauth.auth.providers import Provider, UserInfo
from connectauth.auth.store import AccountStore
from connectauth.models import ConnectedAccount


@dataclass(frozen=True)
class LoginMatch:
    connection: ConnectedAccount
    user: Any


@dataclass(frozen=True)
class UnlinkMatch:
    user: Any
    connection: ConnectedAccount


class AccountMatcher:
    """Identity lookups and the per-flow classification rules."""

    def __init__(self, store: AccountStore, current_user: Any | None = None):
        self.store = store
        self._current_user = current_user

    async def find_by_provider_identity(self, provider: Provider, uid: str) -> ConnectedAccount | None:
        return await self.store.find_connection(provider, uid)

    async def find_by_email(self, email: str) -> Any | None:
        """Find a user by email.

        The username field is tried first (many hosts log in by email), then
        the dedicated email field when the table has one.
        """
        schema = self.store.schema
        user = await self.store.find_user_by_field(schema.username_field, email)
        if user is None and schema.has_email_field and schema.email_field != schema.username_field:
            user = await self.store.find_user_by_field(schema.email_field, email)
        return user

    def current_session(self) -> Any | None:
        return self._current_user

    def _same_user(self, a: Any, b: Any) -> bool:
        return str(self.store.user_id(a)) == str(self.store.user_id(b))

    async def check_signup(self, provider: Provider, info: UserInfo) -> None:
        if self.current_session() is not None:
            raise AlreadyLoggedInError()
        if await self.find_by_provider_identity(provider, info.uid) is not None:
            raise ProviderAlreadyLinkedError(provider.value)
        if await self.find_by_email(info.email) is not None:
            raise EmailAlreadyRegisteredError()

    async def check_login(self, provider: Provider, info: UserInfo) -> LoginMatch:
        connection = await self.find_by_provider_identity(provider, info.uid)
        if connection is None:
            raise NoSuchAccountError(provider.value)

        user = await self.store.find_user_by_id(connection.user_id)
        if user is None:
            # Dangling connection; treat it like no account at all
            raise NoSuchAccountError(provider.value)
        return LoginMatch(connection=connection, user=user)

    async def check_link(self, provider: Provider, info: UserInfo) -> Any:
        """Return the session user the identity may be linked to."""
        session_user = self.current_session()
        if session_user is None:
            raise NotLoggedInError()
        if await self.find_by_provider_identity(provider, info.uid) is not None:
            raise ProviderAlreadyLinkedError(provider.value)

        email_user = await self.find_by_email(info.email)
        if email_user is not None and not self._same_user(email_user, session_user):
            raise EmailConflictError()
        return session_user

    async def check_unlink(self, provider: Provider) -> UnlinkMatch:
        session_user = self.current_session()
        if session_user is None:
            raise NotLoggedInError()

        user_id = self.store.user_id(session_user)
        connection = await self.store.find_user_connection(user_id, provider)
        if connection is None:
            raise ConnectionNotFoundError(provider.value)

        remaining_connections = await self.store.count_connections(user_id) - 1
        if remaining_connections < 1 and not self.store.has_password(session_user):
            raise LastCredentialError(provider.value)
        return UnlinkMatch(user=session_user, connection=connection)

    def require_session(self) -> Any:
        session_user = self.current_session()
        if session_user is None:
            raise NotLoggedInError()
        return session_user

    def require_no_session(self) -> None:
        if self.current_session() is not None:
            raise AlreadyLoggedInError()
