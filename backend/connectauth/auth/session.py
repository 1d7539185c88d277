"""Host password-auth collaborator.

The OAuth flows never create sessions themselves. They ask this collaborator
who is logged in, hand it the user they authenticated, and get back the
headers that log the browser in. Sessions are HS256 JWTs carried in a cookie
(or a Bearer header for API clients).
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt
from starlette.requests import Request
from starlette.responses import Response

from connectauth.auth.errors import NoUserIdError, NotLoggedInError
from connectauth.auth.store import AccountStore
from connectauth.config import Settings

LoginHandler = Callable[[Any], Any]


def default_login_handler(user: Any) -> Any:
    return user


class SessionAuth:
    """Session handling of the password-auth subsystem."""

    def __init__(
        self,
        settings: Settings,
        store: AccountStore,
        login_handler: LoginHandler = default_login_handler,
    ):
        self.settings = settings
        self.store = store
        self._login_handler = login_handler

    def create_session_token(self, user_id: str, username: str) -> str:
        """Create JWT token for a user session."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "username": username,
            "exp": now + timedelta(days=self.settings.session_expiration_days),
            "iat": now,
        }
        return jwt.encode(payload, self.settings.session_secret_key, algorithm=self.settings.session_algorithm)

    def verify_token(self, token: str) -> dict | None:
        """Verify and decode a session token."""
        try:
            return jwt.decode(
                token,
                self.settings.session_secret_key,
                algorithms=[self.settings.session_algorithm],
            )
        except jwt.InvalidTokenError:
            return None

    def _read_token(self, request: Request) -> str | None:
        authorization = request.headers.get("Authorization", "")
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials:
            return credentials
        return request.cookies.get(self.settings.session_cookie_name)

    async def current_user(self, request: Request) -> Any:
        """Return the logged-in user.

        Raises:
            NotLoggedInError: no session, or it is invalid, expired or stale
        """
        token = self._read_token(request)
        if not token:
            raise NotLoggedInError()

        payload = self.verify_token(token)
        if not payload or not payload.get("sub"):
            raise NotLoggedInError()

        user = await self.store.find_user_by_id(payload["sub"])
        if user is None:
            raise NotLoggedInError()
        return user

    async def current_user_or_none(self, request: Request) -> Any | None:
        """Get current user if authenticated, None otherwise."""
        try:
            return await self.current_user(request)
        except NotLoggedInError:
            return None

    def login_handler(self, user: Any) -> Any:
        """Run the host's login hook; its result must carry the id field."""
        handler_user = self._login_handler(user)
        id_field = self.store.schema.id_field
        if isinstance(handler_user, dict):
            user_id = handler_user.get(id_field)
        else:
            user_id = getattr(handler_user, id_field, None)
        if not user_id:
            raise NoUserIdError(id_field)
        return handler_user

    def create_session_headers(self, user: Any) -> list[str]:
        """``Set-Cookie`` values that log the browser in as ``user``."""
        schema = self.store.schema
        if isinstance(user, dict):
            user_id, username = user[schema.id_field], user.get(schema.username_field, "")
        else:
            user_id, username = getattr(user, schema.id_field), getattr(user, schema.username_field, "")

        token = self.create_session_token(str(user_id), str(username))

        carrier = Response()
        carrier.set_cookie(
            key=self.settings.session_cookie_name,
            value=token,
            httponly=True,
            secure=self.settings.cookie_secure,
            samesite="lax",  # strict would drop it on the redirect back from the provider
            max_age=self.settings.session_expiration_days * 24 * 60 * 60,
            domain=self.settings.cookie_domain,
        )
        return [value for key, value in carrier.headers.items() if key == "set-cookie"]
