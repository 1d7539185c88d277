"""Test configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from urllib.parse import parse_qsl

import httpx
import jwt
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set up test environment variables BEFORE importing connectauth modules
os.environ.setdefault("SESSION_SECRET_KEY", "test-session-secret-for-testing-only")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from connectauth.auth.exchange import CredentialExchange
from connectauth.auth.orchestrator import FlowOrchestrator
from connectauth.auth.providers import build_registry
from connectauth.auth.providers.apple_provider import AppleProvider
from connectauth.auth.providers.github_provider import GitHubProvider
from connectauth.auth.providers.google_provider import GoogleProvider
from connectauth.auth.session import SessionAuth
from connectauth.auth.store import AccountStore
from connectauth.config import Settings
from connectauth.database import Base
from connectauth.models import ConnectedAccount, User

APPLE_KEY = ec.generate_private_key(ec.SECP256R1())
APPLE_PRIVATE_KEY_PEM = APPLE_KEY.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
).decode()

# Signs fake identity tokens; the engine does not check provider signatures
PROVIDER_SIGNING_KEY = "provider-signing-key-for-tests-only"

TOKEN_URLS = {
    GoogleProvider.TOKEN_URL: "google",
    AppleProvider.TOKEN_URL: "apple",
    GitHubProvider.TOKEN_URL: "github",
}


def make_id_token(sub: str, email: str | None, audience: str, expires_in: int = 600, **claims) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "iss": "https://provider.example",
        "sub": sub,
        "aud": audience,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        **claims,
    }
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, PROVIDER_SIGNING_KEY, algorithm="HS256")


class FakeProviderAPI:
    """In-memory stand-in for the provider token and profile endpoints.

    Identities are registered per (provider, code); exchanging an unknown
    code fails the way the real provider would.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.identities: dict[tuple[str, str], dict] = {}
        self.github_scope = "read:user,user:email"
        self.token_requests: dict[str, list[dict]] = {"google": [], "apple": [], "github": []}

    def add_identity(
        self,
        provider: str,
        code: str,
        uid: str,
        email: str,
        username: str | None = None,
        email_public: bool = True,
    ) -> None:
        self.identities[(provider, code)] = {
            "uid": uid,
            "email": email,
            "username": username,
            "email_public": email_public,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        if request.method == "POST" and url in TOKEN_URLS:
            return self._token(TOKEN_URLS[url], request)
        if url == GitHubProvider.USER_URL:
            return self._github_user(request)
        if url == GitHubProvider.EMAILS_URL:
            return self._github_emails(request)
        return httpx.Response(404, json={"error": "not_found"})

    def _client_id(self, provider: str) -> str:
        return {
            "google": self.settings.google_client_id,
            "apple": self.settings.apple_client_id,
            "github": self.settings.github_client_id,
        }[provider]

    def _token(self, provider: str, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        self.token_requests[provider].append(form)
        identity = self.identities.get((provider, form.get("code")))

        if provider == "github":
            # GitHub reports a bad code with a 200
            if identity is None:
                return httpx.Response(200, json={"error": "bad_verification_code"})
            return httpx.Response(200, json={
                "access_token": f"gho-{form['code']}",
                "scope": self.github_scope,
                "token_type": "bearer",
            })

        if identity is None:
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(200, json={
            "access_token": f"at-{form['code']}",
            "token_type": "Bearer",
            "expires_in": 3600,
            "id_token": make_id_token(identity["uid"], identity["email"], self._client_id(provider)),
        })

    def _github_identity(self, request: httpx.Request) -> dict | None:
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        return self.identities.get(("github", token.removeprefix("gho-")))

    def _github_user(self, request: httpx.Request) -> httpx.Response:
        identity = self._github_identity(request)
        if identity is None:
            return httpx.Response(401, json={"message": "Bad credentials"})
        return httpx.Response(200, json={
            "id": int(identity["uid"]),
            "login": identity["username"],
            "email": identity["email"] if identity["email_public"] else None,
        })

    def _github_emails(self, request: httpx.Request) -> httpx.Response:
        identity = self._github_identity(request)
        if identity is None:
            return httpx.Response(401, json={"message": "Bad credentials"})
        return httpx.Response(200, json=[
            {"email": "noreply@users.github.example", "primary": False, "verified": True},
            {"email": identity["email"], "primary": True, "verified": True},
        ])


@pytest.fixture
def settings() -> Settings:
    """Settings with every provider configured."""
    return Settings(
        session_secret_key="test-session-secret-for-testing-only",
        frontend_url="http://localhost:8910",
        api_url="http://localhost:8911",
        allowed_redirect_origins="https://app.example.com",
        google_client_id="google-client-id",
        google_client_secret="google-client-secret",
        github_client_id="github-client-id",
        github_client_secret="github-client-secret",
        apple_client_id="com.example.app",
        apple_team_id="TEAM123456",
        apple_key_id="KEY123ABC",
        apple_private_key=APPLE_PRIVATE_KEY_PEM,
        rate_limit_enabled=False,
    )


@pytest.fixture
def provider_api(settings: Settings) -> FakeProviderAPI:
    return FakeProviderAPI(settings)


@pytest.fixture
def registry(settings: Settings, provider_api: FakeProviderAPI):
    return build_registry(settings, transport=httpx.MockTransport(provider_api.handler))


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def store(db_session: AsyncSession) -> AccountStore:
    return AccountStore(db_session)


@pytest.fixture
def session_auth(settings: Settings, store: AccountStore) -> SessionAuth:
    return SessionAuth(settings, store)


@pytest.fixture
def exchange(registry, settings: Settings) -> CredentialExchange:
    return CredentialExchange(registry, settings.oauth_url)


@pytest.fixture
def orchestrator(exchange, store, session_auth) -> FlowOrchestrator:
    return FlowOrchestrator(exchange=exchange, store=store, session_auth=session_auth)


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory for users of the host password subsystem."""

    async def _make_user(username: str, email: str | None = None, password: str | None = None) -> User:
        user = User(username=username, email=email, hashed_password=password)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def connect(db_session: AsyncSession):
    """Factory that links a provider identity to a user."""

    async def _connect(user: User, provider: str, provider_user_id: str, provider_username: str = "") -> ConnectedAccount:
        connection = ConnectedAccount(
            provider=provider,
            provider_user_id=provider_user_id,
            user_id=user.id,
            provider_username=provider_username or provider_user_id,
        )
        db_session.add(connection)
        await db_session.commit()
        return connection

    return _connect


@pytest_asyncio.fixture
async def test_user(make_user) -> User:
    """A user who signed up with a password."""
    return await make_user("alice", email="alice@example.com", password="hashed-password")


@pytest.fixture
def id_token_factory():
    return make_id_token


@pytest.fixture
def apple_public_key():
    return APPLE_KEY.public_key()
