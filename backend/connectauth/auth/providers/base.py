"""Base OAuth Provider Interface.

Defines the provider vocabulary shared by every flow and the contract each
provider implementation fulfils.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

import httpx

from connectauth.auth.errors import ProviderExchangeError


class Provider(str, Enum):
    """Supported identity providers."""
    APPLE = "apple"
    GOOGLE = "google"
    GITHUB = "github"

    @property
    def method_suffix(self) -> str:
        """Spelling used in operation names, e.g. ``loginWithGithub``."""
        return self.value.capitalize()


class ProfileStrategy(str, Enum):
    """How a provider hands over the user's profile."""
    OIDC = "oidc"  # identity token returned by the token endpoint
    OAUTH2 = "oauth2"  # access token, then a call to the profile endpoint


class Flow(str, Enum):
    """The account flows the engine runs."""
    LOGIN = "login"
    SIGNUP = "signup"
    LINK = "link"
    UNLINK = "unlink"
    LIST_CONNECTIONS = "listConnections"


PROVIDER_FLOWS = (Flow.LOGIN, Flow.SIGNUP, Flow.LINK)


@dataclass(frozen=True)
class UserInfo:
    """Normalized identity returned by every provider.

    ``uid`` is the provider-scoped subject id and is the only value used to
    decide whether an identity is already connected. It is never the email.
    """

    uid: str
    email: str
    provider_username: str


@dataclass(frozen=True)
class ProviderCapability:
    """Static description of what a provider supports."""

    provider: Provider
    profile_strategy: ProfileStrategy
    verbs: Mapping[Flow, str] = field(
        default_factory=lambda: MappingProxyType({flow: "GET" for flow in PROVIDER_FLOWS})
    )
    # False when the provider POSTs the callback from its own site instead of redirecting
    redirect_supported: bool = True
    # Client secret is a short-lived signed token instead of a static string
    client_assertion: bool = False
    required_scopes: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClientAssertionConfig:
    """Key material for providers that authenticate with a signed client secret."""

    team_id: str
    key_id: str
    private_key: str
    audience: str
    ttl_seconds: int = 300


@dataclass(frozen=True)
class OAuthConfig:
    """Credentials and options for one provider."""

    client_id: str
    client_secret: str = ""
    scopes: tuple[str, ...] = ()
    assertion: ClientAssertionConfig | None = None
    response_mode: str | None = None
    timeout_seconds: float = 10.0


class OAuthProvider(ABC):
    """Abstract base class for OAuth providers.

    Each provider must implement:
    - get_authorization_url(): Build the consent URL the browser is sent to
    - get_user_info(): Turn the token endpoint response into a ``UserInfo``

    The code-for-token exchange is shared: every supported provider accepts a
    form-encoded POST to its token endpoint.
    """

    AUTHORIZE_URL: str = ""
    TOKEN_URL: str = ""

    def __init__(
        self,
        config: OAuthConfig,
        capability: ProviderCapability,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.capability = capability
        self._transport = transport

    @property
    def provider(self) -> Provider:
        return self.capability.provider

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name for UI display."""
        pass

    @property
    @abstractmethod
    def strategy(self) -> ProfileStrategy:
        """Profile strategy this implementation follows."""
        pass

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport)

    def get_scopes(self) -> list[str]:
        """Get OAuth scopes to request.

        Returns configured scopes or provider defaults.
        """
        return list(self.config.scopes) or self._default_scopes()

    @abstractmethod
    def _default_scopes(self) -> list[str]:
        """Default scopes for this provider."""
        pass

    def client_secret(self) -> str:
        """Client secret sent to the token endpoint.

        Providers with the client assertion capability get a freshly signed
        token on every call; it is never cached.
        """
        if self.capability.client_assertion:
            from connectauth.auth.providers.client_assertion import build_client_assertion

            return build_client_assertion(self.config)
        return self.config.client_secret

    def get_authorization_url(self, redirect_uri: str, state: str) -> str:
        """Generate the OAuth authorization URL."""
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "state": state,
            **self._extra_authorization_params(),
        }
        scopes = self.get_scopes()
        if scopes:
            params["scope"] = " ".join(scopes)
        return str(httpx.URL(self.AUTHORIZE_URL, params=params))

    def _extra_authorization_params(self) -> dict[str, str]:
        return {}

    async def exchange_code(self, code: str, redirect_uri: str) -> dict[str, Any]:
        """Exchange an authorization code at the token endpoint.

        Authorization codes are single-use: this is never retried.
        """
        async with self._client() as client:
            response = await client.post(
                self.TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.config.client_id,
                    "client_secret": self.client_secret(),
                    "redirect_uri": redirect_uri,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
            )

        if response.status_code != 200:
            raise ProviderExchangeError(self.provider.value, f"token endpoint returned {response.status_code}: {response.text}")

        try:
            token_data = response.json()
        except ValueError:
            raise ProviderExchangeError(self.provider.value, "token endpoint returned a non-JSON body")

        if not isinstance(token_data, dict):
            raise ProviderExchangeError(self.provider.value, "token endpoint returned an unexpected body")

        # GitHub reports failures with a 200 and an error field
        if "error" in token_data:
            detail = token_data.get("error_description") or token_data["error"]
            raise ProviderExchangeError(self.provider.value, f"token endpoint error: {detail}")

        return token_data

    @abstractmethod
    async def get_user_info(self, token_data: dict[str, Any]) -> UserInfo:
        """Build normalized user info from the token endpoint response."""
        pass
