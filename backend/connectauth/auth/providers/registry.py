"""OAuth Provider Registry.

Immutable lookup table built once from settings:
- which providers are enabled
- the HTTP verb each operation must arrive with
- each provider's profile strategy and configured implementation

Adding a provider means adding one capability entry, one implementation
class and a settings block here.
"""

import logging
from types import MappingProxyType
from typing import Mapping

import httpx

from connectauth.auth.errors import ConfigurationError
from connectauth.auth.providers.apple_provider import APPLE_ISSUER, AppleProvider
from connectauth.auth.providers.base import (
    ClientAssertionConfig,
    Flow,
    OAuthConfig,
    OAuthProvider,
    PROVIDER_FLOWS,
    ProfileStrategy,
    Provider,
    ProviderCapability,
)
from connectauth.auth.providers.github_provider import GitHubProvider
from connectauth.auth.providers.google_provider import GoogleProvider
from connectauth.config import Settings

logger = logging.getLogger(__name__)

# Verbs for the operations that do not name a provider
PROVIDER_AGNOSTIC_VERBS: Mapping[Flow, str] = MappingProxyType({
    Flow.UNLINK: "DELETE",
    Flow.LIST_CONNECTIONS: "GET",
})

PROVIDER_CLASSES: Mapping[Provider, type[OAuthProvider]] = MappingProxyType({
    Provider.APPLE: AppleProvider,
    Provider.GOOGLE: GoogleProvider,
    Provider.GITHUB: GitHubProvider,
})


def _verbs(verb: str) -> Mapping[Flow, str]:
    return MappingProxyType({flow: verb for flow in PROVIDER_FLOWS})


def default_capabilities(settings: Settings) -> dict[Provider, ProviderCapability]:
    """Built-in capabilities, adjusted for the provider options in ``settings``."""
    apple_form_post = settings.apple_response_mode == "form_post"
    return {
        Provider.APPLE: ProviderCapability(
            provider=Provider.APPLE,
            profile_strategy=ProfileStrategy.OIDC,
            verbs=_verbs("POST" if apple_form_post else "GET"),
            redirect_supported=not apple_form_post,
            client_assertion=True,
        ),
        Provider.GOOGLE: ProviderCapability(
            provider=Provider.GOOGLE,
            profile_strategy=ProfileStrategy.OIDC,
        ),
        Provider.GITHUB: ProviderCapability(
            provider=Provider.GITHUB,
            profile_strategy=ProfileStrategy.OAUTH2,
            required_scopes=tuple(settings.github_scope_list()),
        ),
    }


class ProviderRegistry:
    """Read-only view of provider capabilities and configured implementations."""

    def __init__(
        self,
        capabilities: Mapping[Provider, ProviderCapability],
        providers: Mapping[Provider, OAuthProvider],
    ):
        for provider, capability in capabilities.items():
            if capability.provider is not provider:
                raise ConfigurationError(f"capability registered under {provider.value} describes {capability.provider.value}")
            if provider is Provider.GITHUB and capability.profile_strategy is not ProfileStrategy.OAUTH2:
                raise ConfigurationError("github only supports the oauth2 profile strategy")
        for provider, implementation in providers.items():
            if provider not in capabilities:
                raise ConfigurationError(f"no capability registered for {provider.value}")
            if implementation.strategy is not capabilities[provider].profile_strategy:
                raise ConfigurationError(
                    f"{provider.value} implementation uses {implementation.strategy.value}, "
                    f"capability declares {capabilities[provider].profile_strategy.value}"
                )

        self._capabilities = MappingProxyType(dict(capabilities))
        self._providers = MappingProxyType(dict(providers))

    def capability(self, provider: Provider) -> ProviderCapability:
        try:
            return self._capabilities[provider]
        except KeyError:
            raise ConfigurationError(f"no profile strategy registered for {provider.value}")

    def strategy_for(self, provider: Provider) -> ProfileStrategy:
        return self.capability(provider).profile_strategy

    def is_enabled(self, provider: Provider) -> bool:
        return provider in self._providers

    def verb_for(self, flow: Flow, provider: Provider | None = None) -> str:
        """HTTP verb an operation of ``flow`` must arrive with."""
        if flow in PROVIDER_AGNOSTIC_VERBS:
            return PROVIDER_AGNOSTIC_VERBS[flow]
        if provider is None:
            raise ConfigurationError(f"{flow.value} needs a provider")
        return self.capability(provider).verbs[flow]

    def replays_callback(self, flow: Flow, provider: Provider | None = None) -> bool:
        """Whether ``provider`` delivers ``flow`` callbacks as a cross-site POST.

        Browsers withhold the lax session cookie on such a POST, so it is
        answered with a 303 to a first-party GET that runs the flow.
        """
        if provider is None or flow not in PROVIDER_FLOWS:
            return False
        return not self.capability(provider).redirect_supported

    def get_provider(self, provider: Provider) -> OAuthProvider | None:
        """Get the configured implementation, or None when disabled."""
        return self._providers.get(provider)

    def enabled_providers(self) -> list[OAuthProvider]:
        return [self._providers[p] for p in Provider if p in self._providers]


def build_registry(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderRegistry:
    """Build the registry from settings.

    A provider is enabled when it is listed in ENABLED_PROVIDERS and its
    credentials are present:
    - GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET
    - GITHUB_CLIENT_ID / GITHUB_CLIENT_SECRET (GITHUB_SCOPES optional)
    - APPLE_CLIENT_ID / APPLE_TEAM_ID / APPLE_KEY_ID / APPLE_PRIVATE_KEY
    """
    capabilities = default_capabilities(settings)
    wanted = set()
    for name in settings.enabled_provider_names():
        try:
            wanted.add(Provider(name))
        except ValueError:
            raise ConfigurationError(f"unknown provider in ENABLED_PROVIDERS: {name}")

    configs: dict[Provider, OAuthConfig] = {}
    timeout = settings.provider_timeout_seconds

    if settings.google_client_id and settings.google_client_secret:
        configs[Provider.GOOGLE] = OAuthConfig(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            timeout_seconds=timeout,
        )

    if settings.github_client_id and settings.github_client_secret:
        configs[Provider.GITHUB] = OAuthConfig(
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            scopes=tuple(settings.github_scope_list()),
            timeout_seconds=timeout,
        )

    if all((settings.apple_client_id, settings.apple_team_id, settings.apple_key_id, settings.apple_private_key)):
        configs[Provider.APPLE] = OAuthConfig(
            client_id=settings.apple_client_id,
            assertion=ClientAssertionConfig(
                team_id=settings.apple_team_id,
                key_id=settings.apple_key_id,
                # Env files often carry the PEM with escaped newlines
                private_key=settings.apple_private_key.replace("\\n", "\n"),
                audience=APPLE_ISSUER,
            ),
            response_mode=settings.apple_response_mode,
            timeout_seconds=timeout,
        )

    providers: dict[Provider, OAuthProvider] = {}
    for provider in Provider:
        if provider not in wanted:
            continue
        if provider not in configs:
            logger.warning(f"{provider.value} is listed in ENABLED_PROVIDERS but has no credentials; leaving it disabled")
            continue
        providers[provider] = PROVIDER_CLASSES[provider](configs[provider], capabilities[provider], transport)
        logger.info(f"Registered {provider.value} OAuth provider")

    logger.info(f"Initialized {len(providers)} OAuth providers: {[p.value for p in providers]}")
    return ProviderRegistry(capabilities, providers)
