"""Credential exchange: authorization code in, normalized ``UserInfo`` out."""

import httpx

from connectauth.auth.errors import (
    ConfigurationError,
    MissingParameterError,
    ProviderDisabledError,
    ProviderExchangeError,
)
from connectauth.auth.providers import Provider, ProviderRegistry, UserInfo
from connectauth.core.logging import get_logger

logger = get_logger(__name__)


def redirect_uri_for(oauth_url: str, operation: str) -> str:
    """Redirect URI registered with the provider for ``operation``.

    Must be identical in the authorization request and the code exchange.
    """
    return str(httpx.URL(oauth_url, params={"method": operation}))


class CredentialExchange:
    """Runs the provider-specific code exchange."""

    def __init__(self, registry: ProviderRegistry, oauth_url: str):
        self.registry = registry
        self.oauth_url = oauth_url

    async def exchange_code_for_user_info(
        self,
        provider: Provider,
        code: str | None,
        redirect_context: str,
    ) -> UserInfo:
        """Exchange ``code`` with ``provider`` and return who the user is.

        Args:
            provider: Provider that issued the code
            code: Single-use authorization code from the callback
            redirect_context: Operation name the code was requested for;
                it is part of the redirect URI the provider checks

        Raises:
            MissingParameterError: no code
            ProviderDisabledError: provider not configured
            ProviderExchangeError: provider rejected the code, timed out or
                returned an unusable identity
            InsufficientScopeError: the user declined a required scope
        """
        if not code or not str(code).strip():
            raise MissingParameterError("code")

        oauth_provider = self.registry.get_provider(provider)
        if oauth_provider is None:
            raise ProviderDisabledError(provider.value)

        if oauth_provider.strategy is not self.registry.strategy_for(provider):
            raise ConfigurationError(f"{provider.value} implementation does not match its profile strategy")

        redirect_uri = redirect_uri_for(self.oauth_url, redirect_context)

        try:
            token_data = await oauth_provider.exchange_code(str(code).strip(), redirect_uri)
            user_info = await oauth_provider.get_user_info(token_data)
        except httpx.TimeoutException:
            logger.warning("Provider request timed out", provider=provider.value)
            raise ProviderExchangeError(provider.value, "request timed out")
        except httpx.HTTPError as e:
            logger.warning("Provider request failed", provider=provider.value, error=str(e))
            raise ProviderExchangeError(provider.value, f"request failed: {e}")
        except ValueError as e:
            logger.warning("Provider returned malformed JSON", provider=provider.value, error=str(e))
            raise ProviderExchangeError(provider.value, "malformed provider response")
        except ProviderExchangeError as e:
            logger.warning("Provider exchange rejected", provider=provider.value, error=e.params.get("detail"))
            raise

        logger.info(
            "Exchanged authorization code",
            provider=provider.value,
            strategy=oauth_provider.strategy.value,
            uid=user_info.uid,
        )
        return user_info
