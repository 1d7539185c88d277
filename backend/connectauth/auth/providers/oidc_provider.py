"""OpenID Connect token-endpoint strategy.

The token endpoint returns an identity token alongside the access token; the
user's identity is read from its claims, so no second call is made.
"""

from typing import Any

import jwt

from connectauth.auth.errors import ProviderExchangeError
from connectauth.auth.providers.base import OAuthProvider, ProfileStrategy, UserInfo


class OIDCProvider(OAuthProvider):
    """Base for providers that return an ID token from the token endpoint."""

    @property
    def strategy(self) -> ProfileStrategy:
        return ProfileStrategy.OIDC

    def _default_scopes(self) -> list[str]:
        return ["openid", "email"]

    def _decode_id_token(self, id_token: str) -> dict[str, Any]:
        """Decode ID token claims (without signature verification).

        Expiry and audience are still checked against our client id.
        """
        try:
            return jwt.decode(
                id_token,
                options={
                    "verify_signature": False,
                    "verify_exp": True,
                    "verify_aud": True,
                },
                audience=self.config.client_id,
            )
        except jwt.PyJWTError as e:
            raise ProviderExchangeError(self.provider.value, f"invalid id_token: {e}")

    async def get_user_info(self, token_data: dict[str, Any]) -> UserInfo:
        """Extract user info from the ID token claims."""
        id_token = token_data.get("id_token")
        if not id_token:
            raise ProviderExchangeError(self.provider.value, "token response has no id_token")

        claims = self._decode_id_token(id_token)

        uid = claims.get("sub")
        email = claims.get("email")
        if not uid or not email:
            raise ProviderExchangeError(self.provider.value, "id_token is missing the sub or email claim")

        return UserInfo(
            uid=str(uid),
            email=email,
            provider_username=self._provider_username(claims) or email,
        )

    def _provider_username(self, claims: dict[str, Any]) -> str | None:
        return claims.get("preferred_username")
