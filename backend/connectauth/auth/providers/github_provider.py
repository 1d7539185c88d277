"""GitHub OAuth Provider.

GitHub is plain OAuth 2.0: the code buys an access token, and the profile
comes from the REST API.
"""

import re
from typing import Any

from connectauth.auth.errors import InsufficientScopeError, ProviderExchangeError
from connectauth.auth.providers.base import OAuthProvider, ProfileStrategy, UserInfo


class GitHubProvider(OAuthProvider):
    """GitHub OAuth provider implementation."""

    AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
    TOKEN_URL = "https://github.com/login/oauth/access_token"
    USER_URL = "https://api.github.com/user"
    EMAILS_URL = "https://api.github.com/user/emails"

    @property
    def display_name(self) -> str:
        return "GitHub"

    @property
    def strategy(self) -> ProfileStrategy:
        return ProfileStrategy.OAUTH2

    def _default_scopes(self) -> list[str]:
        return list(self.capability.required_scopes) or ["read:user", "user:email"]

    def check_scopes(self, token_data: dict[str, Any]) -> None:
        """Require the granted scopes to cover the capability's required scopes."""
        granted = {s for s in re.split(r"[,\s]+", token_data.get("scope") or "") if s}
        missing = set(self.capability.required_scopes) - granted
        if missing:
            raise InsufficientScopeError(self.provider.value, sorted(missing))

    async def get_user_info(self, token_data: dict[str, Any]) -> UserInfo:
        """Fetch user info from GitHub API."""
        access_token = token_data.get("access_token")
        if not access_token:
            raise ProviderExchangeError(self.provider.value, "token response has no access_token")

        self.check_scopes(token_data)

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }

        async with self._client() as client:
            user_response = await client.get(self.USER_URL, headers=headers)
            if user_response.status_code != 200:
                raise ProviderExchangeError(self.provider.value, f"profile endpoint returned {user_response.status_code}")

            user_data = user_response.json()
            if not isinstance(user_data, dict):
                raise ProviderExchangeError(self.provider.value, "profile endpoint did not return an object")

            # Private emails are missing from the profile; ask for the primary one
            email = user_data.get("email")
            if not email:
                emails_response = await client.get(self.EMAILS_URL, headers=headers)
                if emails_response.status_code == 200:
                    emails = emails_response.json()
                    if not isinstance(emails, list):
                        raise ProviderExchangeError(self.provider.value, "emails endpoint did not return a list")
                    primary = next(
                        (e for e in emails if isinstance(e, dict) and e.get("primary") and e.get("verified")),
                        None,
                    )
                    if primary:
                        email = primary.get("email")

        if user_data.get("id") is None or not email:
            raise ProviderExchangeError(self.provider.value, "profile is missing the id or a verified email")

        return UserInfo(
            uid=str(user_data["id"]),
            email=email,
            provider_username=user_data.get("login") or email,
        )
