"""Google OAuth Provider.

Google's token endpoint returns an OIDC identity token.
"""

from connectauth.auth.providers.oidc_provider import OIDCProvider


class GoogleProvider(OIDCProvider):
    """Google OAuth provider implementation."""

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    @property
    def display_name(self) -> str:
        return "Google"

    def _default_scopes(self) -> list[str]:
        return [
            "openid",
            "https://www.googleapis.com/auth/userinfo.profile",
            "https://www.googleapis.com/auth/userinfo.email",
        ]

    def _extra_authorization_params(self) -> dict[str, str]:
        return {
            "access_type": "offline",
            "prompt": "consent",
        }
