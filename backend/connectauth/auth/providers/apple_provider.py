"""Sign in with Apple.

Apple returns an OIDC identity token but never a name, and authenticates the
client with a signed assertion (see ``client_assertion``). With
``response_mode=form_post`` Apple POSTs the code back instead of redirecting
with a query string.
"""

from connectauth.auth.providers.oidc_provider import OIDCProvider

APPLE_ISSUER = "https://appleid.apple.com"


class AppleProvider(OIDCProvider):
    """Apple OAuth provider implementation."""

    AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
    TOKEN_URL = "https://appleid.apple.com/auth/token"

    @property
    def display_name(self) -> str:
        return "Apple"

    def _default_scopes(self) -> list[str]:
        # Apple only accepts scopes with form_post
        if self.config.response_mode == "form_post":
            return ["name", "email"]
        return []

    def _extra_authorization_params(self) -> dict[str, str]:
        return {"response_mode": self.config.response_mode or "query"}
