"""Signed client assertions.

Some providers (Sign in with Apple) do not issue a static client secret. The
secret sent to the token endpoint is an ES256 JWT signed with a private key
registered with the provider, identified by team and key ids.
"""

import time

import jwt

from connectauth.auth.errors import ConfigurationError
from connectauth.auth.providers.base import OAuthConfig


def build_client_assertion(config: OAuthConfig, now: int | None = None) -> str:
    """Sign a short-lived client secret for ``config``."""
    assertion = config.assertion
    if assertion is None:
        raise ConfigurationError("client assertion requested but no signing key is configured")

    issued_at = int(time.time()) if now is None else now
    payload = {
        "iss": assertion.team_id,
        "iat": issued_at,
        "exp": issued_at + assertion.ttl_seconds,
        "aud": assertion.audience,
        "sub": config.client_id,
    }

    try:
        return jwt.encode(
            payload,
            assertion.private_key,
            algorithm="ES256",
            headers={"kid": assertion.key_id},
        )
    except (ValueError, TypeError, jwt.PyJWTError) as e:
        raise ConfigurationError(f"could not sign client assertion: {e}")
