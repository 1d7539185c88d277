"""OAuth Provider Abstraction Layer.

Supports three profile strategies behind one ``UserInfo`` shape:
- Google (OIDC identity token)
- Apple (OIDC identity token, signed client assertion)
- GitHub (OAuth 2.0 access token + profile endpoint)
"""

from connectauth.auth.providers.base import (
    Flow,
    OAuthProvider,
    ProfileStrategy,
    Provider,
    ProviderCapability,
    UserInfo,
)
from connectauth.auth.providers.registry import ProviderRegistry, build_registry

__all__ = [
    "Flow",
    "OAuthProvider",
    "ProfileStrategy",
    "Provider",
    "ProviderCapability",
    "ProviderRegistry",
    "UserInfo",
    "build_registry",
]
