"""Pydantic schemas for connectauth."""

from connectauth.schemas.oauth import (
    ConnectedAccountOut,
    ProviderLinks,
    ProvidersResponse,
    UnlinkResponse,
)

__all__ = [
    "ConnectedAccountOut",
    "ProviderLinks",
    "ProvidersResponse",
    "UnlinkResponse",
]
