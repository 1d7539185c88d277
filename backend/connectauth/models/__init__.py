"""Database models."""

from connectauth.models.user import User
from connectauth.models.connected_account import ConnectedAccount

__all__ = [
    "User",
    "ConnectedAccount",
]
