"""Shared slowapi rate limiter instance.

Separated from main.py to avoid circular imports when the OAuth router
applies rate limit decorators.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from connectauth.config import get_settings

limiter = Limiter(key_func=get_remote_address, enabled=get_settings().rate_limit_enabled)
