"""
Access token providers.

A provider is any callable, sync or async, that returns a bearer token or
None when no credentials are available.
"""

import inspect
from typing import Awaitable, Callable, Union

from mgmtcore.settings import Settings

TokenProvider = Callable[[], Union[str, None, Awaitable[str | None]]]


def env_token_provider(settings: Settings) -> TokenProvider:
    """Provider reading SUPABASE_ACCESS_TOKEN from loaded settings."""

    def provide() -> str | None:
        return settings.access_token or None

    return provide


def static_token_provider(token: str | None) -> TokenProvider:
    """Provider that always returns the same token."""

    def provide() -> str | None:
        return token

    return provide


async def resolve_token(provider: TokenProvider) -> str | None:
    """Call a provider and await the result when it is a coroutine."""
    token = provider()
    if inspect.isawaitable(token):
        token = await token
    return token or None


def mask_token(token: str) -> str:
    """Shorten a token for display, keeping only its ends."""
    if len(token) <= 14:
        return "*" * len(token)
    return f"{token[:10]}...{token[-4:]}"
