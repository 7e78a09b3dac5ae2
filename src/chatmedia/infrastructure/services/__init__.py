"""Locator, byte cache and network fetcher implementations.

``NetworkByteFetcher`` needs QtNetwork and is imported from its own module.
"""

from .byte_cache import MediaByteCache
from .resource_locator import ResourceLocator, env_token_provider, static_token_provider

__all__ = [
    "MediaByteCache",
    "ResourceLocator",
    "env_token_provider",
    "static_token_provider",
]
