"""Build signed media URLs for the chat backend."""

from __future__ import annotations

import logging
import os
from typing import Callable, Mapping, Optional
from urllib.parse import quote, urlencode

from ...config import DEFAULT_API_URL, DEFAULT_BACKEND_URL, THUMBNAIL_SIZES, TOKEN_ENV_VARS
from ...domain.models import FidelityTier, LogicalImage

LOGGER = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


def env_token_provider(names: tuple[str, ...] = TOKEN_ENV_VARS) -> TokenProvider:
    """Return a provider reading the first non-empty variable in *names*."""

    def _provider() -> Optional[str]:
        for name in names:
            value = os.environ.get(name)
            if value:
                return value
        return None

    return _provider


def static_token_provider(token: Optional[str]) -> TokenProvider:
    return lambda: token


class ResourceLocator:
    """Map ``(image, tier)`` to a fetchable URL.

    Thumbnails come from ``/files/<id>/thumbnail?size=<px>`` and the full tier
    from ``/files/<id>/view``; both carry the access token as a query
    parameter.  Pre-signed URLs attached to the image win over built ones.
    Without a token the result is ``""``, which the dispatcher treats as an
    immediate failure.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        token_provider: Optional[TokenProvider] = None,
        *,
        thumbnail_sizes: Optional[Mapping[str, int]] = None,
        backend_url: str = DEFAULT_BACKEND_URL,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._token_provider = token_provider or env_token_provider()
        self._sizes = dict(THUMBNAIL_SIZES)
        if thumbnail_sizes:
            self._sizes.update(thumbnail_sizes)
        self._backend_url = backend_url.rstrip("/")

    @property
    def api_url(self) -> str:
        return self._api_url

    def thumbnail_size(self, tier: FidelityTier) -> Optional[int]:
        if not tier.is_thumbnail:
            return None
        return self._sizes.get(tier.label, self._sizes["medium"])

    def build_url(self, image: LogicalImage | str, tier: FidelityTier) -> str:
        if isinstance(image, str):
            image = LogicalImage(image)

        token = self._token_provider()
        if not token:
            LOGGER.warning("No access token available; cannot build %s URL for %s", tier.label, image.id)
            return ""

        if tier is FidelityTier.SMALL and image.thumbnail_url:
            return self.ensure_full_url(image.thumbnail_url)
        if tier is FidelityTier.FULL and image.full_url:
            return self.ensure_full_url(image.full_url)

        file_id = quote(image.id, safe="")
        if tier is FidelityTier.FULL:
            query = urlencode({"token": token})
            return f"{self._api_url}/files/{file_id}/view?{query}"
        query = urlencode({"size": self.thumbnail_size(tier), "token": token})
        return f"{self._api_url}/files/{file_id}/thumbnail?{query}"

    def ensure_full_url(self, url: str) -> str:
        """Prefix relative backend paths with the backend origin."""
        if not url:
            return ""
        if url.startswith(("http://", "https://")):
            return url
        if not url.startswith("/"):
            url = "/" + url
        return f"{self._backend_url}{url}"
