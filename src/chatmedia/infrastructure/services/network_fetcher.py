"""QtNetwork-backed byte fetcher."""

from __future__ import annotations

import io
import logging
from typing import Dict, Optional

from PIL import Image, UnidentifiedImageError
from PySide6.QtCore import QObject, QUrl
from PySide6.QtNetwork import QNetworkAccessManager, QNetworkReply, QNetworkRequest

from ...scheduling.ports import FetchCallback, FetchResult

LOGGER = logging.getLogger(__name__)


def verify_image_bytes(data: bytes) -> Optional[str]:
    """Return ``None`` when *data* decodes as an image, else the reason."""

    if not data:
        return "empty response"
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        return f"decode failed: {exc}"
    return None


class NetworkByteFetcher(QObject):
    """Fetch URLs with :class:`QNetworkAccessManager`.

    Replies finish on the thread owning this object, so callbacks land on the
    scheduler's event loop without any locking.  There is no timeout: a
    request the server never answers keeps its dispatcher slot.
    """

    def __init__(
        self,
        parent: Optional[QObject] = None,
        *,
        manager: Optional[QNetworkAccessManager] = None,
        verify_images: bool = True,
    ) -> None:
        super().__init__(parent)
        self._manager = manager or QNetworkAccessManager(self)
        self._verify = verify_images
        self._pending: Dict[QNetworkReply, tuple[str, FetchCallback]] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def fetch(self, url: str, callback: FetchCallback) -> None:
        request = QNetworkRequest(QUrl(url))
        request.setAttribute(
            QNetworkRequest.Attribute.RedirectPolicyAttribute,
            QNetworkRequest.RedirectPolicy.NoLessSafeRedirectPolicy,
        )
        reply = self._manager.get(request)
        self._pending[reply] = (url, callback)
        reply.finished.connect(lambda r=reply: self._on_finished(r))

    def _on_finished(self, reply: QNetworkReply) -> None:
        entry = self._pending.pop(reply, None)
        reply.deleteLater()
        if entry is None:
            return
        url, callback = entry

        if reply.error() != QNetworkReply.NetworkError.NoError:
            reason = reply.errorString() or str(reply.error())
            LOGGER.debug("Fetch failed for %s: %s", url, reason)
            callback(FetchResult.failure(url, reason))
            return

        data = bytes(reply.readAll().data())
        if self._verify:
            reason = verify_image_bytes(data)
            if reason is not None:
                LOGGER.debug("Rejected payload from %s: %s", url, reason)
                callback(FetchResult.failure(url, reason))
                return
        callback(FetchResult.success(url, data))
