"""
Remote Asset Fetcher
====================

Downloads model artifacts over HTTP(S) into memory, reporting fractional
progress, and optionally writes the result into the `ArtifactStore`.

Downloads are all-or-nothing: any HTTP error, connection failure or short
read raises `TransportError` and the partial bytes are dropped.
"""

from __future__ import annotations

from typing import Callable

import requests
import structlog

from common.config import Settings
from common.errors import TransportError

from .store import DEFAULT_MEDIA_TYPE, ArtifactBlob, ArtifactStore

log = structlog.get_logger(__name__)

ProgressCallback = Callable[[float], None]

CHUNK_SIZE = 64 * 1024


class RemoteAssetFetcher:
    """Streams URLs into `ArtifactBlob` values."""

    def __init__(self, settings: Settings, session: requests.Session | None = None):
        self.settings = settings
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": settings.USER_AGENT})

    def fetch(self, url: str, on_progress: ProgressCallback | None = None) -> ArtifactBlob:
        """
        Download ``url`` and return its content.

        ``on_progress`` receives a fraction in [0, 1] after each chunk, but only
        when the response declares its total size.
        """
        log.info("Starting download", url=url)
        try:
            with self._session.get(
                url, stream=True, timeout=self.settings.DOWNLOAD_TIMEOUT
            ) as response:
                response.raise_for_status()
                media_type = response.headers.get("Content-Type") or DEFAULT_MEDIA_TYPE
                total_size = _declared_size(response)

                buffer = bytearray()
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    buffer.extend(chunk)
                    if on_progress is not None and total_size:
                        on_progress(min(1.0, len(buffer) / total_size))
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Failed to download file from {url}: {e}") from e

        if total_size is not None and len(buffer) < total_size:
            raise TransportError(
                f"Download from {url} was interrupted: "
                f"received {len(buffer)} of {total_size} bytes"
            )

        log.info("Download finished", url=url, size=len(buffer), media_type=media_type)
        return ArtifactBlob(data=bytes(buffer), media_type=media_type)

    def fetch_into(
        self,
        store: ArtifactStore,
        key: str,
        url: str,
        on_progress: ProgressCallback | None = None,
    ) -> ArtifactBlob:
        """Download ``url`` and store it under ``key`` once complete."""
        blob = self.fetch(url, on_progress)
        store.put(key, blob)
        return blob

    def close(self) -> None:
        self._session.close()


def _declared_size(response: requests.Response) -> int | None:
    """Return the Content-Length as an int, or None if absent or invalid."""
    raw = response.headers.get("Content-Length")
    if raw is None:
        return None
    try:
        size = int(raw)
    except ValueError:
        return None
    return size if size >= 0 else None
