"""Stream remote media straight into the store's staging slot."""

from __future__ import annotations

import logging

import httpx

from .cas import ContentAddressedStore, StagingHandle
from .errors import FetchError

logger = logging.getLogger("harvester.fetcher")


class MediaFetcher:
    """Single-shot streamed downloads; no retries, no buffering of whole files."""

    def __init__(self, client: httpx.Client, store: ContentAddressedStore, token: str = "") -> None:
        self._client = client
        self.store = store
        self._token = token

    def fetch(
        self,
        url: str,
        *,
        requires_auth: bool = False,
        handle: StagingHandle | None = None,
    ) -> StagingHandle:
        """Download *url* into a staging slot and return its handle.

        Private file URLs need the workspace token; public image URLs must
        never see it.
        """
        headers: dict[str, str] = {}
        if requires_auth:
            if not self._token:
                raise FetchError(url, cause="no token configured for private file")
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            with self._client.stream("GET", url, headers=headers) as resp:
                if not resp.is_success:
                    raise FetchError(url, status=resp.status_code)
                handle = self.store.write_staged(resp.iter_bytes(), handle)
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise FetchError(url, cause=exc) from exc
        logger.debug("Fetched %s", url)
        return handle
