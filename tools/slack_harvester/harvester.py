"""Core harvesting logic – orchestrates Slack API → fetcher → store."""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from .api import USER_AGENT, SlackAPI
from .cas import ContentAddressedStore, IngestOutcome
from .config import HarvesterConfig
from .errors import MediaError
from .extractor import extract
from .fetcher import MediaFetcher
from .models import DownloadCandidate, RunState
from .storage import ByteStore, make_store
from .walker import HistoryWalker

logger = logging.getLogger("harvester.core")

PageCallback = Callable[[RunState], None]


class Harvester:
    """Walks one channel's history and stores every media file it references."""

    def __init__(
        self,
        cfg: HarvesterConfig | None = None,
        *,
        api: SlackAPI | None = None,
        store: ByteStore | None = None,
        media_client: httpx.Client | None = None,
        channel_id: str | None = None,
    ) -> None:
        self.cfg = cfg or HarvesterConfig()
        self.api = api or SlackAPI(self.cfg.slack)
        self.store = ContentAddressedStore(store or make_store(self.cfg))
        self._media_client = media_client or httpx.Client(
            timeout=self.cfg.slack.timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )
        self.fetcher = MediaFetcher(self._media_client, self.store, token=self.cfg.slack.token)
        self.channel_id = channel_id

    # ── media handling ───────────────────────────────────────────

    def process_candidate(self, candidate: DownloadCandidate, state: RunState) -> bool:
        """Download and store one candidate.  Never raises for per-media failures.

        Returns True when the file is stored now or was stored before.
        """
        try:
            handle = self.fetcher.fetch(candidate.url, requires_auth=candidate.requires_auth)
            result = self.store.ingest(handle, candidate.filename)
        except MediaError as exc:
            logger.warning("Skipping %s: %s", candidate.url, exc)
            state.failed += 1
            return False

        if result.outcome is IngestOutcome.EXISTS:
            logger.info("File already exists: %s (%s)", result.logical_key, candidate.url)
            state.skipped += 1
        elif result.outcome is IngestOutcome.DUPLICATE:
            logger.info("File with same hash already exists: %s (%s)", result.content_key, candidate.url)
            state.skipped += 1
        else:
            logger.debug("Stored %s as %s", candidate.url, result.logical_key)
            state.total_media += 1
        return True

    # ── run loop ─────────────────────────────────────────────────

    def resolve_channel(self) -> str:
        if self.channel_id is None:
            self.channel_id = self.api.resolve_channel_id(self.cfg.channel)
        return self.channel_id

    def run(self, from_time: int | str | None = None, *, on_page: PageCallback | None = None) -> RunState:
        """Harvest everything posted after *from_time* (epoch seconds)."""
        channel_id = self.resolve_channel()
        if from_time is None:
            from_time = self.cfg.default_from_time()
        state = RunState(next_from_time=str(from_time))
        walker = HistoryWalker(self.api, channel_id, page_size=self.cfg.slack.page_size)

        for page in walker.pages(state):
            for candidate in extract(page):
                self.process_candidate(candidate, state)
            logger.info(
                "Messages parsed: %d Media files downloaded: %d",
                state.total_messages,
                state.total_media,
            )
            if on_page is not None:
                on_page(state)
        return state

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        self.api.close()
        self._media_client.close()
        self.store.close()

    def __enter__(self) -> Harvester:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
