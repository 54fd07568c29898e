"""Slack Web API client – rate-limited HTTP fetcher."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterator

import httpx

from .config import SlackConfig
from .errors import ChannelNotFound, PageFetchError, SlackAPIError
from .models import HistoryPage

logger = logging.getLogger("harvester.api")

USER_AGENT = "slack-media-harvester/1.0"


class SlackAPI:
    """Thin wrapper around the Slack Web API with rate limiting."""

    def __init__(self, cfg: SlackConfig | None = None, *, transport: httpx.BaseTransport | None = None) -> None:
        self.cfg = cfg or SlackConfig.from_env()
        self._last_request: float = 0.0
        self._client = httpx.Client(
            base_url=self.cfg.api_base,
            timeout=self.cfg.timeout,
            headers={
                "User-Agent": USER_AGENT,
                "Authorization": f"Bearer {self.cfg.token}",
            },
            transport=transport,
        )

    # ── rate limiting ────────────────────────────────────────────
    def _throttle(self) -> None:
        elapsed = time.monotonic() - self._last_request
        if elapsed < self.cfg.request_delay:
            time.sleep(self.cfg.request_delay - elapsed)
        self._last_request = time.monotonic()

    def _call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        attempts = max(1, self.cfg.max_retries)
        for attempt in range(1, attempts + 1):
            self._throttle()
            try:
                resp = self._client.get(f"/{method}", params=params)
                if resp.status_code == 429 and attempt < attempts:
                    delay = float(resp.headers.get("Retry-After", 2 ** attempt))
                    logger.warning("Rate limited on %s, sleeping %.1fs", method, delay)
                    time.sleep(delay)
                    continue
                resp.raise_for_status()
                data = resp.json()
            except (httpx.HTTPStatusError, httpx.TransportError) as exc:
                logger.warning("Attempt %d/%d failed for %s: %s", attempt, attempts, method, exc)
                if attempt == attempts:
                    raise SlackAPIError(method, str(exc)) from exc
                time.sleep(2 ** attempt)
                continue
            except ValueError as exc:
                raise SlackAPIError(method, f"invalid JSON: {exc}") from exc
            if not isinstance(data, dict) or not data.get("ok"):
                reason = data.get("error", "unknown error") if isinstance(data, dict) else "unexpected payload"
                raise SlackAPIError(method, reason)
            return data
        raise SlackAPIError(method, "no attempts made")  # unreachable but keeps mypy happy

    # ── public API ───────────────────────────────────────────────

    def history(self, channel: str, oldest: str, count: int | None = None) -> HistoryPage:
        """Fetch one page of channel history newer than *oldest*."""
        params = {
            "channel": channel,
            "count": count or self.cfg.page_size,
            "oldest": oldest,
        }
        try:
            data = self._call(self.cfg.history_method, params)
        except SlackAPIError as exc:
            raise PageFetchError(exc.method, exc.reason) from exc
        return HistoryPage.from_api(data)

    def iter_channels(self) -> Iterator[dict[str, Any]]:
        """Yield every channel visible to the token, following list cursors."""
        cursor = ""
        while True:
            params: dict[str, Any] = {"limit": self.cfg.page_size}
            if cursor:
                params["cursor"] = cursor
            data = self._call(self.cfg.list_method, params)
            channels = data.get("channels") or []
            if not channels:
                return
            yield from channels
            cursor = (data.get("response_metadata") or {}).get("next_cursor") or ""
            if not cursor:
                return

    def resolve_channel_id(self, name: str) -> str:
        """Map a channel name (with or without ``#``) to its id."""
        wanted = name.lstrip("#")
        for channel in self.iter_channels():
            if channel.get("name") == wanted:
                logger.debug("Resolved #%s to %s", wanted, channel["id"])
                return channel["id"]
        raise ChannelNotFound(name)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SlackAPI:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
