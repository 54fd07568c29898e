"""Exception hierarchy for the harvester.

Per-media failures derive from :class:`MediaError` and are recovered by the
run loop; everything else is fatal and propagates to the caller.
"""

from __future__ import annotations


class HarvesterError(Exception):
    """Base class for all harvester errors."""


# ── per-candidate (recoverable) ──────────────────────────────────


class MediaError(HarvesterError):
    """A single media candidate could not be stored."""


class MimeUnknown(MediaError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Unable to resolve mimetype for staged object {key!r}")
        self.key = key


class ExtensionUnknown(MediaError):
    def __init__(self, mimetype: str) -> None:
        super().__init__(f"No known extension for mimetype {mimetype!r}")
        self.mimetype = mimetype


class FetchError(MediaError):
    def __init__(self, url: str, *, status: int | None = None, cause: object = None) -> None:
        reason = f"HTTP {status}" if status is not None else str(cause)
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.status = status
        self.cause = cause


# ── fatal ────────────────────────────────────────────────────────


class SlackAPIError(HarvesterError):
    """The Slack Web API call failed or answered ``ok: false``."""

    def __init__(self, method: str, reason: str) -> None:
        super().__init__(f"{method} failed: {reason}")
        self.method = method
        self.reason = reason


class PageFetchError(SlackAPIError):
    """A history page could not be fetched or parsed."""


class ChannelNotFound(HarvesterError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Channel not found: {name}")
        self.name = name
