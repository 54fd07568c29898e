"""Typed records for Slack history payloads and run bookkeeping.

Raw API dicts are parsed into these once, in :meth:`HistoryPage.from_api`;
nothing past the API client looks at untyped payloads.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .errors import PageFetchError


@dataclass(frozen=True)
class Attachment:
    image_url: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Attachment:
        return cls(image_url=data.get("image_url") or None)


@dataclass(frozen=True)
class FileShare:
    url_private: str

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> FileShare | None:
        """Pick the shared file from ``file`` or, failing that, the first of ``files``."""
        file = data.get("file")
        if not isinstance(file, dict):
            files = data.get("files") or []
            file = files[0] if files and isinstance(files[0], dict) else None
        if not file or not file.get("url_private"):
            return None
        return cls(url_private=file["url_private"])


@dataclass(frozen=True)
class Message:
    type: str
    ts: str
    subtype: str | None = None
    attachments: tuple[Attachment, ...] = ()
    file: FileShare | None = None

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(float(self.ts), tz=timezone.utc)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Message:
        if not isinstance(data, dict) or "ts" not in data:
            raise PageFetchError("history", f"message without timestamp: {data!r}")
        ts = str(data["ts"])
        try:
            seconds = float(ts)
            if not math.isfinite(seconds):
                raise ValueError(ts)
            datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            raise PageFetchError("history", f"malformed timestamp {ts!r}") from None
        return cls(
            type=data.get("type", ""),
            ts=ts,
            subtype=data.get("subtype"),
            attachments=tuple(
                Attachment.from_api(a) for a in data.get("attachments") or [] if isinstance(a, dict)
            ),
            file=FileShare.from_message(data),
        )


@dataclass(frozen=True)
class HistoryPage:
    messages: tuple[Message, ...] = ()
    has_more: bool = False

    @property
    def resume_cursor(self) -> str | None:
        """Timestamp of the newest message; the API lists newest first."""
        return self.messages[0].ts if self.messages else None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> HistoryPage:
        messages = data.get("messages") or []
        if not isinstance(messages, list):
            raise PageFetchError("history", "'messages' is not a list")
        return cls(
            messages=tuple(Message.from_api(m) for m in messages),
            has_more=bool(data.get("has_more")),
        )


@dataclass(frozen=True)
class DownloadCandidate:
    url: str
    filename: str
    requires_auth: bool = False


@dataclass
class RunState:
    """Counters and cursor for one run.  Not persisted between runs."""
    next_from_time: str = "0"
    has_more_messages: bool = True
    total_messages: int = 0
    total_media: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "messages": self.total_messages,
            "media": self.total_media,
            "skipped": self.skipped,
            "failed": self.failed,
        }
