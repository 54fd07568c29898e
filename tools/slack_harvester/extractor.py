"""Turn history pages into download candidates."""

from __future__ import annotations

from typing import Iterator

from .models import DownloadCandidate, HistoryPage, Message

FILENAME_FORMAT = "%Y-%m-%d--%H-%M-%S"


def message_filename(message: Message) -> str:
    """Second-resolution UTC filename stem for a message."""
    return message.time.strftime(FILENAME_FORMAT)


def _numbered(stem: str, index: int) -> str:
    # First candidate of a message keeps the bare stem; later ones get --2, --3, ...
    return stem if index == 1 else f"{stem}--{index}"


def message_candidates(message: Message) -> Iterator[DownloadCandidate]:
    if message.type != "message":
        return
    stem = message_filename(message)
    if message.attachments:
        urls = [a.image_url for a in message.attachments if a.image_url]
        for index, url in enumerate(urls, start=1):
            yield DownloadCandidate(url=url, filename=_numbered(stem, index))
    elif message.subtype == "file_share" and message.file is not None:
        yield DownloadCandidate(url=message.file.url_private, filename=stem, requires_auth=True)


def extract(page: HistoryPage) -> Iterator[DownloadCandidate]:
    """Lazily yield every candidate on *page*, in page order."""
    for message in page.messages:
        yield from message_candidates(message)
