"""Cursor-driven walk over a channel's history."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterator, Protocol

from .models import HistoryPage, RunState

logger = logging.getLogger("harvester.walker")


class HistorySource(Protocol):
    def history(self, channel: str, oldest: str, count: int | None = None) -> HistoryPage: ...


class WalkerState(str, Enum):
    FETCHING = "fetching"
    CONTINUE = "continue"
    DONE = "done"


class HistoryWalker:
    """Request history pages until the API reports nothing more.

    The cursor lives on the :class:`RunState` passed in by the caller.  A
    failed page request propagates and leaves the walker short of DONE, so
    the same ``from_time`` can be retried.
    """

    def __init__(self, api: HistorySource, channel_id: str, *, page_size: int = 100) -> None:
        self.api = api
        self.channel_id = channel_id
        self.page_size = page_size
        self.state = WalkerState.FETCHING

    @property
    def done(self) -> bool:
        return self.state is WalkerState.DONE

    def next_page(self, run: RunState) -> HistoryPage | None:
        """Fetch the page at ``run.next_from_time``; None once the walk is over."""
        if self.done:
            return None
        page = self.api.history(self.channel_id, oldest=run.next_from_time, count=self.page_size)
        if not page.messages:
            logger.debug("Empty page at oldest=%s", run.next_from_time)
            run.has_more_messages = False
            self.state = WalkerState.DONE
            return None

        run.total_messages += len(page.messages)
        if page.has_more and page.resume_cursor is not None:
            run.next_from_time = page.resume_cursor
            self.state = WalkerState.CONTINUE
        else:
            run.has_more_messages = False
            self.state = WalkerState.DONE
        return page

    def pages(self, run: RunState) -> Iterator[HistoryPage]:
        while not self.done:
            page = self.next_page(run)
            if page is not None:
                yield page
