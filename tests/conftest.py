"""Shared test fixtures for slack-media-harvester."""

import io

import httpx
import pytest
from PIL import Image

from slack_harvester.cas import ContentAddressedStore
from slack_harvester.config import DiskConfig, HarvesterConfig, S3Config, SlackConfig
from slack_harvester.errors import ChannelNotFound
from slack_harvester.models import HistoryPage
from slack_harvester.storage import DiskByteStore

# 2017-07-14 02:40:00 UTC
BASE_TS = 1500000000


def _image_bytes(fmt, color):
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    return _image_bytes("PNG", (255, 0, 0))


@pytest.fixture
def other_png_bytes():
    return _image_bytes("PNG", (0, 0, 255))


@pytest.fixture
def gif_bytes():
    return _image_bytes("GIF", (0, 255, 0))


@pytest.fixture
def byte_store(tmp_path):
    return DiskByteStore(DiskConfig(root=str(tmp_path / "store")))


@pytest.fixture
def cas(byte_store):
    return ContentAddressedStore(byte_store)


@pytest.fixture
def harvester_config(tmp_path):
    return HarvesterConfig(
        slack=SlackConfig(token="xoxb-test", request_delay=0),
        disk=DiskConfig(root=str(tmp_path / "store")),
        s3=S3Config(),
        storage_driver="disk",
        channel="general",
    )


def message(ts, *, image_urls=(), subtype=None, file_url=None, type="message"):
    """Build a raw Slack history message."""
    data = {"type": type, "ts": f"{ts}.000100"}
    if image_urls:
        data["attachments"] = [{"image_url": url} for url in image_urls]
    if subtype:
        data["subtype"] = subtype
    if file_url:
        data["file"] = {"url_private": file_url}
    return data


class FakeHistoryAPI:
    """Scripted stand-in for SlackAPI: serves pages in order and records calls."""

    def __init__(self, pages, channels=None):
        self._pages = list(pages)
        self.channels = channels if channels is not None else {"general": "C123"}
        self.calls = []
        self.closed = False

    def history(self, channel, oldest, count=None):
        self.calls.append({"channel": channel, "oldest": oldest, "count": count})
        if not self._pages:
            return HistoryPage()
        page = self._pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return HistoryPage.from_api(page)

    def resolve_channel_id(self, name):
        try:
            return self.channels[name.lstrip("#")]
        except KeyError:
            raise ChannelNotFound(name) from None

    def close(self):
        self.closed = True


@pytest.fixture
def make_media_client():
    """Build an httpx.Client answering from a ``{url: (status, body)}`` map.

    Every request is appended to ``client.seen``.
    """
    def factory(routes):
        seen = []

        def handler(request):
            seen.append(request)
            url = str(request.url)
            if url not in routes:
                return httpx.Response(404)
            status, body = routes[url]
            return httpx.Response(status, content=body)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        client.seen = seen
        return client

    return factory
