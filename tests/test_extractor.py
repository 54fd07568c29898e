"""Tests for turning history pages into download candidates."""

import types

from conftest import BASE_TS, message

from slack_harvester.extractor import extract, message_candidates
from slack_harvester.models import HistoryPage, Message


def page(*messages):
    return HistoryPage.from_api({"ok": True, "messages": list(messages), "has_more": False})


class TestExtract:
    def test_two_image_attachments(self):
        candidates = list(extract(page(message(BASE_TS, image_urls=["https://a/1.png", "https://a/2.png"]))))

        assert [c.url for c in candidates] == ["https://a/1.png", "https://a/2.png"]
        assert all(c.requires_auth is False for c in candidates)

    def test_attachments_in_one_message_get_distinct_filenames(self):
        candidates = list(extract(page(message(BASE_TS, image_urls=["https://a/1", "https://a/2", "https://a/3"]))))

        assert [c.filename for c in candidates] == [
            "2017-07-14--02-40-00",
            "2017-07-14--02-40-00--2",
            "2017-07-14--02-40-00--3",
        ]

    def test_file_share_yields_one_authenticated_candidate(self):
        msg = message(BASE_TS, subtype="file_share", file_url="https://files.slack.com/f.png")
        candidates = list(extract(page(msg)))

        assert len(candidates) == 1
        assert candidates[0].url == "https://files.slack.com/f.png"
        assert candidates[0].requires_auth is True
        assert candidates[0].filename == "2017-07-14--02-40-00"

    def test_non_message_types_are_skipped(self):
        msg = message(BASE_TS, image_urls=["https://a/1.png"], type="channel_join")
        assert list(extract(page(msg))) == []

    def test_other_subtypes_and_empty_attachments_are_skipped(self):
        msgs = [
            message(BASE_TS, subtype="bot_message"),
            message(BASE_TS + 1, subtype="file_share"),
            {"type": "message", "ts": f"{BASE_TS + 2}", "attachments": [{"title": "link unfurl"}]},
        ]
        assert list(extract(page(*msgs))) == []

    def test_attachments_take_precedence_over_file_share(self):
        msg = message(
            BASE_TS,
            image_urls=["https://a/1.png"],
            subtype="file_share",
            file_url="https://files.slack.com/f.png",
        )
        candidates = list(extract(page(msg)))
        assert [c.url for c in candidates] == ["https://a/1.png"]

    def test_candidates_follow_page_order(self):
        msgs = [
            message(BASE_TS + 60, image_urls=["https://a/newer.png"]),
            message(BASE_TS, image_urls=["https://a/older.png"]),
        ]
        assert [c.filename for c in extract(page(*msgs))] == [
            "2017-07-14--02-41-00",
            "2017-07-14--02-40-00",
        ]

    def test_is_lazy(self):
        result = extract(page(message(BASE_TS, image_urls=["https://a/1.png"])))
        assert isinstance(result, types.GeneratorType)

    def test_message_candidates_direct(self):
        msg = Message.from_api(message(BASE_TS, image_urls=["https://a/1.png"]))
        assert len(list(message_candidates(msg))) == 1
