"""
Tests for the client-side chat feed and poller.
"""

import threading
import time

from preva.feed import ChatFeed, Poller, TEMP_PREFIX


def message(mid: str, created_at: str, text: str = "hi") -> dict:
    return {"id": mid, "sender_id": "u", "sender_role": "nurse", "text": text, "read": False, "created_at": created_at}


class TestChatFeed:
    def test_merge_is_idempotent(self):
        feed = ChatFeed()
        page = [message("a", "2026-03-02T09:00:00.000000+00:00"), message("b", "2026-03-02T09:01:00Z")]

        assert len(feed.merge(page)) == 2
        assert feed.merge(page) == []
        assert [m["id"] for m in feed.messages] == ["a", "b"]

    def test_overlapping_pages_keep_order(self):
        feed = ChatFeed()
        feed.merge([message("b", "2026-03-02T09:01:00+00:00")])
        feed.merge([message("a", "2026-03-02T09:00:00+00:00"), message("b", "2026-03-02T09:01:00+00:00")])

        assert [m["id"] for m in feed.messages] == ["a", "b"]

    def test_cursor_tracks_newest(self):
        feed = ChatFeed()
        feed.merge([message("b", "2026-03-02T09:01:00Z"), message("a", "2026-03-02T09:00:00.500000+00:00")])
        assert feed.cursor == "2026-03-02T09:01:00Z"

    def test_optimistic_entry_is_replaced(self):
        feed = ChatFeed()
        temp_id = feed.add_optimistic("on my way", "nurse")

        assert temp_id.startswith(TEMP_PREFIX)
        assert feed.pending == [temp_id]

        feed.reconcile(temp_id, [message("srv-1", "2026-03-02T09:00:00+00:00", "on my way")])

        assert feed.pending == []
        assert [m["id"] for m in feed.messages] == ["srv-1"]


class TestPoller:
    def test_ticks_until_cancelled(self):
        ticked = threading.Event()
        calls = []

        def refresh():
            calls.append(1)
            if len(calls) >= 2:
                ticked.set()

        poller = Poller(refresh, interval=0.01, name="test")
        with poller:
            assert ticked.wait(2)
        assert not poller.running
        settled = len(calls)
        time.sleep(0.05)
        assert len(calls) == settled

    def test_errors_do_not_stop_polling(self):
        ticked = threading.Event()
        calls = []

        def refresh():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("network down")
            ticked.set()

        with Poller(refresh, interval=0.01):
            assert ticked.wait(2)
        assert len(calls) >= 2
