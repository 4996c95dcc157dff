"""Tests for chunked push reassembly and the TTL reaper."""

from __future__ import annotations

import json
import threading

import pytest

from notesync.sync.errors import PartialRequestError, ProtocolError
from notesync.sync.partial import PartialRequestStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _split(text: str, count: int) -> list[str]:
    size = -(-len(text) // count)
    return [text[i : i + size] for i in range(0, len(text), size)]


class TestReassembly:
    def test_three_pages_in_order(self):
        partials = PartialRequestStore()
        body = json.dumps({"sourceId": "s", "entity": {"note_id": "n", "content": "x" * 300}})
        pages = _split(body, 3)

        assert partials.add_page("r1", 0, 3, pages[0]) is None
        assert partials.add_page("r1", 1, 3, pages[1]) is None
        assert partials.add_page("r1", 2, 3, pages[2]) == body
        assert "r1" not in partials

    def test_single_page_completes_immediately(self):
        partials = PartialRequestStore()
        assert partials.add_page("r1", 0, 1, "{}") == "{}"
        assert len(partials) == 0

    def test_first_fragment_must_be_page_zero(self):
        partials = PartialRequestStore()
        with pytest.raises(PartialRequestError):
            partials.add_page("fresh", 1, 3, "middle")

    def test_unknown_request_is_a_protocol_error(self):
        with pytest.raises(ProtocolError):
            PartialRequestStore().add_page("nope", 2, 3, "tail")

    @pytest.mark.parametrize("index,count", [(-1, 3), (3, 3), (0, 0)])
    def test_invalid_indices_rejected(self, index, count):
        with pytest.raises(PartialRequestError):
            PartialRequestStore().add_page("r", index, count, "x")

    def test_interleaved_requests_do_not_mix(self):
        partials = PartialRequestStore()
        partials.add_page("a", 0, 2, "A1")
        partials.add_page("b", 0, 2, "B1")
        assert partials.add_page("a", 1, 2, "A2") == "A1A2"
        assert partials.add_page("b", 1, 2, "B2") == "B1B2"

    def test_concurrent_requests(self):
        partials = PartialRequestStore()
        results = {}

        def send(rid: str) -> None:
            for i in range(4):
                out = partials.add_page(rid, i, 4, f"{rid}{i}")
            results[rid] = out

        threads = [threading.Thread(target=send, args=(f"r{n}",)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == {f"r{n}": f"r{n}0r{n}1r{n}2r{n}3" for n in range(8)}


class TestReaper:
    def test_expired_buffer_is_dropped(self):
        clock = FakeClock()
        partials = PartialRequestStore(ttl=300, clock=clock)
        partials.add_page("r1", 0, 3, "a")

        clock.now += 301
        assert partials.reap() == 1

        with pytest.raises(PartialRequestError):
            partials.add_page("r1", 2, 3, "c")

    def test_fresh_buffer_survives(self):
        clock = FakeClock()
        partials = PartialRequestStore(ttl=300, clock=clock)
        partials.add_page("r1", 0, 2, "a")

        clock.now += 299
        assert partials.reap() == 0
        assert partials.add_page("r1", 1, 2, "b") == "ab"

    def test_reap_with_explicit_now(self):
        clock = FakeClock(0.0)
        partials = PartialRequestStore(ttl=10, clock=clock)
        partials.add_page("old", 0, 2, "x")
        clock.now = 50.0
        partials.add_page("new", 0, 2, "y")

        assert partials.reap(now=55.0) == 1
        assert "new" in partials
        assert "old" not in partials
