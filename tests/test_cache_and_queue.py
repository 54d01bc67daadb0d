"""Tests for the translation cache, request queue and event channel."""

import unicodedata

from llm_translator.translation.cache import TranslationCache, make_cache_key
from llm_translator.translation.events import EventChannel
from llm_translator.translation.models import Cancelled, Priority, TranslationRequest
from llm_translator.translation.queue import RequestQueue


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


# ============================================================================
# Cache
# ============================================================================

def test_cache_key_depends_on_preset_and_normalized_text():
    nfc = unicodedata.normalize("NFC", "naïve")
    nfd = unicodedata.normalize("NFD", "naïve")

    assert make_cache_key(nfc, "general") == make_cache_key(nfd, "general")
    assert make_cache_key(nfc, "general") != make_cache_key(nfc, "formal")
    assert make_cache_key("ab", "c") != make_cache_key("a", "bc")


def test_cache_entry_expires_after_ttl():
    clock = FakeClock()
    cache = TranslationCache(ttl=300, clock=clock)
    cache.put("k", "value")

    clock.now = 299.9
    assert cache.get("k") == "value"

    clock.now = 300.0
    assert cache.get("k") is None


def test_sweep_removes_only_expired_entries():
    clock = FakeClock()
    cache = TranslationCache(ttl=10, clock=clock)
    cache.put("old", "1")
    clock.now = 5
    cache.put("new", "2")

    clock.now = 12
    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get("new") == "2"


def test_put_refreshes_entry():
    clock = FakeClock()
    cache = TranslationCache(ttl=10, clock=clock)
    cache.put("k", "first")
    clock.now = 8
    cache.put("k", "second")

    clock.now = 15
    assert cache.get("k") == "second"

    cache.clear()
    assert len(cache) == 0


# ============================================================================
# Queue
# ============================================================================

def request(text, priority=Priority.NORMAL):
    return TranslationRequest(text=text, prompt_preset="general", priority=priority)


def test_queue_orders_by_priority_then_fifo():
    queue = RequestQueue()
    for item in [request("n1"), request("l1", Priority.LOW), request("h1", Priority.HIGH), request("n2")]:
        queue.push(item)

    assert [queue.pop().text for _ in range(4)] == ["h1", "n1", "n2", "l1"]
    assert queue.pop() is None


def test_push_front_returns_request_to_head_of_band():
    queue = RequestQueue()
    queue.push(request("second"))
    queue.push_front(request("first"))
    queue.push(request("urgent", Priority.HIGH))

    assert [queue.pop().text for _ in range(3)] == ["urgent", "first", "second"]


def test_gate_consulted_only_when_non_empty():
    queue = RequestQueue()
    calls = []

    def gate():
        calls.append(1)
        return False

    assert queue.pop(gate=gate) is None
    assert calls == []

    queue.push(request("held"))
    assert queue.pop(gate=gate) is None
    assert calls == [1]
    assert len(queue) == 1
    assert queue.pop(gate=lambda: True).text == "held"


def test_remove_and_contains():
    queue = RequestQueue()
    keep, drop = request("keep"), request("drop", Priority.LOW)
    queue.push(keep)
    queue.push(drop)

    assert drop.id in queue
    assert queue.remove(drop.id) is drop
    assert drop.id not in queue
    assert queue.remove(drop.id) is None
    assert queue.drain() == [keep]
    assert len(queue) == 0


# ============================================================================
# Event channel
# ============================================================================

def test_event_channel_delivers_in_order():
    channel = EventChannel()
    channel.send(Cancelled("a"))
    channel.send(Cancelled("b"))

    assert channel.get(timeout=0) == Cancelled("a")
    assert channel.drain() == [Cancelled("b")]
    assert channel.get(timeout=0.01) is None


def test_send_on_closed_channel_is_dropped():
    channel = EventChannel()
    channel.close()

    assert channel.closed
    assert not channel.send(Cancelled("late"))
    assert channel.drain() == []


def test_full_channel_drops_event():
    channel = EventChannel(maxsize=1)

    assert channel.send(Cancelled("a"))
    assert not channel.send(Cancelled("b"))


def test_iteration_stops_after_close():
    channel = EventChannel()
    channel.send(Cancelled("a"))
    channel.close()

    assert list(channel) == [Cancelled("a")]


def test_drain_respects_max():
    channel = EventChannel()
    for i in range(5):
        channel.send(Cancelled(str(i)))

    assert len(channel.drain(3)) == 3
    assert len(channel.drain()) == 2
