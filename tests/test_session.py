"""Tests for per-session request coordination."""

import asyncio
from typing import List, Optional, Sequence

import pytest

from basketrec.recommender.models import (
    Suggestion,
    SuggestionResponse,
    SuggestionSource,
    cart_fingerprint,
)
from basketrec.recommender.session import RequestState, SessionRegistry, SuggestionCoordinator


class GatedEngine:
    """Merge engine stand-in that holds every request until ``gate`` opens."""

    def __init__(self, used_fallback: bool = False, open_gate: bool = False):
        self.used_fallback = used_fallback
        self.gate = asyncio.Event()
        if open_gate:
            self.gate.set()
        self.calls: List[List[str]] = []

    async def recommend(
        self, cart_item_ids: Sequence[str], user_id: Optional[str] = None, view: str = "cart"
    ) -> SuggestionResponse:
        self.calls.append(list(cart_item_ids))
        await self.gate.wait()
        return SuggestionResponse(
            suggestions=[Suggestion("cola", 0.6, SuggestionSource.RULE)],
            used_fallback=self.used_fallback,
            cart_fingerprint=cart_fingerprint(cart_item_ids),
        )


def test_cart_fingerprint_ignores_order_and_repeats() -> None:
    assert cart_fingerprint(["b", "a", "b"]) == cart_fingerprint(["a", "b"]) == "a|b"
    assert cart_fingerprint([]) == ""


@pytest.mark.asyncio
async def test_identical_requests_are_coalesced() -> None:
    engine = GatedEngine(used_fallback=True)
    coordinator = SuggestionCoordinator(engine)

    first = asyncio.create_task(coordinator.request(["burger", "fries"]))
    second = asyncio.create_task(coordinator.request(["fries", "burger"]))
    await asyncio.sleep(0)

    assert coordinator.state == RequestState.FETCHING

    engine.gate.set()
    r1, r2 = await asyncio.gather(first, second)

    assert len(engine.calls) == 1
    assert not r1.coalesced
    assert r2.coalesced
    assert r1.response is r2.response
    assert [r1.notify_fallback, r2.notify_fallback].count(True) == 1
    assert coordinator.state == RequestState.DEGRADED


@pytest.mark.asyncio
async def test_superseded_request_is_marked_stale() -> None:
    engine = GatedEngine()
    coordinator = SuggestionCoordinator(engine)

    old = asyncio.create_task(coordinator.request(["burger"]))
    await asyncio.sleep(0)
    new = asyncio.create_task(coordinator.request(["burger", "fries"]))
    await asyncio.sleep(0)

    engine.gate.set()
    old_result, new_result = await asyncio.gather(old, new)

    assert old_result.stale
    assert not old_result.notify_fallback
    assert not new_result.stale
    assert coordinator.last_response is new_result.response
    assert coordinator.last_response.cart_fingerprint == "burger|fries"
    assert coordinator.state == RequestState.MERGED


@pytest.mark.asyncio
async def test_fallback_notice_once_per_fingerprint() -> None:
    engine = GatedEngine(used_fallback=True, open_gate=True)
    coordinator = SuggestionCoordinator(engine)

    first = await coordinator.request(["burger"])
    repeat = await coordinator.request(["burger", "burger"])
    other = await coordinator.request(["fries"])
    back = await coordinator.request(["burger"])

    assert first.notify_fallback
    assert not repeat.notify_fallback
    assert other.notify_fallback
    assert not back.notify_fallback
    assert len(engine.calls) == 4


@pytest.mark.asyncio
async def test_no_notice_without_fallback() -> None:
    coordinator = SuggestionCoordinator(GatedEngine(open_gate=True))

    result = await coordinator.request(["burger"])

    assert not result.notify_fallback
    assert coordinator.state == RequestState.MERGED


@pytest.mark.asyncio
async def test_reset_returns_to_idle_and_allows_new_notice() -> None:
    coordinator = SuggestionCoordinator(GatedEngine(used_fallback=True, open_gate=True))

    await coordinator.request(["burger"])
    coordinator.reset()

    assert coordinator.state == RequestState.IDLE
    assert coordinator.last_response is None
    assert (await coordinator.request(["burger"])).notify_fallback


def test_new_coordinator_is_idle() -> None:
    assert SuggestionCoordinator(GatedEngine()).state == RequestState.IDLE


def test_session_registry_is_a_bounded_lru() -> None:
    registry = SessionRegistry(GatedEngine(), max_sessions=2)

    a = registry.get("a")
    registry.get("b")
    assert registry.get("a") is a

    registry.get("c")

    assert len(registry) == 2
    assert registry.get("a") is a
    assert registry.get("b") is not None
    assert len(registry) == 2
