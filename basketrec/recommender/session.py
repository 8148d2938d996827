"""Per-session request coordination.

A ``SuggestionCoordinator`` belongs to one client session. It coalesces
identical in-flight requests, discards results that were overtaken by a newer
cart, and decides when the client should show a fallback notice: at most once
per distinct cart state.
"""

import asyncio
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence

from basketrec.recommender.merge import VIEW_CART, MergeEngine
from basketrec.recommender.models import SuggestionResponse, cart_fingerprint

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 1024
NOTIFIED_FINGERPRINTS_KEPT = 256


class RequestState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MERGED = "merged"
    DEGRADED = "degraded"


@dataclass
class CoordinatedResponse:
    response: SuggestionResponse
    notify_fallback: bool = False
    stale: bool = False
    coalesced: bool = False


class SuggestionCoordinator:
    """Request state machine for one session.

    ``Idle -> Fetching -> {Merged | Degraded}``; ``reset()`` returns to Idle.
    """

    def __init__(self, engine: MergeEngine):
        self.engine = engine
        self._inflight: Dict[str, "asyncio.Future[SuggestionResponse]"] = {}
        self._latest_key: Optional[str] = None
        self._outcome = RequestState.IDLE
        self._notified: "OrderedDict[str, None]" = OrderedDict()
        self.last_response: Optional[SuggestionResponse] = None

    @property
    def state(self) -> RequestState:
        if self._latest_key is not None and self._latest_key in self._inflight:
            return RequestState.FETCHING
        return self._outcome

    @staticmethod
    def request_key(fingerprint: str, user_id: Optional[str], view: str) -> str:
        return f"{user_id or ''}:{view}:{fingerprint}"

    async def request(
        self,
        cart_item_ids: Sequence[str],
        user_id: Optional[str] = None,
        view: str = VIEW_CART,
    ) -> CoordinatedResponse:
        """Fetch suggestions for the current cart through the engine.

        An identical request already in flight is awaited instead of being
        issued again. If a request for a different cart starts meanwhile, this
        result comes back with ``stale=True`` and leaves the session untouched.
        """
        fingerprint = cart_fingerprint(cart_item_ids)
        key = self.request_key(fingerprint, user_id, view)
        self._latest_key = key

        task = self._inflight.get(key)
        coalesced = task is not None
        if task is None:
            task = asyncio.ensure_future(self.engine.recommend(cart_item_ids, user_id, view))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        else:
            logger.debug("Coalescing duplicate suggestion request", extra={"request_key": key})

        response = await asyncio.shield(task)

        if key != self._latest_key:
            logger.info(
                "Discarding suggestions for a superseded cart",
                extra={"cart_fingerprint": fingerprint},
            )
            return CoordinatedResponse(response=response, stale=True, coalesced=coalesced)

        self._outcome = RequestState.DEGRADED if response.used_fallback else RequestState.MERGED
        self.last_response = response

        return CoordinatedResponse(
            response=response,
            notify_fallback=self._should_notify(response),
            coalesced=coalesced,
        )

    def _should_notify(self, response: SuggestionResponse) -> bool:
        fingerprint = response.cart_fingerprint
        if not response.used_fallback or not fingerprint or fingerprint in self._notified:
            return False
        self._notified[fingerprint] = None
        while len(self._notified) > NOTIFIED_FINGERPRINTS_KEPT:
            self._notified.popitem(last=False)
        return True

    def reset(self) -> None:
        """Forget the session's cart state, e.g. after checkout."""
        self._latest_key = None
        self._outcome = RequestState.IDLE
        self._notified.clear()
        self.last_response = None


class SessionRegistry:
    """Bounded LRU of coordinators keyed by session id."""

    def __init__(self, engine: MergeEngine, max_sessions: int = DEFAULT_MAX_SESSIONS):
        self.engine = engine
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, SuggestionCoordinator]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, session_id: str) -> SuggestionCoordinator:
        with self._lock:
            coordinator = self._sessions.get(session_id)
            if coordinator is None:
                coordinator = SuggestionCoordinator(self.engine)
                self._sessions[session_id] = coordinator
            else:
                self._sessions.move_to_end(session_id)
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
            return coordinator

    def __len__(self) -> int:
        return len(self._sessions)
