"""In-process change feed for care-request mutations.

Observers subscribe by key and receive the full hydrated aggregate after
every accepted write:

    FeedKey.for_request(id)  patient or provider tracking one request
    FeedKey.unclaimed()      idle providers watching the open pool
    FeedKey.all()            admin dashboards

``subscribe`` hands back a Subscription the caller owns; closing it (any
number of times) detaches it from the feed. Events carry the request's
``version`` so a consumer can discard anything older than what it already
applied, whatever order events arrive in.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import queue
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from urgentcare.schemas.care_requests import CareRequestOut
from urgentcare.services.status import UNCLAIMED_STATUSES

logger = logging.getLogger("urgentcare")

SCOPE_REQUEST = "request"
SCOPE_UNCLAIMED = "unclaimed"
SCOPE_ALL = "all"


@dataclass(frozen=True)
class FeedKey:
    scope: str
    request_id: Optional[str] = None

    @classmethod
    def for_request(cls, request_id: str) -> "FeedKey":
        return cls(SCOPE_REQUEST, str(request_id))

    @classmethod
    def unclaimed(cls) -> "FeedKey":
        return cls(SCOPE_UNCLAIMED)

    @classmethod
    def all(cls) -> "FeedKey":
        return cls(SCOPE_ALL)

    @classmethod
    def parse(cls, raw: str) -> "FeedKey":
        """Parse ``request:<id>``, ``unclaimed`` or ``all``."""
        text = (raw or "").strip()
        if text == SCOPE_UNCLAIMED:
            return cls.unclaimed()
        if text == SCOPE_ALL:
            return cls.all()
        scope, _, request_id = text.partition(":")
        if scope == SCOPE_REQUEST and request_id:
            return cls.for_request(request_id)
        raise ValueError(f"Unknown feed key: {raw!r}")

    def __str__(self) -> str:
        if self.scope == SCOPE_REQUEST:
            return f"{SCOPE_REQUEST}:{self.request_id}"
        return self.scope


@dataclass(frozen=True)
class ChangeEvent:
    kind: str  # "created" | "updated"
    request_id: str
    version: int
    sequence: int
    care_request: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "request_id": self.request_id,
            "version": self.version,
            "sequence": self.sequence,
            "occurred_at": self.occurred_at.isoformat(),
            "care_request": self.care_request,
        }


def is_unclaimed(care_request) -> bool:
    return care_request.provider_id is None and care_request.status in UNCLAIMED_STATUSES


def latest_by_request(events: Iterable[ChangeEvent]) -> Dict[str, ChangeEvent]:
    """Collapse events to the newest write per request (highest version wins)."""
    latest: Dict[str, ChangeEvent] = {}
    for event in events:
        seen = latest.get(event.request_id)
        if seen is None or event.version > seen.version:
            latest[event.request_id] = event
    return latest


class Subscription:
    """A caller-owned handle on one feed key.

    Bound to an event loop, events are queued on an asyncio.Queue from any
    thread and read with ``await receive()``. Without a loop, events are
    read synchronously with ``get`` / ``drain``.
    """

    def __init__(self, feed: "ChangeFeed", key: FeedKey, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.key = key
        self._feed = feed
        self._loop = loop
        self._closed = False
        if loop is not None:
            self._async_queue: Optional[asyncio.Queue] = asyncio.Queue()
            self._sync_queue: Optional[queue.SimpleQueue] = None
        else:
            self._async_queue = None
            self._sync_queue = queue.SimpleQueue()

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        if self._loop is None:
            self._sync_queue.put(event)
            return
        try:
            self._loop.call_soon_threadsafe(self._async_queue.put_nowait, event)
        except RuntimeError:
            # loop already shut down; nobody can read this handle any more
            logger.info({"function": "change_feed.deliver", "status": "loop_closed", "key": str(self.key)})
            self.close()

    def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        if self._sync_queue is None:
            raise RuntimeError("Subscription is bound to an event loop; use `await receive()`")
        try:
            return self._sync_queue.get(timeout=timeout) if timeout else self._sync_queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> List[ChangeEvent]:
        events: List[ChangeEvent] = []
        while True:
            event = self.get()
            if event is None:
                return events
            events.append(event)

    async def receive(self) -> ChangeEvent:
        if self._async_queue is None:
            raise RuntimeError("Subscription is not bound to an event loop; use `get()`")
        return await self._async_queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._detach(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: Dict[FeedKey, List[Subscription]] = defaultdict(list)
        self._sequence = itertools.count(1)

    def subscribe(self, key: FeedKey, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        sub = Subscription(self, key, loop=loop)
        with self._lock:
            self._subscriptions[key].append(sub)
        logger.info({"function": "change_feed.subscribe", "key": str(key)})
        return sub

    def _detach(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(sub.key)
            if subs and sub in subs:
                subs.remove(sub)
                if not subs:
                    del self._subscriptions[sub.key]
        logger.info({"function": "change_feed.unsubscribe", "key": str(sub.key)})

    def subscriber_count(self, key: Optional[FeedKey] = None) -> int:
        with self._lock:
            if key is not None:
                return len(self._subscriptions.get(key, ()))
            return sum(len(subs) for subs in self._subscriptions.values())

    def keys_for(self, care_request: CareRequestOut, was_unclaimed: bool) -> List[FeedKey]:
        keys = [FeedKey.for_request(care_request.id), FeedKey.all()]
        # idle providers also need the write that takes a request out of the pool
        if was_unclaimed or is_unclaimed(care_request):
            keys.append(FeedKey.unclaimed())
        return keys

    def publish(self, care_request: CareRequestOut, kind: str = "updated", was_unclaimed: bool = False) -> ChangeEvent:
        """Fan one committed write out to every matching subscription."""
        with self._lock:
            event = ChangeEvent(
                kind=kind,
                request_id=care_request.id,
                version=care_request.version,
                sequence=next(self._sequence),
                care_request=care_request.model_dump(mode="json"),
            )
            targets = [
                sub
                for key in self.keys_for(care_request, was_unclaimed)
                for sub in self._subscriptions.get(key, ())
            ]
        for sub in targets:
            sub._deliver(event)
        logger.info({
            "function": "change_feed.publish",
            "request_id": event.request_id,
            "version": event.version,
            "sequence": event.sequence,
            "delivered": len(targets),
        })
        return event
