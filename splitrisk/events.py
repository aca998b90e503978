"""
SplitRisk Event Infrastructure

Typed events for every observable side effect of the protocol, an in-memory
pub/sub bus, and an append-only store for replay and reporting.

    Domain Events          Event Bus             Event Store
    ├─ RiskSplit           ├─ Typed pub/sub      ├─ Append-only streams
    ├─ Invested            ├─ Priorities         ├─ Global sequence numbers
    ├─ Divested            ├─ Filters            └─ Replay
    └─ Claimed             └─ Error isolation

Events are immutable facts. Handlers never influence the operation that
emitted the event: a failing handler is counted and reported, and the
protocol operation still commits.

Usage
─────

    bus = EventBus()

    @bus.subscribe(Claimed)
    def on_claim(event: Claimed):
        print(event.caller, event.base_payout)

    bus.publish(Claimed(caller="alice", senior_amount=10))
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

from splitrisk.core import canonical_json_bytes, sha256_bytes

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all protocol events.

    Each event has a unique ID, a wall-clock timestamp, and the protocol time
    (``protocol_time``, unix seconds from the injected clock) at which the
    emitting operation ran.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    protocol_time: int = 0
    correlation_id: Optional[str] = None

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def payload(self) -> Dict[str, Any]:
        """Domain fields only, without envelope metadata."""
        envelope = {f for f in Event.__dataclass_fields__}
        return {k: v for k, v in asdict(self).items() if k not in envelope}

    def digest(self) -> str:
        """Deterministic digest of the event type and domain payload."""
        body = {"event_type": self.event_type, "payload": self.payload()}
        return sha256_bytes(canonical_json_bytes(body))


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class RiskSplit(Event):
    """Emitted when a deposit is split into senior and junior claims."""
    caller: str = ""
    amount: int = 0


@dataclass
class Invested(Event):
    """Emitted when the pool is allocated to both venues."""
    pool_amount: int = 0
    venue_x_receipt: int = 0
    venue_y_receipt: int = 0
    total_tranches: int = 0


@dataclass
class Divested(Event):
    """Emitted when both venues are unwound and payout ratios are fixed."""
    final_balance: int = 0
    pre_balance: int = 0
    venue_x_receipt: int = 0
    venue_y_receipt: int = 0
    interest: int = 0
    regime: str = ""
    senior_payout_ratio: int = 0
    junior_payout_ratio: int = 0


@dataclass
class LiquidModeActivated(Event):
    """Emitted when liquid mode is entered without a divestment."""
    pool_balance: int = 0
    total_tranches: int = 0
    senior_payout_ratio: int = 0
    junior_payout_ratio: int = 0


@dataclass
class Claimed(Event):
    """Emitted for every redemption, liquid or fallback."""
    caller: str = ""
    senior_amount: int = 0
    junior_amount: int = 0
    base_payout: int = 0
    venue_x_payout: int = 0
    venue_y_payout: int = 0
    mode: str = ""


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory synchronous event bus.

    Handlers run in priority order (higher first) on the publishing thread.
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """Decorator to subscribe a handler to event types (all events if none given)."""
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Unsubscribe a handler."""
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        """Call a handler, isolating its failure from the publisher."""
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.warning("%s", error)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        """Get event bus metrics."""
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


# ════════════════════════════════════════════════════════════════════════════
# EVENT STORE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EventRecord:
    """A persisted event record."""
    sequence_number: int
    event: Event
    stream_id: str
    version: int

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "sequence_number": self.sequence_number,
            "event": self.event.to_dict(),
            "stream_id": self.stream_id,
            "version": self.version,
        }


class EventStore:
    """
    Append-only event store.

    Events are organised into streams; every record also carries a global
    sequence number so the full protocol history can be replayed in order.
    """

    def __init__(self):
        self._records: List[EventRecord] = []
        self._streams: Dict[str, List[EventRecord]] = {}
        self._lock = threading.Lock()

    def append(self, stream_id: str, event: Event) -> EventRecord:
        """Append an event to a stream."""
        with self._lock:
            stream = self._streams.setdefault(stream_id, [])
            record = EventRecord(
                sequence_number=len(self._records),
                event=event,
                stream_id=stream_id,
                version=len(stream),
            )
            stream.append(record)
            self._records.append(record)
            return record

    def read_stream(self, stream_id: str) -> List[Event]:
        """Events of one stream, in append order."""
        with self._lock:
            return [r.event for r in self._streams.get(stream_id, [])]

    def read_all(self, from_position: int = 0, event_type: Optional[Type[Event]] = None) -> List[Event]:
        """All events from a global position, optionally filtered by type."""
        with self._lock:
            records = self._records[from_position:]
        return [r.event for r in records if event_type is None or isinstance(r.event, event_type)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
