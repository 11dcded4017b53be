"""
Event batcher.

Buffers tracked events and sends them to ``/track`` in batches:

- when the buffer reaches ``batch_size`` (auto-flush, fire-and-forget)
- when ``batch_timeout_ms`` elapses after the first buffered event (auto-flush)
- when ``flush()`` is called (synchronous)
- once more at ``shutdown()``

All buffer and timer state is mutated inside a single critical section, so a
threshold flush and a timer firing at the same moment can never both take the
same events. Auto-flush sends run on a worker pool outside that section;
their outcome is only visible through logging, ``metrics`` and the optional
``on_result`` callback. Failed batches are dropped, not re-queued.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple, Union

from .auth import attach_token, track_headers
from .config import MixpanelConfig
from .event import Event
from .exceptions import DriverError, RateLimitError
from .transport import TRACK_ENDPOINT, Transport

logger = logging.getLogger(__name__)

ResultCallback = Callable[[int, Optional[Dict[str, int]], Optional[DriverError]], None]


@dataclass
class BatcherMetrics:
    """Counters for batched delivery."""

    events_queued: int = 0
    batches_full: int = 0
    batches_timed_out: int = 0
    batches_flushed: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    batches_rate_limited: int = 0
    events_sent: int = 0
    events_dropped: int = 0


class EventBatcher:
    """
    Thread-safe event buffer with size and time based flushing.

    Args:
        config: Driver configuration (batch_size, batch_timeout_ms, project_token)
        transport: Transport used for every send
        on_result: Optional callback ``(event_count, result, error)`` invoked
            after each batch send; exactly one of result/error is set
        max_workers: Threads available for concurrent auto-flush sends

    Example:
        batcher = EventBatcher(config, transport)
        batcher.add_event({"event": "page_view", "device_id": "d1"})
        batcher.flush()
        batcher.shutdown()
    """

    def __init__(
        self,
        config: MixpanelConfig,
        transport: Transport,
        on_result: Optional[ResultCallback] = None,
        max_workers: int = 4
    ):
        self.config = config
        self.transport = transport
        self.on_result = on_result
        self.metrics = BatcherMetrics()

        self._lock = threading.Lock()
        self._metrics_lock = threading.Lock()
        self._events: List[Event] = []
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._closed = False

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="mixpanel-batch"
        )
        self._in_flight: Set[Future] = set()
        self._futures_lock = threading.Lock()

    # ========================================================================
    # Public API
    # ========================================================================

    def add_event(self, event: Union[Event, Mapping[str, Any]]) -> None:
        """
        Buffer one event.

        Mappings are converted with ``Event.from_mapping``; invalid input raises
        ``ValidationError`` and is never buffered. Never waits on the network.

        Raises:
            ValidationError: If the event is invalid
            DriverError: If the batcher has been shut down
        """
        event = Event.from_mapping(event)
        batch = None

        with self._lock:
            if self._closed:
                raise DriverError(
                    "Batcher is shut down; event not queued",
                    details={"event": event.name}
                )

            self._events.append(event)
            self._count("events_queued")

            if len(self._events) >= self.config.batch_size:
                batch = self._take_batch()
                self._count("batches_full")
            elif self._timer is None:
                self._arm_timer()

        if batch:
            logger.debug(f"Batch full ({len(batch)} events), sending")
            self._dispatch(batch)

    def flush(self) -> Dict[str, int]:
        """
        Send everything buffered now, blocking until the send completes.

        Returns:
            {"attempted": count} - whether or not the send succeeded
        """
        with self._lock:
            batch = self._take_batch()

        if not batch:
            return {"attempted": 0}

        self._count("batches_flushed")
        self._send_batch(batch)
        return {"attempted": len(batch)}

    def clear(self) -> int:
        """Discard buffered events without sending. Returns how many were dropped."""
        with self._lock:
            batch = self._take_batch()

        if batch:
            logger.debug(f"Cleared {len(batch)} buffered events")
        return len(batch)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._events)

    def pending_events(self) -> Tuple[Event, ...]:
        with self._lock:
            return tuple(self._events)

    @property
    def timer_armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until in-flight auto-flush sends finish.

        Returns:
            True if all sends finished within ``timeout``
        """
        with self._futures_lock:
            futures = list(self._in_flight)

        if not futures:
            return True

        _, not_done = wait_futures(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        """
        Best-effort final flush, then stop the worker pool.

        Safe to call more than once.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            batch = self._take_batch()

        if batch:
            logger.info(f"Flushing {len(batch)} events before shutdown")
            self._send_batch(batch)

        self._executor.shutdown(wait=wait)

    # ========================================================================
    # Internal Methods (caller must hold self._lock where noted)
    # ========================================================================

    def _take_batch(self) -> List[Event]:
        """Swap out the buffer and disarm the timer. Caller holds the lock."""
        batch = self._events
        self._events = []
        self._cancel_timer()
        return batch

    def _arm_timer(self) -> None:
        """Caller holds the lock."""
        self._generation += 1
        timer = threading.Timer(
            self.config.batch_timeout,
            self._on_timeout,
            args=(self._generation,)
        )
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        """Caller holds the lock. Bumping the generation makes an already-firing timer a no-op."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

    def _on_timeout(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._timer is None:
                # Stale timer: a flush already emptied the batch it was armed for
                return

            self._timer = None
            if not self._events:
                return

            batch = self._take_batch()
            self._count("batches_timed_out")

        logger.debug(f"Batch timeout reached ({len(batch)} events), sending")
        self._dispatch(batch)

    def _dispatch(self, batch: List[Event]) -> None:
        """
        Hand a batch to the worker pool. Called without the lock held.

        Once the pool is shut down (interpreter exit, or shutdown() racing a
        threshold or timer flush) the batch is sent on the calling thread instead.
        """
        try:
            future = self._executor.submit(self._send_batch, batch)
        except RuntimeError:
            logger.warning(f"Worker pool unavailable, sending {len(batch)} events inline")
            self._send_batch(batch)
            return

        with self._futures_lock:
            self._in_flight.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        # May run inline on the dispatching thread
        with self._futures_lock:
            self._in_flight.discard(future)

    def _send_batch(self, batch: List[Event]) -> Optional[Dict[str, int]]:
        token = self.config.project_token
        payloads = [attach_token(event.to_track_payload(), token) for event in batch]

        try:
            result = self.transport.send(payloads, TRACK_ENDPOINT, track_headers(token))
        except RateLimitError as e:
            self._count("batches_rate_limited")
            self._record_failure(batch, e)
            logger.warning(f"Batch rate limited, {len(batch)} events dropped: {e}")
            return None
        except DriverError as e:
            self._record_failure(batch, e)
            logger.error(f"Batch send failed, {len(batch)} events dropped: {e}")
            return None
        except Exception as e:
            # Worker boundary: nobody is waiting on this thread's result
            self._record_failure(batch, DriverError(str(e)))
            logger.exception(f"Unexpected error sending batch of {len(batch)} events")
            return None

        self._count("batches_sent")
        self._count("events_sent", len(batch))
        logger.debug(f"Batch sent successfully ({len(batch)} events): {result}")
        self._notify(len(batch), result, None)
        return result

    def _record_failure(self, batch: List[Event], error: DriverError) -> None:
        self._count("batches_failed")
        self._count("events_dropped", len(batch))
        self._notify(len(batch), None, error)

    def _notify(
        self,
        event_count: int,
        result: Optional[Dict[str, int]],
        error: Optional[DriverError]
    ) -> None:
        if self.on_result is None:
            return
        try:
            self.on_result(event_count, result, error)
        except Exception:
            logger.exception("on_result callback raised")

    def _count(self, name: str, amount: int = 1) -> None:
        with self._metrics_lock:
            setattr(self.metrics, name, getattr(self.metrics, name) + amount)
