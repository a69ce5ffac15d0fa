# FILE: helm/llm/events.py
"""
Ordered phase-update channel and cooperative cancellation.

The orchestrator never talks to a transport. It publishes PhaseUpdate
objects to a PhaseChannel; transports (the SSE router, tests) subscribe and
receive every update in publish order. Each subscriber owns an unbounded
asyncio.Queue, so a slow subscriber never reorders or drops events for
itself or blocks others.

Usage:
    channel = PhaseChannel()
    subscription = channel.subscribe(job_id="job-1")
    emitter = PhaseEmitter(channel, "job-1")
    emitter.emit(Phase.INTENT, PhaseStatus.PROCESSING)

    async for update in subscription:
        ...  # ends after the job's terminal event
"""

import asyncio
import itertools
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from helm.llm.schemas import Phase, PhaseStatus, PhaseUpdate

logger = logging.getLogger(__name__)

_CLOSED = object()


class CancelToken:
    """Cooperative cancellation flag shared by one job's steps."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class PhaseSubscription:
    """Async iterator over updates; optionally filtered to one job."""

    def __init__(self, channel: "PhaseChannel", job_id: Optional[str] = None):
        self._channel = channel
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self.job_id = job_id
        self._done = False

    def _offer(self, update: PhaseUpdate) -> None:
        if self._done:
            return
        if self.job_id is not None and update.job_id != self.job_id:
            return
        self._queue.put_nowait(update)

    def _close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        self._channel.unsubscribe(self)
        self._close()

    def __aiter__(self) -> AsyncIterator[PhaseUpdate]:
        return self

    async def __anext__(self) -> PhaseUpdate:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._done = True
            self._channel.unsubscribe(self)
            raise StopAsyncIteration
        # A job-scoped subscription ends with that job's terminal event.
        if self.job_id is not None and item.is_terminal:
            self._done = True
            self._channel.unsubscribe(self)
        return item


class PhaseChannel:
    """Fan-out of PhaseUpdates to subscribers, preserving publish order."""

    def __init__(self) -> None:
        self._subscribers: List[PhaseSubscription] = []
        self._sequence = itertools.count(1)

    def subscribe(self, job_id: Optional[str] = None) -> PhaseSubscription:
        subscription = PhaseSubscription(self, job_id)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: PhaseSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def publish(self, update: PhaseUpdate) -> PhaseUpdate:
        stamped = update.model_copy(update={"sequence": next(self._sequence)})
        for subscription in list(self._subscribers):
            subscription._offer(stamped)
        return stamped

    def close(self) -> None:
        for subscription in list(self._subscribers):
            subscription._close()
        self._subscribers.clear()


class PhaseEmitter:
    """Builds PhaseUpdates for one job and remembers what it sent."""

    def __init__(self, channel: PhaseChannel, job_id: str):
        self._channel = channel
        self.job_id = job_id
        self.history: List[PhaseUpdate] = []

    def emit(
        self,
        phase: Phase,
        status: PhaseStatus,
        payload: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> PhaseUpdate:
        update = self._channel.publish(
            PhaseUpdate(job_id=self.job_id, phase=phase, status=status, payload=payload, error=error)
        )
        self.history.append(update)
        return update

    def emitted(self, phase: Phase) -> bool:
        return any(u.phase == phase for u in self.history)


__all__ = [
    "CancelToken",
    "PhaseChannel",
    "PhaseSubscription",
    "PhaseEmitter",
]
