"""Progress fan-out from the orchestrator to any number of subscribers."""

import asyncio
from collections.abc import AsyncIterator

from kaspa_aio.logger import get_logger
from kaspa_aio.models.installation import InstallationRun, ProgressEvent

logger = get_logger(__name__)


class Subscription:
    """One subscriber's view of a run: a snapshot, then live events."""

    def __init__(self, run_id: str, snapshot: ProgressEvent, maxsize: int) -> None:
        self.run_id = run_id
        self.snapshot = snapshot
        self.queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def push(self, event: ProgressEvent | None) -> None:
        """Enqueue without blocking; the oldest event is dropped when full."""
        while True:
            try:
                self.queue.put_nowait(event)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()
                self.dropped += 1

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Yield the snapshot first, then live events until the run closes."""
        yield self.snapshot
        while True:
            event = await self.queue.get()
            if event is None:
                return
            yield event


class ProgressBroadcaster:
    """Non-blocking publisher. A slow subscriber only loses its own oldest events."""

    def __init__(self, buffer_size: int = 256) -> None:
        self.buffer_size = buffer_size
        self._subscribers: dict[str, list[Subscription]] = {}
        self._seq: dict[str, int] = {}

    def subscribe(self, run: InstallationRun) -> Subscription:
        """Register a subscriber for ``run``.

        The snapshot reflects the run's current phase and service states, so a
        late subscriber never sees a phase older than the one it joined at.
        """
        snapshot = ProgressEvent(
            type="snapshot",
            run_id=run.id,
            seq=self._seq.get(run.id, 0),
            phase=run.phase,
            services={sid: state.model_copy() for sid, state in run.services.items()},
            message=run.failure.message if run.failure else None,
        )
        subscription = Subscription(run.id, snapshot, self.buffer_size)
        if run.finished_at is not None:
            subscription.push(None)
        else:
            self._subscribers.setdefault(run.id, []).append(subscription)
        logger.debug(f"Subscriber added for run {run.id} at phase {run.phase.value}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.run_id, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if subscription.dropped:
            logger.info(f"Subscriber for run {subscription.run_id} dropped {subscription.dropped} event(s)")

    def publish(
        self,
        run: InstallationRun,
        type: str,
        service: str | None = None,
        status: str | None = None,
        message: str | None = None,
    ) -> ProgressEvent:
        """Fan an event out to every subscriber of ``run``. Never blocks."""
        seq = self._seq.get(run.id, 0) + 1
        self._seq[run.id] = seq
        event = ProgressEvent(
            type=type,  # type: ignore[arg-type]
            run_id=run.id,
            seq=seq,
            phase=run.phase,
            service=service,
            status=status,
            message=message,
        )
        for subscription in self._subscribers.get(run.id, []):
            subscription.push(event)
        return event

    def close(self, run_id: str) -> None:
        """End every subscriber's stream for ``run_id``."""
        for subscription in self._subscribers.pop(run_id, []):
            subscription.push(None)

    def subscriber_count(self, run_id: str) -> int:
        return len(self._subscribers.get(run_id, []))
