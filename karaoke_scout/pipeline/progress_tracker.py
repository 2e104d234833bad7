"""Fire-and-forget progress channel with per-run listener registries.

# ─── HOW PROGRESS TRACKING WORKS ──────────────────────────────────────
#
# Observer pattern, one registry per tracker instance (no module globals):
#
#   Pipeline ──publish(event)──→ ProgressTracker ──callback(event)──→ listener
#                                                ──→ (any other listener)
#
#   - Listeners are keyed by run_id; "*" receives every run.
#   - publish() is synchronous and never blocks the pipeline: sync
#     listeners are called inline, async listeners are scheduled as tasks
#     and not awaited.  There is no acknowledgement or backpressure.
#   - A listener that raises is logged and skipped.
#   - Events are the typed union in karaoke_scout/models/events.py.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from karaoke_scout.models.events import (
    PercentEvent,
    ProgressEvent,
    SnapshotEvent,
    StatusEvent,
)
from karaoke_scout.utils.logging import get_logger

ALL_RUNS = "*"

Listener = Callable[[ProgressEvent], object]


@dataclass
class _RunStatus:
    """Latest known status of one run (internal, never serialized)."""

    percent: float = 0.0
    message: str = ""
    stage: str | None = None


class ProgressTracker:
    """Tracks and broadcasts run progress to registered listeners."""

    def __init__(self) -> None:
        self._statuses: dict[str, _RunStatus] = {}
        self._listeners: dict[str, list[Listener]] = {}
        self._pending: set[asyncio.Task] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def publish(self, event: ProgressEvent) -> None:
        """Record *event* and deliver it to every matching listener."""
        status = self._statuses.setdefault(event.run_id, _RunStatus())
        if isinstance(event, PercentEvent):
            status.percent = event.percent
        elif isinstance(event, StatusEvent):
            status.message = event.message
            status.stage = event.stage

        if not isinstance(event, SnapshotEvent):
            self._logger.debug(
                "progress_event", run_id=event.run_id, kind=event.kind
            )

        for callback in self._listeners_for(event.run_id):
            self._deliver(callback, event)

    def status(self, run_id: str, message: str, stage: str | None = None) -> None:
        self.publish(StatusEvent(run_id=run_id, message=message, stage=stage))

    def percent(self, run_id: str, completed: int, total: int, floor: float = 0.0, span: float = 100.0) -> None:
        """Publish completion of ``completed / total`` mapped into ``[floor, floor + span]``."""
        fraction = (completed / total) if total else 1.0
        value = max(0.0, min(100.0, floor + span * fraction))
        self.publish(
            PercentEvent(run_id=run_id, percent=value, completed=completed, total=total)
        )

    def register_listener(self, run_id: str, callback: Listener) -> None:
        """Register *callback* for *run_id* (or :data:`ALL_RUNS`)."""
        listeners = self._listeners.setdefault(run_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered", run_id=run_id, total_listeners=len(listeners)
            )

    def unregister_listener(self, run_id: str, callback: Listener) -> None:
        listeners = self._listeners.get(run_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered", run_id=run_id, remaining_listeners=len(listeners)
            )

    def get_status(self, run_id: str) -> dict:
        """Return ``percent``, ``message`` and ``stage`` for *run_id*."""
        status = self._statuses.get(run_id) or _RunStatus()
        return {"percent": status.percent, "message": status.message, "stage": status.stage}

    async def drain(self) -> None:
        """Wait for scheduled async listener deliveries (used at shutdown and in tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _listeners_for(self, run_id: str) -> list[Listener]:
        specific = self._listeners.get(run_id, [])
        wildcard = self._listeners.get(ALL_RUNS, []) if run_id != ALL_RUNS else []
        return [*specific, *wildcard]

    def _deliver(self, callback: Listener, event: ProgressEvent) -> None:
        try:
            result = callback(event)
        except Exception as exc:
            self._log_listener_error(callback, event, exc)
            return
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(lambda t, cb=callback, ev=event: self._on_done(t, cb, ev))

    def _on_done(self, task: asyncio.Task, callback: Listener, event: ProgressEvent) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log_listener_error(callback, event, exc)

    def _log_listener_error(self, callback: Listener, event: ProgressEvent, exc: BaseException) -> None:
        self._logger.warning(
            "listener_callback_error",
            run_id=event.run_id,
            kind=event.kind,
            error=str(exc),
            callback=getattr(callback, "__name__", repr(callback)),
        )
