# trace_recorder.py

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from models import TraceEvent, TraceEventType

logger = logging.getLogger(__name__)


class Tracer(ABC):
    """Observability sink for agent runs. Implementations must never raise into the caller."""

    @abstractmethod
    def log_event(self, run_id: str, event_type: TraceEventType, payload: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def log_error(self, run_id: str, error: BaseException) -> None:
        pass


class RunTrace:
    """Append-only event log of one run."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        self._events = []

    def append(self, event_type: TraceEventType, payload: Dict[str, Any]) -> TraceEvent:
        event = TraceEvent(
            run_id=self.run_id,
            sequence=len(self._events),
            type=event_type,
            payload=payload,
            timestamp=datetime.now(timezone.utc),
        )
        self._events.append(event)
        return event

    @property
    def events(self) -> Tuple[TraceEvent, ...]:
        return tuple(self._events)


class TraceRecorder(Tracer):
    """
    Keeps the most recent runs in memory and mirrors every event to the log.
    Recording is side-effect only: failures are logged and swallowed.
    """
    def __init__(self, max_runs: int = 500):
        self.max_runs = max_runs
        self._runs: "OrderedDict[str, RunTrace]" = OrderedDict()
        self._lock = threading.Lock()

    def log_event(self, run_id: str, event_type: TraceEventType, payload: Dict[str, Any]) -> None:
        try:
            with self._lock:
                trace = self._runs.get(run_id)
                if trace is None:
                    trace = RunTrace(run_id)
                    self._runs[run_id] = trace
                    while len(self._runs) > self.max_runs:
                        self._runs.popitem(last=False)
                event = trace.append(TraceEventType(event_type), dict(payload))
            logger.debug(f"[run {run_id}] #{event.sequence} {event.type.value}: {payload}")
        except Exception as e:
            logger.warning(f"Failed to record trace event {event_type} for run {run_id}: {e}")

    def log_error(self, run_id: str, error: BaseException) -> None:
        logger.error(f"[run {run_id}] {type(error).__name__}: {error}")
        self.log_event(run_id, TraceEventType.CHAIN_ERROR, {
            "error_type": type(error).__name__,
            "message": str(error),
        })

    def get_trace(self, run_id: str) -> Optional[RunTrace]:
        with self._lock:
            return self._runs.get(run_id)
