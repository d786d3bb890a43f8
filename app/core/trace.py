"""
Diagnostics trace for payment confirmation.

The endpoint opens a trace for the request; services record steps with
`trace_step()` without the trace being passed through their arguments.
Outside an open trace, `trace_step()` only logs at DEBUG level.

Usage:
    with confirmation_trace() as trace:
        await service.confirm(...)
    return {"trace": trace.steps}
"""
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

_current_trace: ContextVar[Optional["ConfirmationTrace"]] = ContextVar(
    "confirmation_trace", default=None
)


class ConfirmationTrace:
    """Ordered list of pipeline steps taken for one confirmation."""

    def __init__(self):
        self.steps: List[Dict[str, Any]] = []

    def add(self, step: str, **details: Any) -> None:
        entry: Dict[str, Any] = {
            "step": step,
            "at": datetime.now(timezone.utc).isoformat(),
        }
        entry.update({key: _jsonable(value) for key, value in details.items()})
        self.steps.append(entry)


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


@contextmanager
def confirmation_trace() -> Iterator[ConfirmationTrace]:
    """Collect steps recorded in this context into a new trace."""
    trace = ConfirmationTrace()
    token = _current_trace.set(trace)
    try:
        yield trace
    finally:
        _current_trace.reset(token)


def trace_step(step: str, **details: Any) -> None:
    """Record a step in the active trace, if any."""
    logger.debug(f"payment step {step}: {details}")
    trace = _current_trace.get()
    if trace is not None:
        trace.add(step, **details)
