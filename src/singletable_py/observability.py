from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("singletable_py")


@dataclass(frozen=True)
class OperationEvent:
    operation: str
    collection: str | None
    table: str | None
    phase: str
    ok: bool = True
    seconds: float | None = None
    detail: Mapping[str, Any] = field(default_factory=dict)


type EventSink = Callable[[OperationEvent], None]


def logging_sink(event: OperationEvent) -> None:
    level = logging.DEBUG if event.ok else logging.WARNING
    if not logger.isEnabledFor(level):
        return
    logger.log(
        level,
        "%s %s collection=%s table=%s seconds=%s %s",
        event.operation,
        event.phase,
        event.collection,
        event.table,
        f"{event.seconds:.4f}" if event.seconds is not None else "-",
        dict(event.detail),
    )


def null_sink(_: OperationEvent) -> None:
    return None


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[OperationEvent] = []

    def __call__(self, event: OperationEvent) -> None:
        self.events.append(event)

    def phases(self, operation: str | None = None) -> list[str]:
        return [e.phase for e in self.events if operation is None or e.operation == operation]


@contextmanager
def observe(
    sink: EventSink,
    operation: str,
    *,
    collection: str | None,
    table: str | None,
    detail: Mapping[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """Emit a ``completed`` or ``failed`` event around one store call.

    The yielded dict can be filled with extra detail before the block ends.
    """
    extra: dict[str, Any] = dict(detail or {})
    start = time.monotonic()
    try:
        yield extra
    except Exception as err:
        extra["error"] = type(err).__name__
        sink(
            OperationEvent(
                operation=operation,
                collection=collection,
                table=table,
                phase="failed",
                ok=False,
                seconds=time.monotonic() - start,
                detail=extra,
            )
        )
        raise

    sink(
        OperationEvent(
            operation=operation,
            collection=collection,
            table=table,
            phase="completed",
            seconds=time.monotonic() - start,
            detail=extra,
        )
    )
