from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, TextIO

from eurozbot.domain.models import StatusCategory, StatusSeverity
from eurozbot.security.redaction import sanitize_text


class EventSink(Protocol):
    def log(self, message: str) -> None: ...

    def status(
        self, category: StatusCategory, severity: StatusSeverity, message: str
    ) -> None: ...


@dataclass(frozen=True)
class StatusEvent:
    category: StatusCategory
    severity: StatusSeverity
    message: str


class ConsoleEventSink:
    """Human-facing sink: timestamped log lines and status lines on a text stream.

    Once closed, further events are dropped; a transaction that settles after
    teardown therefore never writes to a stream that is going away.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        now_fn: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._now_fn = now_fn
        self._closed = False
        self._last_countdown: str | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def log(self, message: str) -> None:
        if self._closed:
            return
        timestamp = self._now_fn().strftime("%H:%M:%S")
        self._write(f"[{timestamp}] {message}")

    def status(self, category: StatusCategory, severity: StatusSeverity, message: str) -> None:
        if self._closed:
            return
        if category is StatusCategory.COUNTDOWN:
            # ticks repeat every second; only print when the text changes
            if message == self._last_countdown:
                return
            self._last_countdown = message
        self._write(f"[{category.value}] {severity.value}: {message}")

    def close(self) -> None:
        self._closed = True

    def _write(self, line: str) -> None:
        self._stream.write(sanitize_text(line) + "\n")
        self._stream.flush()


class InMemoryEventSink:
    def __init__(self) -> None:
        self.logs: list[str] = []
        self.statuses: list[StatusEvent] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def log(self, message: str) -> None:
        if not self._closed:
            self.logs.append(message)

    def status(self, category: StatusCategory, severity: StatusSeverity, message: str) -> None:
        if not self._closed:
            self.statuses.append(StatusEvent(category, severity, message))

    def close(self) -> None:
        self._closed = True

    def statuses_for(self, category: StatusCategory) -> list[StatusEvent]:
        return [event for event in self.statuses if event.category is category]
