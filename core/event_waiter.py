# -*- coding: utf-8 -*-
import asyncio
import contextlib
import logging
from typing import Any, Callable, Iterator, List

log = logging.getLogger('VoiceBot.EventWaiter')

# Returns True to resolve the waiter with the event, an exception to reject it,
# or None/False to keep waiting.
EventMatcher = Callable[[Any], Any]


class EventWaiter:
    """Fans out discrete events to listeners and lets callers await one of them.

    Listeners registered through ``expect`` are one-shot and are always removed
    when the ``with`` block exits, whether the future resolved, was rejected or
    the caller timed out.
    """

    def __init__(self, name: str = "events"):
        self.name = name
        self._listeners: List[Callable[[Any], None]] = []

    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                log.error(f"{self.name}: listener raised while handling {event!r}: {e}", exc_info=True)

    @contextlib.contextmanager
    def expect(self, matcher: EventMatcher) -> Iterator["asyncio.Future[Any]"]:
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[Any]" = loop.create_future()

        def listener(event: Any) -> None:
            if future.done():
                return
            outcome = matcher(event)
            if isinstance(outcome, BaseException):
                future.set_exception(outcome)
            elif outcome:
                future.set_result(event)

        self._listeners.append(listener)
        try:
            yield future
        finally:
            self._listeners.remove(listener)
            if not future.done():
                future.cancel()
            elif not future.cancelled():
                future.exception() # Mark retrieved so an unawaited rejection is not reported

