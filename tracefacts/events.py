"""Event bus and the observer interface for replay events.

The replay engine publishes, in this order per trace record, any of:

    function(callee, callsite, cycles)
    loopexit(header, cycles) / loopenter(header, cycles) / loopcont(header, cycles)
    block(block, cycles)
    ret(return_instruction, callsite, cycles)

and finally a single ``eof()``.  Observers override the events they care
about; everything else falls through to the no-op defaults.
"""

from __future__ import annotations

import sys
from typing import Any, Dict, List, Optional, TextIO


class TraceObserver:
    """Receives replay events.  All handlers default to doing nothing."""

    def function(self, callee, callsite, cycles: int) -> None:
        pass

    def block(self, block, cycles: int) -> None:
        pass

    def ret(self, rsite, csite, cycles: int) -> None:
        pass

    def loopenter(self, header, cycles: int) -> None:
        pass

    def loopcont(self, header, cycles: int) -> None:
        pass

    def loopexit(self, header, cycles: int) -> None:
        pass

    def eof(self) -> None:
        pass


class EventBus:
    """Synchronous fan-out of replay events, in subscription order."""

    def __init__(self) -> None:
        self._subs: Dict[int, TraceObserver] = {}
        self._next_token = 1

    def subscribe(self, observer: TraceObserver) -> int:
        token = self._next_token
        self._next_token += 1
        self._subs[token] = observer
        return token

    def unsubscribe(self, token: int) -> None:
        self._subs.pop(token, None)

    @property
    def observers(self) -> List[TraceObserver]:
        return list(self._subs.values())

    def publish(self, event: str, *args: Any) -> None:
        for observer in list(self._subs.values()):
            getattr(observer, event)(*args)


class VerboseRecorder(TraceObserver):
    """Dumps every event as one ``EVENT <name> <args>`` line."""

    def __init__(self, out: Optional[TextIO] = None) -> None:
        self.out = out if out is not None else sys.stdout

    def _emit(self, event: str, *args: Any) -> None:
        text = " ".join("-" if a is None else str(a) for a in args)
        self.out.write(f"EVENT {event.ljust(15)} {text}".rstrip() + "\n")

    def function(self, callee, callsite, cycles):
        self._emit("function", callee, callsite, cycles)

    def block(self, block, cycles):
        self._emit("block", block, cycles)

    def ret(self, rsite, csite, cycles):
        self._emit("ret", rsite, csite, cycles)

    def loopenter(self, header, cycles):
        self._emit("loopenter", header, cycles)

    def loopcont(self, header, cycles):
        self._emit("loopcont", header, cycles)

    def loopexit(self, header, cycles):
        self._emit("loopexit", header, cycles)

    def eof(self):
        self._emit("eof")
