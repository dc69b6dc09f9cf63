from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum, auto
from types import TracebackType
from typing import TYPE_CHECKING, Any

from cyclewire._internal.diagnostics import Diagnostics
from cyclewire._internal.proxies import ForwardingProxyFactory, bind_proxy

if TYPE_CHECKING:
    from typing_extensions import Self

    from cyclewire._internal.dependencies import Dependency

_MISSING: Any = object()


class ConstructionState(Enum):
    """Where a producer is in its construction within one request."""

    NOT_STARTED = auto()
    IN_PROGRESS = auto()
    DONE = auto()


class ConstructionTracker:
    """Track construction of one producer within one resolution request.

    Holds the in-progress flag used for cycle detection, the first completed
    instance, and the proxies handed out while construction was running.
    """

    __slots__ = ("_constructing", "_pending_proxies", "_result", "producer")

    def __init__(self, producer: object) -> None:
        self.producer = producer
        self._constructing = False
        self._result: Any = _MISSING
        self._pending_proxies: list[Any] = []

    @property
    def is_constructing(self) -> bool:
        return self._constructing

    @property
    def state(self) -> ConstructionState:
        if self._constructing:
            return ConstructionState.IN_PROGRESS
        if self._result is not _MISSING:
            return ConstructionState.DONE
        return ConstructionState.NOT_STARTED

    @property
    def has_result(self) -> bool:
        return self._result is not _MISSING

    @property
    def result(self) -> Any:
        """Return the first instance this producer completed in the request.

        Raises:
            LookupError: If the producer has not completed yet.

        """
        if self._result is _MISSING:
            msg = f"{self.producer!r} has not produced a value in this request."
            raise LookupError(msg)
        return self._result

    @property
    def pending_proxies(self) -> tuple[Any, ...]:
        return tuple(self._pending_proxies)

    def start_construction(self) -> None:
        self._constructing = True

    def finish_construction(self) -> None:
        self._constructing = False
        # proxies left here belong to a failed construction and stay unbound
        self._pending_proxies.clear()

    @contextmanager
    def constructing(self) -> Iterator[ConstructionTracker]:
        """Mark the producer in progress for the duration of the block.

        The flag is cleared on every exit path, including exceptions.
        """
        self.start_construction()
        try:
            yield self
        finally:
            self.finish_construction()

    def create_proxy(self, expected_type: type[Any], proxy_factory: ForwardingProxyFactory) -> Any:
        """Create a proxy for ``expected_type`` that is bound when construction completes."""
        proxy = proxy_factory.create(expected_type)
        self._pending_proxies.append(proxy)
        return proxy

    def complete(self, instance: Any) -> int:
        """Record the produced instance and bind pending proxies in creation order.

        Returns:
            Number of proxies bound.

        """
        if self._result is _MISSING:
            self._result = instance

        proxies = self._pending_proxies
        for proxy in proxies:
            bind_proxy(proxy, instance)
        bound = len(proxies)
        proxies.clear()
        return bound


class ResolutionContext:
    """Own every piece of cycle-tracking state for one top-level resolution.

    A context is confined to the thread that created it and must be used as a
    context manager: trackers, the dependency chain and diagnostics are
    discarded when the block exits, whatever the outcome.
    """

    __slots__ = (
        "_active",
        "_dependency_stack",
        "_trackers",
        "diagnostics",
        "owner_thread_id",
    )

    def __init__(self) -> None:
        self._trackers: dict[int, ConstructionTracker] = {}
        self._dependency_stack: list[Dependency] = []
        self._active = True
        self.diagnostics = Diagnostics()
        self.owner_thread_id = threading.get_ident()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._active = False
        self._trackers.clear()
        self._dependency_stack.clear()

    @property
    def is_active(self) -> bool:
        return self._active

    def is_usable_from_current_thread(self) -> bool:
        return self._active and self.owner_thread_id == threading.get_ident()

    def tracker_for(self, producer: object) -> ConstructionTracker:
        """Return the tracker of ``producer``, creating it on first use.

        Producers are matched by identity, so repeated calls with the same
        object return the same tracker for the life of the context.
        """
        tracker = self._trackers.get(id(producer))
        if tracker is None:
            tracker = ConstructionTracker(producer)
            self._trackers[id(producer)] = tracker
        return tracker

    @property
    def dependency_chain(self) -> tuple[Dependency, ...]:
        """Dependencies currently being located, outermost first."""
        return tuple(self._dependency_stack)

    @contextmanager
    def locating(self, dependency: Dependency) -> Iterator[None]:
        self._dependency_stack.append(dependency)
        try:
            yield
        finally:
            self._dependency_stack.pop()
