from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from cyclewire.exceptions import CycleWireAlreadyProvisionedError

if TYPE_CHECKING:
    from cyclewire._internal.construction import ResolutionContext
    from cyclewire._internal.dependencies import Dependency

T = TypeVar("T")

KeyMatcher = Callable[[Any], bool]
"""Predicate deciding whether a listener observes bindings for a key."""


class ProvisionInvocation(ABC, Generic[T]):
    """Describe one in-flight provision handed to ``ProvisionListener.on_provision``."""

    @property
    @abstractmethod
    def key(self) -> Any:
        """Binding key being provisioned."""

    @property
    @abstractmethod
    def source(self) -> str:
        """Description of the binding's constructor or factory."""

    @property
    @abstractmethod
    def dependency_chain(self) -> tuple[Dependency, ...]:
        """Dependencies being located when the provision started, outermost first."""

    @abstractmethod
    def provision(self) -> T:
        """Run the remaining listeners and the production step, returning the value.

        Failures raised by the production step propagate out of this call.
        """


class ProvisionListener(ABC):
    """Observe provisioning of bindings.

    Listeners registered on a container are invoked in registration order
    before the instance is produced. Each listener wraps the ones registered
    after it: code placed after ``invocation.provision()`` runs once the value
    exists (or the failure propagated), innermost listener first.

    Examples:
        .. code-block:: python

            class Timing(ProvisionListener):
                def on_provision(self, invocation: ProvisionInvocation[Any]) -> None:
                    started = time.perf_counter()
                    invocation.provision()
                    log(invocation.key, time.perf_counter() - started)

    """

    @abstractmethod
    def on_provision(self, invocation: ProvisionInvocation[Any]) -> None:
        """Observe the provision described by ``invocation``.

        Listeners that return without calling ``invocation.provision()`` get it
        called for them afterwards.

        Args:
            invocation: The provision being performed.

        """


@dataclass(frozen=True, slots=True)
class ListenerRegistration:
    listener: ProvisionListener
    matcher: KeyMatcher | None = None

    def matches(self, key: Any) -> bool:
        return self.matcher is None or bool(self.matcher(key))


class ProvisionListenerStack(Generic[T]):
    """Run the listeners registered for one binding around its production step."""

    __slots__ = ("key", "listeners", "source")

    def __init__(self, key: Any, source: str, listeners: Sequence[ProvisionListener]) -> None:
        self.key = key
        self.source = source
        self.listeners = tuple(listeners)

    def has_listeners(self) -> bool:
        return bool(self.listeners)

    def provision(
        self,
        context: ResolutionContext,
        callback: Callable[[], T],
    ) -> T:
        """Invoke ``callback`` wrapped by every listener.

        Failures raised by ``callback`` are re-raised unchanged, even when a
        listener swallowed them. Any other exception raised by a listener is
        recorded in the request diagnostics and the request is aborted.

        Raises:
            ProvisionAborted: If a listener failed.

        """
        if not self.listeners:
            return callback()

        invocation = _Provision(self, context, callback)
        caught: Exception | None = None
        try:
            invocation.provision()
        except Exception as error:  # noqa: BLE001
            caught = error

        if invocation.failure is not None:
            raise invocation.failure
        # a listener error swallowed by an outer listener still fails the provision
        listener_error = caught if caught is not None else invocation.listener_error
        if listener_error is not None:
            raise context.diagnostics.listener_failure(
                invocation.erred_listener,
                self.key,
                listener_error,
                source=self.source,
                dependency_chain=context.dependency_chain,
            ) from listener_error
        return invocation.result


class _Provision(ProvisionInvocation[T]):
    __slots__ = (
        "_callback",
        "_context",
        "_index",
        "_result",
        "_stack",
        "erred_listener",
        "failure",
        "listener_error",
    )

    def __init__(
        self,
        stack: ProvisionListenerStack[T],
        context: ResolutionContext,
        callback: Callable[[], T],
    ) -> None:
        self._stack = stack
        self._context = context
        self._callback = callback
        self._index = -1
        self._result: Any = None
        self.failure: Exception | None = None
        self.erred_listener: ProvisionListener | None = None
        self.listener_error: Exception | None = None

    @property
    def key(self) -> Any:
        return self._stack.key

    @property
    def source(self) -> str:
        return self._stack.source

    @property
    def dependency_chain(self) -> tuple[Dependency, ...]:
        return self._context.dependency_chain

    @property
    def result(self) -> T:
        return self._result

    def provision(self) -> T:
        self._index += 1
        index = self._index
        listeners = self._stack.listeners

        if index == len(listeners):
            try:
                self._result = self._callback()
            except Exception as error:
                self.failure = error
                raise
        elif index < len(listeners):
            listener = listeners[index]
            try:
                listener.on_provision(self)
            except Exception as error:
                if self.erred_listener is None and self.failure is None:
                    self.erred_listener = listener
                    self.listener_error = error
                raise
            if index == self._index:
                # the listener did not provision; do it for them
                self.provision()
        else:
            msg = "provision() was already called for this invocation."
            raise CycleWireAlreadyProvisionedError(msg)

        return self._result
