"""Circular-aware provisioning of one binding within a resolution request.

``CircularProvisioner.provision`` is the single entry point every producing
binding goes through. Re-entering a producer that is still under construction
in the same request is a cycle: it is answered with a forwarding proxy (or a
recorded failure) before any shared cache or lock is touched, so the caching
layer wrapped inside the producer never observes re-entrancy.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from cyclewire._internal.proxies import ForwardingProxyFactory, is_proxyable
from cyclewire._internal.type_checks import qualified_name

if TYPE_CHECKING:
    from cyclewire._internal.construction import ConstructionTracker, ResolutionContext
    from cyclewire._internal.dependencies import Dependency
    from cyclewire._internal.listeners import ProvisionListenerStack

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CircularProvisioner(Generic[T]):
    """Guard recursive resolution of one producer.

    One provisioner exists per producing binding. ``producer`` is the object
    whose identity keys construction tracking (the binding itself), and
    ``source`` describes it in diagnostics.
    """

    __slots__ = ("_allow_proxy", "_listeners", "_proxy_factory", "producer", "source")

    def __init__(
        self,
        *,
        producer: object,
        source: str,
        allow_proxy: bool,
        listeners: ProvisionListenerStack[T],
        proxy_factory: ForwardingProxyFactory,
    ) -> None:
        self.producer = producer
        self.source = source
        self._allow_proxy = allow_proxy
        self._listeners = listeners
        self._proxy_factory = proxy_factory

    def provision(
        self,
        produce: Callable[[], T | None],
        context: ResolutionContext,
        dependency: Dependency,
    ) -> T:
        """Return the value of ``produce`` or a proxy when this is a cycle.

        Args:
            produce: Zero-argument producer. Called at most once per call.
            context: The request this provision belongs to.
            dependency: What was requested; its raw type is what a proxy must
                implement.

        Raises:
            ProvisionAborted: If the cycle cannot be proxied or ``produce``
                returned ``None``. Details are recorded in ``context.diagnostics``.

        """
        tracker = context.tracker_for(self.producer)
        if tracker.is_constructing:
            return self._proxy_for_cycle(tracker, context, dependency)

        with tracker.constructing():
            if self._listeners.has_listeners():
                return self._listeners.provision(
                    context,
                    lambda: self._produce(produce, tracker, context, dependency),
                )
            return self._produce(produce, tracker, context, dependency)

    def _proxy_for_cycle(
        self,
        tracker: ConstructionTracker,
        context: ResolutionContext,
        dependency: Dependency,
    ) -> Any:
        expected_type = dependency.expected_type
        if not self._allow_proxy:
            raise context.diagnostics.circular_proxies_disabled(
                expected_type,
                source=self.source,
                dependency_chain=context.dependency_chain,
            )
        if not is_proxyable(expected_type):
            raise context.diagnostics.not_proxyable(
                expected_type,
                source=self.source,
                dependency_chain=context.dependency_chain,
            )

        logger.debug(
            "Circular dependency on %s detected while constructing %s; returning a proxy",
            qualified_name(expected_type),
            self.source,
        )
        return tracker.create_proxy(expected_type, self._proxy_factory)

    def _produce(
        self,
        produce: Callable[[], T | None],
        tracker: ConstructionTracker,
        context: ResolutionContext,
        dependency: Dependency,
    ) -> T:
        instance = produce()
        if instance is None:
            raise context.diagnostics.null_provision(
                dependency,
                source=self.source,
                dependency_chain=context.dependency_chain,
            )

        # pending proxies are bound before any listener resumes
        bound = tracker.complete(instance)
        if bound:
            logger.debug(
                "Bound %d circular proxies for %s to %r",
                bound,
                qualified_name(dependency.expected_type),
                type(instance),
            )
        return instance
