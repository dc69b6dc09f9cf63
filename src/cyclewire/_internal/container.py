from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Callable
from typing import Any, Generic, TypeVar, overload

from cyclewire._internal.bindings import Binding, BindingKind, BindingsRegistry, Lifetime
from cyclewire._internal.construction import ResolutionContext
from cyclewire._internal.dependencies import DependenciesExtractor, Dependency
from cyclewire._internal.diagnostics import ProvisionAborted
from cyclewire._internal.listeners import (
    KeyMatcher,
    ListenerRegistration,
    ProvisionListener,
    ProvisionListenerStack,
)
from cyclewire._internal.provisioning import CircularProvisioner
from cyclewire._internal.proxies import ForwardingProxyFactory
from cyclewire._internal.type_checks import is_protocol_class, is_runtime_class, qualified_name
from cyclewire._internal.validators import DependencyRegistrationValidator
from cyclewire.exceptions import (
    CycleWireDependencyNotRegisteredError,
    CycleWireInvalidRegistrationError,
    CycleWireProvisionError,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)
_MISSING: Any = object()

DEFAULT_AUTOREGISTER_IGNORES: frozenset[type[Any]] = frozenset(
    {
        bool,
        bytes,
        dict,
        float,
        frozenset,
        int,
        list,
        object,
        set,
        str,
        tuple,
        type,
    },
)


class LazyProvider(Generic[T]):
    """Zero-argument callable injected for ``Provider[T]`` parameters.

    While the request that created it is still running on the calling thread,
    it resolves inside that request so cycles through it are detected and
    proxied, and failures the container detects raise
    ``CycleWireProvisionError`` to the caller. Afterwards, or from another
    thread, every call is a new top-level ``resolve``.
    """

    __slots__ = ("_container", "_context", "_dependency")

    def __init__(
        self,
        container: Container,
        dependency: Dependency,
        context: ResolutionContext,
    ) -> None:
        self._container = container
        self._dependency = dependency
        self._context = context

    def __call__(self) -> T:
        if not self._context.is_usable_from_current_thread():
            return self._container.resolve(self._dependency.key)
        diagnostics = self._context.diagnostics
        mark = diagnostics.mark()
        try:
            return self._container._resolve_dependency(self._dependency, self._context)  # noqa: SLF001
        except ProvisionAborted:
            # entries leave the request together with the raised error
            raise CycleWireProvisionError(diagnostics.pop_since(mark)) from None

    def __repr__(self) -> str:
        return f"Provider[{qualified_name(self._dependency.key)}]"


class Container:
    """Register bindings and resolve object graphs, proxying circular dependencies.

    A circular dependency happens when building a value requires, directly or
    through other bindings, the value itself. When the requested type of the
    re-entrant dependency is an interface (a ``typing.Protocol`` or an abstract
    class), the container injects a forwarding proxy and binds it to the real
    instance once that instance is built. Otherwise, or when
    ``circular_proxies=False``, resolution fails with
    ``CycleWireProvisionError``.

    Args:
        circular_proxies: Allow forwarding proxies to break cycles.
        autoregister_concrete_types: Resolve unregistered concrete classes as
            transient constructor bindings.

    Examples:
        .. code-block:: python

            container = Container()
            container.add_concrete(RealParent, provides=Parent, lifetime=Lifetime.SINGLETON)
            container.add_concrete(RealChild, provides=Child)

            parent = container.resolve(Parent)
            assert parent.child().parent() == parent

    """

    __slots__ = (
        "_autoregister_concrete_types",
        "_circular_proxies",
        "_dependencies_extractor",
        "_listeners",
        "_provisioners",
        "_proxy_factory",
        "_registry",
        "_singleton_locks",
        "_singleton_locks_lock",
        "_singletons",
        "_validator",
    )

    def __init__(
        self,
        *,
        circular_proxies: bool = True,
        autoregister_concrete_types: bool = True,
    ) -> None:
        self._circular_proxies = circular_proxies
        self._autoregister_concrete_types = autoregister_concrete_types

        self._registry = BindingsRegistry()
        self._listeners: list[ListenerRegistration] = []
        self._dependencies_extractor = DependenciesExtractor()
        self._validator = DependencyRegistrationValidator()
        self._proxy_factory = ForwardingProxyFactory()

        # Built lazily per binding; dropped whenever registrations change
        self._provisioners: dict[Binding, CircularProvisioner[Any]] = {}

        self._singletons: dict[Binding, Any] = {}
        # Per-binding locks for singleton construction across threads
        self._singleton_locks: dict[Binding, threading.Lock] = {}
        self._singleton_locks_lock = threading.Lock()

        self.add_instance(self)

    @property
    def circular_proxies_enabled(self) -> bool:
        return self._circular_proxies

    def add_instance(self, instance: Any, *, provides: Any = None) -> None:
        """Bind a pre-built object.

        Args:
            instance: Object returned for every resolution of the key.
            provides: Key to bind. Defaults to ``type(instance)``.

        """
        self._validator.validate_instance(instance)
        key = type(instance) if provides is None else provides
        self._register(Binding(key=key, kind=BindingKind.INSTANCE, instance=instance))

    def add_concrete(
        self,
        concrete_type: type[Any],
        *,
        provides: Any = None,
        lifetime: Lifetime = Lifetime.TRANSIENT,
    ) -> None:
        """Bind a class built from its annotated constructor parameters.

        When ``provides`` names another key (typically an interface), the
        binding is linked: resolving ``provides`` resolves ``concrete_type``
        through its own binding, explicit or autoregistered.

        Args:
            concrete_type: Instantiable class.
            provides: Key to bind. Defaults to ``concrete_type``.
            lifetime: Caching behavior for ``provides``.

        Raises:
            CycleWireInvalidRegistrationError: If ``concrete_type`` is not an
                instantiable class.

        """
        self._validator.validate_concrete_type(concrete_type)
        if provides is None or provides is concrete_type:
            binding = Binding(
                key=concrete_type,
                kind=BindingKind.CONSTRUCTOR,
                concrete_type=concrete_type,
                lifetime=lifetime,
            )
        else:
            binding = Binding(
                key=provides,
                kind=BindingKind.LINKED,
                target_key=concrete_type,
                lifetime=lifetime,
            )
        self._register(binding)

    def add_factory(
        self,
        factory: Callable[..., Any],
        *,
        provides: Any = None,
        lifetime: Lifetime = Lifetime.TRANSIENT,
    ) -> None:
        """Bind a factory called with its annotated parameters injected.

        Args:
            factory: Function or class producing the value. Returning ``None``
                is a resolution failure.
            provides: Key to bind. Defaults to the factory's return annotation.
            lifetime: Caching behavior for ``provides``.

        Raises:
            CycleWireInvalidRegistrationError: If ``factory`` is not callable or
                ``provides`` cannot be inferred.

        """
        self._validator.validate_factory(factory)
        if provides is None:
            provides = (
                factory if is_runtime_class(factory) else self._validator.infer_factory_key(factory)
            )
        self._register(
            Binding(key=provides, kind=BindingKind.FACTORY, factory=factory, lifetime=lifetime),
        )

    def add_provision_listener(
        self,
        listener: ProvisionListener,
        *,
        matcher: KeyMatcher | None = None,
    ) -> None:
        """Observe provisioning of constructor and factory bindings.

        Args:
            listener: Listener invoked around each matching provision, in
                registration order.
            matcher: Optional predicate on the binding key. All keys match when
                omitted.

        """
        if not isinstance(listener, ProvisionListener):
            msg = f"Provision listeners must implement ProvisionListener, got {listener!r}."
            raise CycleWireInvalidRegistrationError(msg)
        self._listeners.append(ListenerRegistration(listener=listener, matcher=matcher))
        self._provisioners.clear()

    @overload
    def resolve(self, key: type[T]) -> T: ...

    @overload
    def resolve(self, key: Any) -> Any: ...

    def resolve(self, key: Any) -> Any:
        """Resolve ``key`` in a new resolution request.

        Args:
            key: Registered key, or an unregistered concrete class when
                autoregistration is enabled.

        Raises:
            CycleWireProvisionError: With every failure recorded during the request.
            CycleWireDependencyNotRegisteredError: If a key in the graph has no binding.

        """
        with ResolutionContext() as context:
            try:
                return self._resolve_dependency(Dependency(key=key), context)
            except ProvisionAborted:
                raise context.diagnostics.to_aggregate_failure() from None

    def _register(self, binding: Binding) -> None:
        previous = self._registry.get(binding.key)
        self._registry.add(binding)
        if previous is not None:
            self._singletons.pop(previous, None)
        self._provisioners.clear()
        logger.debug("Registered %s binding for %s", binding.kind.value, qualified_name(binding.key))

    def _resolve_dependency(self, dependency: Dependency, context: ResolutionContext) -> Any:
        with context.locating(dependency):
            binding = self._get_binding(dependency.key)
            return self._provide(binding, dependency, context)

    def _provide(self, binding: Binding, dependency: Dependency, context: ResolutionContext) -> Any:
        if not binding.is_producing:
            return binding.instance

        if binding.lifetime is Lifetime.SINGLETON:
            cached = self._singletons.get(binding, _MISSING)
            if cached is not _MISSING:
                return cached

        # cycle detection runs here, before _produce can take the singleton lock
        provisioner = self._get_provisioner(binding)
        return provisioner.provision(
            lambda: self._produce(binding, dependency, context),
            context,
            dependency,
        )

    def _produce(self, binding: Binding, dependency: Dependency, context: ResolutionContext) -> Any:
        if binding.lifetime is not Lifetime.SINGLETON:
            return self._invoke(binding, dependency, context)

        with self._get_singleton_lock(binding):
            cached = self._singletons.get(binding, _MISSING)
            if cached is not _MISSING:  # pragma: no cover - race timing dependent
                return cached
            instance = self._invoke(binding, dependency, context)
            if instance is not None:
                self._singletons[binding] = instance
            return instance

    def _invoke(self, binding: Binding, dependency: Dependency, context: ResolutionContext) -> Any:
        if binding.kind is BindingKind.LINKED:
            target = self._get_binding(binding.target_key)
            return self._provide(target, dependency, context)

        provider: Callable[..., Any]
        if binding.kind is BindingKind.CONSTRUCTOR:
            provider = binding.concrete_type  # type: ignore[assignment]
        else:
            provider = binding.factory  # type: ignore[assignment]
        return provider(**self._resolve_parameters(provider, context))

    def _resolve_parameters(self, provider: Any, context: ResolutionContext) -> dict[str, Any]:
        """Resolve every injectable parameter of ``provider``.

        A parameter whose resolution aborts does not stop the others: all of
        them are attempted so independent failures end up in one report, and
        the abort is re-raised afterwards.
        """
        diagnostics_mark = context.diagnostics.mark()
        arguments: dict[str, Any] = {}
        for parameter in self._dependencies_extractor.get_parameters(provider):
            dependency = Dependency(
                key=parameter.key,
                parameter_name=parameter.name,
                owner=provider,
            )
            if parameter.is_provider:
                arguments[parameter.name] = LazyProvider(self, dependency, context)
                continue
            if parameter.has_default and parameter.key not in self._registry:
                continue

            try:
                arguments[parameter.name] = self._resolve_dependency(dependency, context)
            except ProvisionAborted:
                continue

        context.diagnostics.raise_if_new_errors(diagnostics_mark)
        return arguments

    def _get_binding(self, key: Any) -> Binding:
        binding = self._registry.get(key)
        if binding is not None:
            return binding

        if not self._can_autoregister(key):
            msg = (
                f"No binding registered for {qualified_name(key)}. Register it with "
                "add_concrete, add_factory or add_instance."
            )
            raise CycleWireDependencyNotRegisteredError(msg)

        binding = self._registry.add_if_missing(
            Binding(
                key=key,
                kind=BindingKind.CONSTRUCTOR,
                concrete_type=key,
                autoregistered=True,
            ),
        )
        logger.debug("Autoregistered %s as a transient constructor binding", qualified_name(key))
        return binding

    def _can_autoregister(self, key: Any) -> bool:
        return (
            self._autoregister_concrete_types
            and is_runtime_class(key)
            and key not in DEFAULT_AUTOREGISTER_IGNORES
            and not inspect.isabstract(key)
            and not is_protocol_class(key)
        )

    def _get_provisioner(self, binding: Binding) -> CircularProvisioner[Any]:
        provisioner = self._provisioners.get(binding)
        if provisioner is not None:
            return provisioner

        listeners: list[ProvisionListener] = []
        if binding.kind is not BindingKind.LINKED:
            listeners = [
                registration.listener
                for registration in self._listeners
                if registration.matches(binding.key)
            ]
        provisioner = CircularProvisioner(
            producer=binding,
            source=binding.source,
            allow_proxy=self._circular_proxies,
            listeners=ProvisionListenerStack(binding.key, binding.source, listeners),
            proxy_factory=self._proxy_factory,
        )
        return self._provisioners.setdefault(binding, provisioner)

    def _get_singleton_lock(self, binding: Binding) -> threading.Lock:
        """Get or create the lock guarding singleton construction of ``binding``.

        Uses double-checked locking to minimize lock contention.
        """
        if binding not in self._singleton_locks:
            with self._singleton_locks_lock:
                if binding not in self._singleton_locks:
                    self._singleton_locks[binding] = threading.Lock()
        return self._singleton_locks[binding]
