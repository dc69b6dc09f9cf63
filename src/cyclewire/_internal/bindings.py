from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

from cyclewire._internal.type_checks import qualified_name

UserDependency: TypeAlias = Any
"""A dependency key that has been registered or is being resolved from the user's code."""


class Lifetime(str, Enum):
    """Define cache behavior for binding results."""

    TRANSIENT = "transient"
    """A new instance is created every time the binding is resolved."""

    SINGLETON = "singleton"
    """A single instance is created and shared for the lifetime of the container."""


class BindingKind(Enum):
    """How a binding produces its value."""

    INSTANCE = "instance"
    """Return a pre-built object."""

    CONSTRUCTOR = "constructor"
    """Call a concrete class with its injected constructor parameters."""

    FACTORY = "factory"
    """Call a factory with its injected parameters."""

    LINKED = "linked"
    """Delegate to the binding of another key."""


@dataclass(eq=False, kw_only=True)
class Binding:
    """Describe how a single dependency key is produced and cached.

    Bindings compare by identity: a binding is the producer identity used for
    circular-dependency tracking and the key of the singleton cache.
    """

    key: UserDependency
    kind: BindingKind
    lifetime: Lifetime = Lifetime.TRANSIENT
    instance: Any = None
    concrete_type: type[Any] | None = None
    factory: Callable[..., Any] | None = None
    target_key: UserDependency = None
    autoregistered: bool = False
    source: str = field(init=False)

    def __post_init__(self) -> None:
        self.source = self._describe_source()

    @property
    def is_producing(self) -> bool:
        """Return True when resolving this binding runs user code."""
        return self.kind is not BindingKind.INSTANCE

    def _describe_source(self) -> str:
        if self.kind is BindingKind.CONSTRUCTOR:
            return qualified_name(self.concrete_type)
        if self.kind is BindingKind.FACTORY:
            return qualified_name(self.factory)
        if self.kind is BindingKind.LINKED:
            return f"{qualified_name(self.key)} -> {qualified_name(self.target_key)}"
        return f"instance of {qualified_name(type(self.instance))}"


class BindingsRegistry:
    """Store bindings indexed by dependency key.

    Registration keys are unique: adding a binding for an existing key replaces
    the previous one. Autoregistered bindings never replace explicit ones.
    """

    def __init__(self) -> None:
        self._bindings_by_key: dict[UserDependency, Binding] = {}
        self._lock = threading.Lock()

    def __contains__(self, key: UserDependency) -> bool:
        return key in self._bindings_by_key

    def __iter__(self) -> Iterator[Binding]:
        return iter(list(self._bindings_by_key.values()))

    def __len__(self) -> int:
        return len(self._bindings_by_key)

    def add(self, binding: Binding) -> None:
        """Add or replace the binding for ``binding.key``.

        Args:
            binding: Binding to register.

        """
        with self._lock:
            self._bindings_by_key[binding.key] = binding

    def add_if_missing(self, binding: Binding) -> Binding:
        """Add ``binding`` unless its key is already bound; return the winner."""
        with self._lock:
            return self._bindings_by_key.setdefault(binding.key, binding)

    def get(self, key: UserDependency) -> Binding | None:
        return self._bindings_by_key.get(key)
