"""Forwarding proxies that stand in for objects still under construction.

A proxy class is generated once per capability type. It subclasses the
capability type, so ``isinstance`` checks and static typing keep working, and
overrides every method and property declared on it with a version that
forwards to a delegate installed later. Until the delegate is bound, any
forwarded access raises ``CycleWireProxyNotBoundError``.
"""

from __future__ import annotations

import abc
import inspect
import threading
import types
from collections.abc import Callable
from typing import Any, Generic, Protocol, TypeVar, cast

from cyclewire._internal.type_checks import (
    is_abstract_class,
    is_protocol_class,
    qualified_name,
)
from cyclewire.exceptions import CycleWireProxyNotBoundError

T = TypeVar("T")

_DELEGATE_ATTR = "_cyclewire_delegate"
_INTERFACE_ATTR = "_cyclewire_interface"
_UNBOUND: Any = object()

_SKIPPED_BASES: frozenset[type[Any]] = frozenset({object, Protocol, Generic, abc.ABC})  # type: ignore[arg-type]
_NEVER_FORWARDED = frozenset(
    {
        "__class_getitem__",
        "__delattr__",
        "__getattr__",
        "__getattribute__",
        "__init__",
        "__init_subclass__",
        "__new__",
        "__reduce__",
        "__reduce_ex__",
        "__repr__",
        "__setattr__",
        "__subclasshook__",
    },
)


def is_proxyable(candidate: Any) -> bool:
    """Return True when a forwarding proxy can stand in for ``candidate``.

    Only capability types qualify: ``typing.Protocol`` classes and abstract
    classes that still declare abstract members.
    """
    return is_protocol_class(candidate) or (
        isinstance(candidate, abc.ABCMeta) and is_abstract_class(candidate)
    )


def is_forwarding_proxy(value: object) -> bool:
    """Return True when ``value`` is a circular-dependency proxy."""
    return isinstance(value, ForwardingProxy)


def is_proxy_bound(proxy: object) -> bool:
    return _read_delegate(proxy) is not _UNBOUND


def bind_proxy(proxy: object, delegate: object) -> None:
    """Install the delegate every future call on ``proxy`` forwards to."""
    if not is_forwarding_proxy(proxy):
        msg = f"{proxy!r} is not a forwarding proxy."
        raise TypeError(msg)
    object.__setattr__(proxy, _DELEGATE_ATTR, delegate)


def unwrap_proxy(value: T) -> T:
    """Return the delegate behind a bound proxy, or ``value`` unchanged.

    Raises:
        CycleWireProxyNotBoundError: If ``value`` is a proxy that is not bound yet.

    """
    if not is_forwarding_proxy(value):
        return value
    return cast("T", _require_delegate(value, "unwrap_proxy"))


class ForwardingProxy:
    """Mixin placed in front of the capability type in generated proxy classes."""

    __slots__ = ()

    def __init__(self) -> None:
        object.__setattr__(self, _DELEGATE_ATTR, _UNBOUND)

    def __getattr__(self, name: str) -> Any:
        # only reached for names the capability type does not declare
        if name.startswith(("__", "_cyclewire_")):
            raise AttributeError(name)
        return getattr(_require_delegate(self, name), name)

    def __repr__(self) -> str:
        delegate = _read_delegate(self)
        interface = qualified_name(type(self).__dict__[_INTERFACE_ATTR])
        if delegate is _UNBOUND:
            return f"<circular proxy for {interface} (unbound)>"
        return repr(delegate)

    def __str__(self) -> str:
        return str(_require_delegate(self, "__str__"))

    def __eq__(self, other: object) -> bool:
        return bool(_require_delegate(self, "__eq__") == unwrap_proxy(other))

    def __hash__(self) -> int:
        return hash(_require_delegate(self, "__hash__"))


class ForwardingProxyFactory:
    """Generate and cache proxy classes per capability type."""

    def __init__(self) -> None:
        self._proxy_classes: dict[type[Any], type[Any]] = {}
        self._lock = threading.Lock()

    def create(self, interface: type[T]) -> T:
        """Create a new, unbound proxy instance implementing ``interface``.

        Args:
            interface: Capability type the proxy must implement.

        Raises:
            TypeError: If ``interface`` is not proxyable.

        """
        proxy_class = self._get_proxy_class(interface)
        return cast("T", proxy_class())

    def _get_proxy_class(self, interface: type[Any]) -> type[Any]:
        proxy_class = self._proxy_classes.get(interface)
        if proxy_class is not None:
            return proxy_class

        with self._lock:
            proxy_class = self._proxy_classes.get(interface)
            if proxy_class is None:
                proxy_class = _build_proxy_class(interface)
                self._proxy_classes[interface] = proxy_class
            return proxy_class


def _build_proxy_class(interface: type[Any]) -> type[Any]:
    if not is_proxyable(interface):
        msg = f"{qualified_name(interface)} is not an interface and cannot be proxied."
        raise TypeError(msg)

    namespace: dict[str, Any] = {_INTERFACE_ATTR: interface}
    for name, member in _collect_members(interface).items():
        if isinstance(member, property):
            namespace[name] = _forwarding_property(name)
        elif inspect.isfunction(member):
            namespace[name] = _forwarding_method(name)
    if "__eq__" in namespace and "__hash__" not in namespace:
        namespace["__hash__"] = ForwardingProxy.__hash__

    proxy_class = types.new_class(
        f"{interface.__name__}CircularProxy",
        (ForwardingProxy, interface),
        exec_body=lambda ns: ns.update(namespace),
    )
    # abstract class/static methods are inherited as-is and must not block instantiation
    proxy_class.__abstractmethods__ = frozenset()
    return proxy_class


def _collect_members(interface: type[Any]) -> dict[str, Any]:
    members: dict[str, Any] = {}
    for klass in reversed(interface.__mro__):
        if klass in _SKIPPED_BASES:
            continue
        for name, member in vars(klass).items():
            if name in _NEVER_FORWARDED:
                continue
            members[name] = member
    return members


def _forwarding_method(name: str) -> Callable[..., Any]:
    def forward(self: Any, /, *args: Any, **kwargs: Any) -> Any:
        return getattr(_require_delegate(self, name), name)(*args, **kwargs)

    forward.__name__ = name
    forward.__qualname__ = f"ForwardingProxy.{name}"
    return forward


def _forwarding_property(name: str) -> property:
    def getter(self: Any) -> Any:
        return getattr(_require_delegate(self, name), name)

    return property(getter)


def _read_delegate(proxy: object) -> Any:
    return object.__getattribute__(proxy, _DELEGATE_ATTR)


def _require_delegate(proxy: object, member: str) -> Any:
    delegate = _read_delegate(proxy)
    if delegate is _UNBOUND:
        interface = type(proxy).__dict__[_INTERFACE_ATTR]
        msg = (
            f"Circular proxy for {qualified_name(interface)} was used (via '{member}') before "
            "the object it stands in for finished construction. Store the dependency and "
            "use it after the constructor or factory returns."
        )
        raise CycleWireProxyNotBoundError(msg)
    return delegate
