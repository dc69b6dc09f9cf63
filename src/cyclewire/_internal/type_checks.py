from __future__ import annotations

import inspect
import types
from typing import Annotated, Any, TypeGuard, get_args, get_origin


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a runtime class safe for class-only operations.

    Args:
        candidate: Value being checked for eligibility or runtime type constraints.

    """
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)


def is_protocol_class(candidate: object) -> bool:
    """Return true when candidate is a ``typing.Protocol`` class."""
    return is_runtime_class(candidate) and bool(getattr(candidate, "_is_protocol", False))


def is_abstract_class(candidate: object) -> bool:
    """Return true when candidate is a class that still has abstract members."""
    return is_runtime_class(candidate) and inspect.isabstract(candidate)


def raw_type(key: Any) -> Any:
    """Return the unsubscripted origin of a generic key, or the key itself.

    ``Annotated`` metadata is dropped first, so ``Annotated[Repo[int], ...]``
    yields ``Repo``.
    """
    origin = get_origin(key)
    if origin is Annotated:
        return raw_type(get_args(key)[0])
    return origin if origin is not None else key


def qualified_name(value: Any) -> str:
    """Return a stable dotted name for classes and callables used in messages."""
    if get_origin(value) is not None:
        return repr(value)
    qualname = getattr(value, "__qualname__", None)
    module = getattr(value, "__module__", None)
    if isinstance(qualname, str) and isinstance(module, str):
        if module == "builtins":
            return qualname
        return f"{module}.{qualname}"
    return repr(value)


__all__ = [
    "is_abstract_class",
    "is_protocol_class",
    "is_runtime_class",
    "qualified_name",
    "raw_type",
]
