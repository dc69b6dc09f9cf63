from collections.abc import Callable
from typing import TYPE_CHECKING, Annotated, Any, NamedTuple, TypeVar, get_args, get_origin

T = TypeVar("T")
_ANNOTATED_MARKER_MIN_ARGS = 2


class ProviderMarker(NamedTuple):
    """Marker for lazy request-bound provider callables."""

    dependency_key: Any


def _build_annotated(params: tuple[object, ...]) -> Any:
    """Return Annotated[...] with a pre-built params tuple (Py 3.10+ compatible)."""
    try:
        return Annotated.__class_getitem__(params)  # type: ignore[attr-defined]
    except AttributeError:
        return Annotated.__getitem__(params)  # type: ignore[attr-defined]


if TYPE_CHECKING:
    Provider = Callable[[], T]
    """Mark a dependency as a lazy provider callable.

    At runtime ``Provider[T]`` becomes ``Annotated[T, ProviderMarker(...)]`` and resolves
    to ``Callable[[], T]``. Calling it while the request that injected it is still
    running resolves ``T`` inside that request, so circular dependencies routed
    through providers are detected and proxied like direct ones.

    Examples:
        .. code-block:: python

            class Parent:
                def __init__(self, child: Provider[Child]) -> None:
                    self.child = child()
    """

else:

    class Provider:
        """Mark a dependency for lazy provider injection."""

        def __class_getitem__(cls, item: T) -> Annotated[T, ProviderMarker]:
            return _build_annotated((item, ProviderMarker(dependency_key=item)))


def is_provider_annotation(annotation: Any) -> bool:
    """Return True when annotation is Annotated[..., ProviderMarker(...)]."""
    if get_origin(annotation) is not Annotated:
        return False
    annotation_args = get_args(annotation)
    if len(annotation_args) < _ANNOTATED_MARKER_MIN_ARGS:
        return False
    return any(isinstance(item, ProviderMarker) for item in annotation_args[1:])


def strip_provider_annotation(annotation: Any) -> Any:
    """Return inner dependency key for Provider annotations."""
    for item in get_args(annotation)[1:]:
        if isinstance(item, ProviderMarker):
            return item.dependency_key
    return annotation
