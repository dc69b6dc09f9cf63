from __future__ import annotations

import inspect
from typing import Any, get_type_hints

from cyclewire._internal.type_checks import is_protocol_class, qualified_name
from cyclewire.exceptions import CycleWireInvalidRegistrationError


class DependencyRegistrationValidator:
    """Validates registrations before bindings are created."""

    def validate_concrete_type(self, concrete_type: object) -> None:
        """Validate that a concrete binding target is instantiable."""
        if not inspect.isclass(concrete_type):
            msg = f"Concrete provider must be a class, got {concrete_type!r}."
            raise CycleWireInvalidRegistrationError(msg)

        if inspect.isabstract(concrete_type) or is_protocol_class(concrete_type):
            msg = f"Concrete provider '{concrete_type.__qualname__}' cannot be an abstract class."
            raise CycleWireInvalidRegistrationError(msg)

    def validate_factory(self, factory: object) -> None:
        if not callable(factory):
            msg = f"Factory must be callable, got {factory!r}."
            raise CycleWireInvalidRegistrationError(msg)

    def infer_factory_key(self, factory: Any) -> Any:
        """Return the key a factory provides, read from its return annotation."""
        try:
            return_type = get_type_hints(factory, include_extras=True).get("return")
        except (TypeError, NameError) as e:
            msg = f"Unable to read the return annotation of {qualified_name(factory)}: {e}"
            raise CycleWireInvalidRegistrationError(msg) from e

        if return_type is None or return_type is type(None):
            msg = (
                f"Factory {qualified_name(factory)} has no return annotation; "
                "annotate it or pass provides=..."
            )
            raise CycleWireInvalidRegistrationError(msg)
        return return_type

    def validate_instance(self, instance: object) -> None:
        if instance is None:
            msg = "Instance bindings cannot provide None."
            raise CycleWireInvalidRegistrationError(msg)
