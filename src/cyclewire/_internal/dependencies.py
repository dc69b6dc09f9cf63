from __future__ import annotations

import inspect
import threading
from dataclasses import dataclass
from typing import Any, get_type_hints

from cyclewire._internal.markers import is_provider_annotation, strip_provider_annotation
from cyclewire._internal.type_checks import is_runtime_class, qualified_name, raw_type
from cyclewire.exceptions import CycleWireDependencyInferenceError

_SKIPPED_PARAMETER_KINDS = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)


@dataclass(frozen=True, slots=True)
class Dependency:
    """Describe one requested dependency and where the request came from.

    ``key`` is the requested key exactly as written in the annotation or passed
    to ``resolve``. ``parameter_name`` and ``owner`` are set when the request
    comes from a constructor or factory parameter and are only used to render
    diagnostics.
    """

    key: Any
    parameter_name: str | None = None
    owner: Any = None

    @property
    def expected_type(self) -> Any:
        """Return the raw type a circular-dependency proxy would have to implement."""
        return raw_type(self.key)

    def describe(self) -> list[str]:
        lines = [f"  while locating {qualified_name(self.key)}"]
        if self.parameter_name is not None:
            lines.append(f"    for parameter '{self.parameter_name}' of {qualified_name(self.owner)}")
        return lines


@dataclass(frozen=True, slots=True)
class ProviderParameter:
    """Information about a constructor/factory parameter."""

    name: str
    key: Any
    has_default: bool
    is_provider: bool


class DependenciesExtractor:
    """Extract type-hinted dependencies from classes and factory functions."""

    def __init__(self) -> None:
        self._parameters_cache: dict[Any, tuple[ProviderParameter, ...]] = {}
        self._lock = threading.Lock()

    def get_parameters(self, provider: Any) -> tuple[ProviderParameter, ...]:
        """Get the injectable parameters of a class constructor or a factory.

        Args:
            provider: Concrete class or factory callable.

        Raises:
            CycleWireDependencyInferenceError: If a required parameter has no usable
                annotation or cannot be passed by keyword.

        """
        cached = self._parameters_cache.get(provider)
        if cached is not None:
            return cached

        parameters = self._extract_parameters(provider)
        with self._lock:
            return self._parameters_cache.setdefault(provider, parameters)

    def _extract_parameters(self, provider: Any) -> tuple[ProviderParameter, ...]:
        init_func = self._get_init_func(provider)
        if init_func is None:
            return ()

        try:
            type_hints = get_type_hints(init_func, include_extras=True)
        except (TypeError, NameError) as e:
            msg = f"Unable to read type hints of {qualified_name(provider)}: {e}"
            raise CycleWireDependencyInferenceError(msg) from e

        try:
            signature = inspect.signature(init_func)
        except (ValueError, TypeError):
            return ()

        signature_parameters = list(signature.parameters.values())
        if is_runtime_class(provider) and signature_parameters:
            # drop ``self``
            signature_parameters = signature_parameters[1:]

        result: list[ProviderParameter] = []
        for parameter in signature_parameters:
            if parameter.kind in _SKIPPED_PARAMETER_KINDS:
                continue

            has_default = parameter.default is not inspect.Parameter.empty
            annotation = type_hints.get(parameter.name)
            if annotation is None:
                if has_default:
                    continue
                msg = (
                    f"Parameter '{parameter.name}' of {qualified_name(provider)} has no "
                    "type annotation; annotate it or give it a default value."
                )
                raise CycleWireDependencyInferenceError(msg)

            if parameter.kind is inspect.Parameter.POSITIONAL_ONLY:
                if has_default:
                    continue
                msg = (
                    f"Parameter '{parameter.name}' of {qualified_name(provider)} is "
                    "positional-only and cannot be injected."
                )
                raise CycleWireDependencyInferenceError(msg)

            is_provider = is_provider_annotation(annotation)
            result.append(
                ProviderParameter(
                    name=parameter.name,
                    key=strip_provider_annotation(annotation) if is_provider else annotation,
                    has_default=has_default,
                    is_provider=is_provider,
                ),
            )

        return tuple(result)

    def _get_init_func(self, provider: Any) -> Any:
        if not is_runtime_class(provider):
            return provider

        init_func = provider.__init__
        if init_func is object.__init__:
            return None
        return init_func
