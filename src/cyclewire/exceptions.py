from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cyclewire._internal.diagnostics import DiagnosticEntry


class CycleWireError(Exception):
    """Represent a base class for all cyclewire-specific failures.

    Catch this type when you want to handle any cyclewire error path without
    matching each concrete exception class individually.
    """


class CycleWireInvalidRegistrationError(CycleWireError):
    """Signal invalid registration input.

    Raised by ``Container.add_instance``, ``Container.add_concrete``,
    ``Container.add_factory`` and ``Container.add_provision_listener`` when
    arguments are invalid.

    Typical fixes include passing an instantiable class to ``add_concrete``,
    annotating the return type of factories (or passing ``provides=...``), and
    registering listeners that implement ``ProvisionListener``.
    """


class CycleWireDependencyInferenceError(CycleWireInvalidRegistrationError):
    """Signal that required provider dependencies cannot be inferred.

    Common triggers are missing or unresolvable type annotations on required
    constructor or factory parameters.
    """


class CycleWireDependencyNotRegisteredError(CycleWireError):
    """Signal that a dependency key has no binding.

    Raised by ``resolve`` when the key is not registered and cannot be
    autoregistered (protocols, abstract classes, builtin types, or any key when
    ``autoregister_concrete_types=False``).
    """


class CycleWireProxyNotBoundError(CycleWireError):
    """Signal use of a circular-dependency proxy before its target exists.

    A forwarding proxy stands in for an object that is still being
    constructed. Calling into it from inside the constructor or factory of the
    object it represents fails, because the real instance is not available yet.

    Typical fix is to store the injected dependency and use it only after
    construction completes.
    """


class CycleWireAlreadyProvisionedError(CycleWireError):
    """Signal that a provision listener called ``provision()`` more than once."""


class CycleWireProvisionError(CycleWireError):
    """Report every failure recorded while resolving one top-level request.

    This is the single error surfaced by ``Container.resolve`` for failures the
    container detects itself: circular dependencies that cannot be proxied,
    factories returning ``None`` and failing provision listeners. Entries are
    kept in the order they were recorded.
    """

    def __init__(self, entries: Sequence[DiagnosticEntry]) -> None:
        self.entries = tuple(entries)
        super().__init__(format_report(self.entries))

    @property
    def messages(self) -> tuple[str, ...]:
        """Return entry headlines in recording order."""
        return tuple(entry.message for entry in self.entries)


def format_report(entries: Sequence[DiagnosticEntry]) -> str:
    lines = ["Unable to provision, see the following errors:", ""]
    for index, entry in enumerate(entries, start=1):
        lines.append(f"{index}) {entry.message}")
        lines.extend(entry.format_chain())
        lines.append("")

    count = len(entries)
    lines.append(f"{count} error" if count == 1 else f"{count} errors")
    return "\n".join(lines)
