"""Structured failure collection for a single resolution request.

Failures detected by the provisioning engine are not raised as individual
exceptions. They are recorded here together with the dependency chain that led
to them, and the request is unwound with ``ProvisionAborted``. Callers that can
keep going (for example the loop resolving every parameter of a constructor)
catch the signal, continue, and re-raise once they are done, so independent
failures in one request all reach the final report.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cyclewire._internal.dependencies import Dependency
from cyclewire._internal.type_checks import qualified_name
from cyclewire.exceptions import CycleWireProvisionError

logger = logging.getLogger(__name__)


class DiagnosticKind(str, Enum):
    """Classify failures recorded during resolution."""

    CIRCULAR_PROXY_DISABLED = "circular_proxy_disabled"
    """A cycle was found but the container does not allow circular proxies."""

    NOT_PROXYABLE = "not_proxyable"
    """A cycle was found but the requested type is not an interface."""

    NULL_PROVISION = "null_provision"
    """A factory returned ``None``."""

    LISTENER_FAILURE = "listener_failure"
    """A provision listener raised an exception."""


@dataclass(frozen=True, slots=True)
class DiagnosticEntry:
    """One recorded failure with the context needed to explain it."""

    kind: DiagnosticKind
    message: str
    source: str
    dependency_chain: tuple[Dependency, ...]
    cause: BaseException | None = None

    def format_chain(self) -> list[str]:
        """Render the dependency chain innermost-first, one frame per line."""
        lines: list[str] = []
        for dependency in reversed(self.dependency_chain):
            lines.extend(dependency.describe())
        if self.cause is not None:
            lines.append(f"  Caused by: {self.cause!r}")
        return lines


class ProvisionAborted(Exception):  # noqa: N818
    """Unwind a request whose failures are already recorded in its diagnostics."""


class Diagnostics:
    """Ordered accumulator of ``DiagnosticEntry`` values for one request."""

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: list[DiagnosticEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DiagnosticEntry]:
        return iter(self._entries)

    @property
    def entries(self) -> tuple[DiagnosticEntry, ...]:
        return tuple(self._entries)

    @property
    def has_errors(self) -> bool:
        return bool(self._entries)

    def record(
        self,
        kind: DiagnosticKind,
        message: str,
        *,
        source: str,
        dependency_chain: Sequence[Dependency],
        cause: BaseException | None = None,
    ) -> ProvisionAborted:
        """Record a failure and return the signal the caller should raise.

        Args:
            kind: Failure classification.
            message: Headline shown in the aggregate report.
            source: Description of the binding that failed.
            dependency_chain: Dependencies being located when the failure happened,
                outermost first.
            cause: Optional underlying exception.

        Returns:
            A ``ProvisionAborted`` instance, so call sites read
            ``raise diagnostics.record(...)``.

        """
        entry = DiagnosticEntry(
            kind=kind,
            message=message,
            source=source,
            dependency_chain=tuple(dependency_chain),
            cause=cause,
        )
        self._entries.append(entry)
        logger.debug("Recorded %s failure: %s", kind.value, message)
        return ProvisionAborted(message)

    def circular_proxies_disabled(
        self,
        expected_type: Any,
        *,
        source: str,
        dependency_chain: Sequence[Dependency],
    ) -> ProvisionAborted:
        return self.record(
            DiagnosticKind.CIRCULAR_PROXY_DISABLED,
            _proxy_failure_message(expected_type, "circular proxies are disabled"),
            source=source,
            dependency_chain=dependency_chain,
        )

    def not_proxyable(
        self,
        expected_type: Any,
        *,
        source: str,
        dependency_chain: Sequence[Dependency],
    ) -> ProvisionAborted:
        return self.record(
            DiagnosticKind.NOT_PROXYABLE,
            _proxy_failure_message(expected_type, "it is not an interface"),
            source=source,
            dependency_chain=dependency_chain,
        )

    def null_provision(
        self,
        dependency: Dependency,
        *,
        source: str,
        dependency_chain: Sequence[Dependency],
    ) -> ProvisionAborted:
        message = (
            f"None returned by binding at {source} but {qualified_name(dependency.key)} "
            "is required."
        )
        return self.record(
            DiagnosticKind.NULL_PROVISION,
            message,
            source=source,
            dependency_chain=dependency_chain,
        )

    def listener_failure(
        self,
        listener: object,
        key: Any,
        error: Exception,
        *,
        source: str,
        dependency_chain: Sequence[Dependency],
    ) -> ProvisionAborted:
        message = (
            f"Error notifying ProvisionListener {qualified_name(type(listener))} of "
            f"{qualified_name(key)}. Reason: {error!r}"
        )
        return self.record(
            DiagnosticKind.LISTENER_FAILURE,
            message,
            source=source,
            dependency_chain=dependency_chain,
            cause=error,
        )

    def mark(self) -> int:
        """Return a position to compare against in ``raise_if_new_errors``."""
        return len(self._entries)

    def raise_if_new_errors(self, mark: int) -> None:
        """Abort when entries were recorded after ``mark``.

        Raises:
            ProvisionAborted: If new entries exist.

        """
        if len(self._entries) > mark:
            raise ProvisionAborted(self._entries[-1].message)

    def pop_since(self, mark: int) -> tuple[DiagnosticEntry, ...]:
        """Remove and return the entries recorded after ``mark``."""
        popped = tuple(self._entries[mark:])
        del self._entries[mark:]
        return popped

    def to_aggregate_failure(self) -> CycleWireProvisionError:
        """Convert every recorded entry, in order, into one public error."""
        logger.debug("Raising aggregate provision failure with %d entries", len(self._entries))
        return CycleWireProvisionError(self._entries)


def _proxy_failure_message(expected_type: Any, reason: str) -> str:
    return (
        f"Tried proxying {qualified_name(expected_type)} to support a circular dependency, "
        f"but {reason}."
    )
