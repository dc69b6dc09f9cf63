from cyclewire._internal.bindings import Lifetime
from cyclewire._internal.construction import ConstructionState
from cyclewire._internal.container import Container
from cyclewire._internal.dependencies import Dependency
from cyclewire._internal.diagnostics import DiagnosticEntry, DiagnosticKind
from cyclewire._internal.listeners import ProvisionInvocation, ProvisionListener
from cyclewire._internal.markers import Provider
from cyclewire._internal.proxies import is_forwarding_proxy, unwrap_proxy
from cyclewire.exceptions import (
    CycleWireAlreadyProvisionedError,
    CycleWireDependencyInferenceError,
    CycleWireDependencyNotRegisteredError,
    CycleWireError,
    CycleWireInvalidRegistrationError,
    CycleWireProvisionError,
    CycleWireProxyNotBoundError,
)

__all__ = [
    "ConstructionState",
    "Container",
    "CycleWireAlreadyProvisionedError",
    "CycleWireDependencyInferenceError",
    "CycleWireDependencyNotRegisteredError",
    "CycleWireError",
    "CycleWireInvalidRegistrationError",
    "CycleWireProvisionError",
    "CycleWireProxyNotBoundError",
    "Dependency",
    "DiagnosticEntry",
    "DiagnosticKind",
    "Lifetime",
    "ProvisionInvocation",
    "ProvisionListener",
    "Provider",
    "is_forwarding_proxy",
    "unwrap_proxy",
]
