from __future__ import annotations

import threading
from abc import ABC, abstractmethod

import pytest

from cyclewire._internal.construction import (
    ConstructionState,
    ConstructionTracker,
    ResolutionContext,
)
from cyclewire._internal.dependencies import Dependency
from cyclewire._internal.proxies import ForwardingProxyFactory, is_proxy_bound, unwrap_proxy


class _Port(ABC):
    @abstractmethod
    def send(self) -> str: ...


class _Socket(_Port):
    def send(self) -> str:
        return "sent"


def test_tracker_starts_not_constructing() -> None:
    tracker = ConstructionTracker(producer="producer")

    assert not tracker.is_constructing
    assert tracker.state is ConstructionState.NOT_STARTED
    assert not tracker.has_result
    with pytest.raises(LookupError):
        _ = tracker.result


def test_constructing_block_sets_and_clears_flag() -> None:
    tracker = ConstructionTracker(producer="producer")

    with tracker.constructing():
        assert tracker.is_constructing
        assert tracker.state is ConstructionState.IN_PROGRESS

    assert not tracker.is_constructing


def test_constructing_block_clears_flag_on_error() -> None:
    tracker = ConstructionTracker(producer="producer")

    with pytest.raises(RuntimeError), tracker.constructing():
        raise RuntimeError

    assert not tracker.is_constructing
    assert tracker.state is ConstructionState.NOT_STARTED


def test_complete_binds_pending_proxies_in_order() -> None:
    tracker = ConstructionTracker(producer="producer")
    factory = ForwardingProxyFactory()
    socket = _Socket()

    with tracker.constructing():
        first = tracker.create_proxy(_Port, factory)
        second = tracker.create_proxy(_Port, factory)
        assert tracker.pending_proxies == (first, second)
        bound = tracker.complete(socket)

    assert bound == 2
    assert tracker.pending_proxies == ()
    assert unwrap_proxy(first) is socket
    assert second.send() == "sent"
    assert tracker.state is ConstructionState.DONE
    assert tracker.result is socket


def test_first_result_is_kept() -> None:
    tracker = ConstructionTracker(producer="producer")
    first = _Socket()

    tracker.complete(first)
    tracker.complete(_Socket())

    assert tracker.result is first


def test_failed_construction_drops_pending_proxies_unbound() -> None:
    tracker = ConstructionTracker(producer="producer")
    factory = ForwardingProxyFactory()

    with pytest.raises(ValueError, match="boom"), tracker.constructing():
        proxy = tracker.create_proxy(_Port, factory)
        msg = "boom"
        raise ValueError(msg)

    assert tracker.pending_proxies == ()
    assert not is_proxy_bound(proxy)


def test_context_returns_same_tracker_per_producer() -> None:
    producer = object()
    other = object()

    with ResolutionContext() as context:
        tracker = context.tracker_for(producer)

        assert context.tracker_for(producer) is tracker
        assert context.tracker_for(other) is not tracker
        assert tracker.producer is producer


def test_contexts_do_not_share_trackers() -> None:
    producer = object()

    with ResolutionContext() as first, ResolutionContext() as second:
        first.tracker_for(producer).start_construction()

        assert first.tracker_for(producer).is_constructing
        assert not second.tracker_for(producer).is_constructing


def test_locating_maintains_dependency_chain() -> None:
    outer = Dependency(key=_Port)
    inner = Dependency(key=str, parameter_name="host", owner=_Socket)

    with ResolutionContext() as context:
        with context.locating(outer):
            with context.locating(inner):
                assert context.dependency_chain == (outer, inner)
            assert context.dependency_chain == (outer,)
        assert context.dependency_chain == ()


def test_context_is_inactive_after_exit() -> None:
    with ResolutionContext() as context:
        assert context.is_active
        assert context.is_usable_from_current_thread()

    assert not context.is_active
    assert not context.is_usable_from_current_thread()


def test_context_is_not_usable_from_other_threads() -> None:
    results: list[bool] = []

    with ResolutionContext() as context:
        thread = threading.Thread(
            target=lambda: results.append(context.is_usable_from_current_thread()),
        )
        thread.start()
        thread.join()

    assert results == [False]
