from __future__ import annotations

from typing import Annotated, Protocol, get_args, get_origin

import pytest

import cyclewire._internal.markers as markers_module
from cyclewire._internal.markers import (
    Provider,
    ProviderMarker,
    is_provider_annotation,
    strip_provider_annotation,
)


class Database(Protocol):
    def query(self) -> str: ...


def test_provider_wraps_dependency_with_marker() -> None:
    dependency = Provider[Database]

    assert get_origin(dependency) is Annotated
    annotation_args = get_args(dependency)
    assert annotation_args[0] is Database
    assert annotation_args[1] == ProviderMarker(dependency_key=Database)


def test_provider_marker_is_value_based_and_hashable() -> None:
    marker = ProviderMarker(dependency_key=Database)

    assert marker == ProviderMarker(dependency_key=Database)
    assert {marker: "database"}[ProviderMarker(dependency_key=Database)] == "database"


def test_provider_helpers_detect_and_strip_marker() -> None:
    dependency = Provider[list[int]]

    assert is_provider_annotation(dependency) is True
    assert strip_provider_annotation(dependency) == list[int]
    assert is_provider_annotation(int) is False
    assert strip_provider_annotation(int) is int


def test_plain_annotated_is_not_a_provider() -> None:
    dependency = Annotated[Database, "metadata"]

    assert is_provider_annotation(dependency) is False
    assert strip_provider_annotation(dependency) == dependency


def test_is_provider_annotation_handles_invalid_annotated_shape(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(markers_module, "get_origin", lambda _annotation: Annotated)
    monkeypatch.setattr(markers_module, "get_args", lambda _annotation: (int,))

    assert markers_module.is_provider_annotation(object()) is False
