"""Shared pytest fixtures for cyclewire tests."""

import pytest

from cyclewire import Container


@pytest.fixture()
def container() -> Container:
    """Default container with circular proxies and autoregistration enabled."""
    return Container()


@pytest.fixture()
def container_without_proxies() -> Container:
    """Container with circular_proxies=False."""
    return Container(circular_proxies=False)


@pytest.fixture()
def container_no_autoregister() -> Container:
    """Container with autoregister_concrete_types=False."""
    return Container(autoregister_concrete_types=False)
