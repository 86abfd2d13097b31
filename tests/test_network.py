"""Tests for the isolated network fabric."""

from __future__ import annotations

import pytest

from conftest import FakeBackend
from connectlab.backend import PROJECT_LABEL, SESSION_LABEL
from connectlab.errors import ErrorCode, NetworkCreationError, NetworkRemovalError
from connectlab.network import NetworkFabric, unique_suffix


class TestUniqueSuffix:
    """Tests for unique_suffix."""

    def test_suffix_is_short_hex(self) -> None:
        suffix = unique_suffix()

        assert len(suffix) == 8
        int(suffix, 16)

    def test_suffixes_differ(self) -> None:
        assert len({unique_suffix() for _ in range(50)}) == 50


class TestNetworkFabric:
    """Tests for NetworkFabric create/remove."""

    def test_create_network_names_and_labels(self, backend: FakeBackend) -> None:
        fabric = NetworkFabric(backend, prefix="itest")

        handle = fabric.create_network("abc123")

        assert handle.name == "itest_abc123"
        assert handle.network_id == "net-itest_abc123"
        assert handle.session_id == "abc123"
        assert handle.project == "itest"
        assert backend.networks["itest_abc123"] == {PROJECT_LABEL: "itest", SESSION_LABEL: "abc123"}

    def test_generated_names_do_not_collide(self, backend: FakeBackend) -> None:
        fabric = NetworkFabric(backend)

        first = fabric.create_network()
        second = fabric.create_network()

        assert first.name != second.name
        assert first.name.startswith("connectlab_")

    def test_creation_failure_raises_network_creation_error(self, backend: FakeBackend) -> None:
        backend.fail_create_network = True
        fabric = NetworkFabric(backend)

        with pytest.raises(NetworkCreationError) as exc_info:
            fabric.create_network("abc123")

        assert exc_info.value.error_code == ErrorCode.NETWORK_CREATION_FAILED
        assert exc_info.value.context.extra["network"] == "connectlab_abc123"
        assert "boom" in str(exc_info.value)

    def test_remove_network(self, backend: FakeBackend) -> None:
        fabric = NetworkFabric(backend)
        handle = fabric.create_network("abc123")

        fabric.remove_network(handle)

        assert handle.removed is True
        assert backend.networks == {}

    def test_remove_network_is_idempotent(self, backend: FakeBackend) -> None:
        fabric = NetworkFabric(backend)
        handle = fabric.create_network("abc123")

        fabric.remove_network(handle)
        fabric.remove_network(handle)

        assert backend.events.count(("remove_network", "connectlab_abc123")) == 1

    def test_failed_removal_reported_once(self, backend: FakeBackend) -> None:
        fabric = NetworkFabric(backend)
        handle = fabric.create_network("abc123")
        backend.fail_remove_network = True

        with pytest.raises(NetworkRemovalError) as exc_info:
            fabric.remove_network(handle)
        fabric.remove_network(handle)

        assert exc_info.value.context.phase == "teardown"
        assert backend.events.count(("remove_network", "connectlab_abc123")) == 1
