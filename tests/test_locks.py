"""Tests for the named lock registry."""

import threading
import time

import pytest

from locks import NamedLockRegistry
from models import OperationTimeoutError
from polling import Deadline


class TestNamedLockRegistry:
    """Tests for NamedLockRegistry."""

    def test_same_key_serializes_critical_sections(self):
        registry = NamedLockRegistry()
        trace: list[tuple[str, str]] = []
        start = threading.Barrier(2)

        def operation(label):
            start.wait()
            with registry.hold("nic1", "networkInterface"):
                trace.append(("start", label))
                time.sleep(0.05)
                trace.append(("end", label))

        threads = [threading.Thread(target=operation, args=(label,)) for label in "AB"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Every start is immediately followed by the end of the same operation
        assert len(trace) == 4
        for index in (0, 2):
            assert trace[index][0] == "start"
            assert trace[index + 1] == ("end", trace[index][1])

    def test_different_keys_do_not_block(self):
        registry = NamedLockRegistry()
        handle = registry.acquire("nic1", "networkInterface")
        try:
            other = registry.acquire("nic2", "networkInterface", timeout=0.1)
            registry.release(other)
        finally:
            registry.release(handle)

    def test_same_name_different_type_do_not_block(self):
        registry = NamedLockRegistry()
        handle = registry.acquire("shared", "networkInterface")
        try:
            other = registry.acquire("shared", "expressRouteCircuit", timeout=0.1)
            registry.release(other)
        finally:
            registry.release(handle)

    def test_acquire_times_out(self):
        registry = NamedLockRegistry()
        handle = registry.acquire("nic1", "networkInterface")
        result: list[Exception] = []

        def contender():
            try:
                registry.acquire("nic1", "networkInterface", timeout=0.05)
            except OperationTimeoutError as e:
                result.append(e)

        t = threading.Thread(target=contender)
        t.start()
        t.join()
        registry.release(handle)

        assert len(result) == 1
        assert "nic1" in str(result[0])

    def test_hold_releases_on_error(self):
        registry = NamedLockRegistry()

        with pytest.raises(RuntimeError):
            with registry.hold("nic1", "networkInterface"):
                raise RuntimeError("write failed")

        handle = registry.acquire("nic1", "networkInterface", timeout=0.1)
        registry.release(handle)

    def test_hold_uses_deadline(self):
        registry = NamedLockRegistry()
        handle = registry.acquire("nic1", "networkInterface")
        try:
            with pytest.raises(OperationTimeoutError):
                with registry.hold("nic1", "networkInterface", Deadline(0.05)):
                    pass
        finally:
            registry.release(handle)

    def test_handle_key(self):
        registry = NamedLockRegistry()
        with registry.hold("nic1", "networkInterface") as handle:
            assert handle.key == "networkInterface.nic1"

    def test_registries_are_isolated(self):
        first = NamedLockRegistry()
        second = NamedLockRegistry()

        handle = first.acquire("nic1", "networkInterface")
        try:
            other = second.acquire("nic1", "networkInterface", timeout=0.1)
            second.release(other)
        finally:
            first.release(handle)

    def test_cancellation_ends_wait(self):
        registry = NamedLockRegistry()
        stopped = threading.Event()
        handle = registry.acquire("nic1", "networkInterface")
        threading.Timer(0.1, stopped.set).start()

        try:
            start = time.monotonic()
            with pytest.raises(OperationTimeoutError, match="cancelled"):
                registry.acquire("nic1", "networkInterface", deadline=Deadline(30, stopped))
            assert time.monotonic() - start < 2
        finally:
            registry.release(handle)

    def test_deadline_acquires_once_released(self):
        registry = NamedLockRegistry()
        handle = registry.acquire("circuit1", "expressRouteCircuit")
        threading.Timer(0.1, registry.release, args=(handle,)).start()

        with registry.hold("circuit1", "expressRouteCircuit", Deadline(30)) as held:
            assert held.name == "circuit1"
