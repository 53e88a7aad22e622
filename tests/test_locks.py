from __future__ import annotations

import threading

import pytest

from backend.repository.locks import KeyedLockRegistry, LockAcquisitionTimeout


def test_hold_returns_sorted_unique_keys() -> None:
    registry = KeyedLockRegistry()

    with registry.hold(["operator:op-002", "work_order:wo-001", "operator:op-002"]) as keys:
        assert keys == ["operator:op-002", "work_order:wo-001"]
        assert len(registry) == 2


def test_released_keys_are_evicted() -> None:
    registry = KeyedLockRegistry()

    for index in range(50):
        with registry.hold([f"operator:op-{index:03d}", "work_order:wo-001"]):
            pass

    assert len(registry) == 0


def test_timeout_leaves_no_orphan_keys() -> None:
    registry = KeyedLockRegistry()

    with registry.hold(["operator:op-001"]):
        with pytest.raises(LockAcquisitionTimeout) as excinfo:
            with registry.hold(["machine:mach-001", "operator:op-001"], timeout=0.05):
                pass
        assert excinfo.value.key == "operator:op-001"
        assert len(registry) == 1

    assert len(registry) == 0


def test_contended_key_is_evicted_after_last_user() -> None:
    registry = KeyedLockRegistry()
    holder_ready = threading.Event()
    release_holder = threading.Event()
    order = []

    def holder() -> None:
        with registry.hold(["operator:op-001"]):
            holder_ready.set()
            release_holder.wait(timeout=2.0)
            order.append("holder")

    def waiter() -> None:
        with registry.hold(["operator:op-001"], timeout=2.0):
            order.append("waiter")

    first = threading.Thread(target=holder)
    first.start()
    holder_ready.wait(timeout=2.0)
    second = threading.Thread(target=waiter)
    second.start()
    release_holder.set()
    first.join()
    second.join()

    assert order == ["holder", "waiter"]
    assert len(registry) == 0
