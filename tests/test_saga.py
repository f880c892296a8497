# tests/test_saga.py

import pytest

from hod.errors import StorageAccessError
from hod.saga import Saga


def test_all_steps_run_in_order() -> None:
    calls = []
    saga = Saga("ok")
    saga.step("a", lambda: calls.append("a") or 1, compensate=lambda: calls.append("undo a"))
    saga.step("b", lambda: calls.append("b") or 2)

    assert saga.run() == [1, 2]
    assert calls == ["a", "b"]


def test_failure_compensates_in_reverse_and_reraises() -> None:
    calls = []

    def fail():
        raise StorageAccessError("disk full")

    saga = Saga("failing")
    saga.step("a", lambda: calls.append("a"), compensate=lambda: calls.append("undo a"))
    saga.step("b", lambda: calls.append("b"), compensate=lambda: calls.append("undo b"))
    saga.step("c", fail, compensate=lambda: calls.append("undo c"))

    with pytest.raises(StorageAccessError, match="disk full") as exc_info:
        saga.run()
    assert calls == ["a", "b", "undo b", "undo a"]
    assert exc_info.value.rollback_errors == []


def test_failed_compensation_is_attached_not_raised() -> None:
    rollback = OSError("cannot undo")

    def undo():
        raise rollback

    def fail():
        raise StorageAccessError("write failed")

    saga = Saga("broken rollback")
    saga.step("a", lambda: None, compensate=undo)
    saga.step("b", fail)

    with pytest.raises(StorageAccessError, match="write failed") as exc_info:
        saga.run()
    assert exc_info.value.rollback_errors == [rollback]
    assert exc_info.value.__cause__ is rollback


def test_plain_exception_gets_rollback_errors() -> None:
    def undo():
        raise RuntimeError("undo failed")

    def fail():
        raise ValueError("boom")

    saga = Saga("plain")
    saga.step("a", lambda: None, compensate=undo)
    saga.step("b", fail)

    with pytest.raises(ValueError) as exc_info:
        saga.run()
    assert [str(e) for e in exc_info.value.rollback_errors] == ["undo failed"]
