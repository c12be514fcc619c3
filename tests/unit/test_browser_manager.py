from __future__ import annotations

import threading
import time

import pytest

from services.browser import (
    ResourceLaunchError,
    ResourceLaunchTimeoutError,
    ResourceState,
    SharedResourceManager,
)
from shared.cancellation import CancellationToken, OperationCancelledError
from tests.unit.browser_test_utils import BlockingLauncher, open_launcher


def _acquire_concurrently(manager: SharedResourceManager, count: int, **kwargs):
    results: list[object] = [None] * count
    errors: list[BaseException | None] = [None] * count

    def worker(index: int) -> None:
        try:
            results[index] = manager.acquire(**kwargs)
        except BaseException as exc:  # noqa: BLE001 - recorded for assertions
            errors[index] = exc

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(count)]
    for thread in threads:
        thread.start()
    return threads, results, errors


def _wait_for_launching(manager: SharedResourceManager) -> None:
    deadline = time.monotonic() + 5
    while manager.state is not ResourceState.LAUNCHING:
        assert time.monotonic() < deadline, "launch never started"
        time.sleep(0.005)


def test_concurrent_acquires_share_one_launch() -> None:
    launcher = BlockingLauncher()
    manager = SharedResourceManager(launcher)

    threads, results, errors = _acquire_concurrently(manager, 8)
    launcher.started.wait(5)
    time.sleep(0.05)
    launcher.gate.set()
    for thread in threads:
        thread.join(5)

    assert errors == [None] * 8
    assert launcher.launches == 1
    assert manager.launch_count == 1
    assert all(result is results[0] for result in results)
    assert manager.state is ResourceState.READY


def test_failed_launch_delivers_same_error_to_every_caller() -> None:
    failure = ResourceLaunchError("chromium crashed on start-up")
    launcher = BlockingLauncher(error=failure)
    manager = SharedResourceManager(launcher)

    threads, _, errors = _acquire_concurrently(manager, 5)
    launcher.started.wait(5)
    time.sleep(0.05)
    launcher.gate.set()
    for thread in threads:
        thread.join(5)

    assert launcher.launches == 1
    assert all(error is failure for error in errors)
    assert manager.state is ResourceState.UNINITIALIZED


def test_unexpected_launch_errors_are_wrapped_once() -> None:
    launcher = BlockingLauncher(error=FileNotFoundError("chromium"))
    manager = SharedResourceManager(launcher)

    threads, _, errors = _acquire_concurrently(manager, 3)
    launcher.started.wait(5)
    time.sleep(0.05)
    launcher.gate.set()
    for thread in threads:
        thread.join(5)

    assert isinstance(errors[0], ResourceLaunchError)
    assert all(error is errors[0] for error in errors)
    assert isinstance(errors[0].__cause__, FileNotFoundError)


def test_failed_launch_allows_retry() -> None:
    launcher = open_launcher(error=ResourceLaunchError("boom"))
    manager = SharedResourceManager(launcher)

    with pytest.raises(ResourceLaunchError):
        manager.acquire()

    launcher.error = None
    handle = manager.acquire()

    assert handle.is_connected()
    assert launcher.launches == 2


def test_acquire_reuses_ready_handle() -> None:
    launcher = open_launcher()
    manager = SharedResourceManager(launcher)

    first = manager.acquire()
    second = manager.acquire()

    assert first is second
    assert launcher.launches == 1
    assert manager.current() is first


def test_disconnect_triggers_relaunch_on_next_acquire() -> None:
    launcher = open_launcher()
    manager = SharedResourceManager(launcher)
    first = manager.acquire()

    first.disconnect()

    assert manager.state is ResourceState.UNINITIALIZED
    assert manager.current() is None
    second = manager.acquire()
    assert second is not first
    assert launcher.launches == 2


def test_stale_handle_is_never_returned() -> None:
    launcher = open_launcher()
    manager = SharedResourceManager(launcher)
    first = manager.acquire()

    # Drop the connection without notifying listeners.
    first.connected = False

    assert manager.state is ResourceState.DISCONNECTED
    second = manager.acquire()
    assert second is not first
    assert second.is_connected()


def test_waiter_timeout_does_not_disturb_launch() -> None:
    launcher = BlockingLauncher()
    manager = SharedResourceManager(launcher)

    threads, results, _ = _acquire_concurrently(manager, 1)
    _wait_for_launching(manager)

    with pytest.raises(ResourceLaunchTimeoutError):
        manager.acquire(timeout=0.05)

    launcher.gate.set()
    threads[0].join(5)
    assert results[0] is not None
    assert manager.acquire() is results[0]
    assert launcher.launches == 1


def test_waiter_honours_cancellation() -> None:
    launcher = BlockingLauncher()
    manager = SharedResourceManager(launcher)
    token = CancellationToken()

    threads, _, _ = _acquire_concurrently(manager, 1)
    _wait_for_launching(manager)
    timer = threading.Timer(0.05, token.cancel, args=("caller went away",))
    timer.start()

    with pytest.raises(OperationCancelledError, match="caller went away"):
        manager.acquire(cancel_token=token)

    launcher.gate.set()
    threads[0].join(5)
    timer.join(5)
    assert manager.state is ResourceState.READY


def test_release_closes_and_allows_relaunch() -> None:
    launcher = open_launcher()
    manager = SharedResourceManager(launcher, close_timeout=2.0)
    first = manager.acquire()

    manager.release()

    assert first.close_calls == [2.0]
    assert manager.state is ResourceState.UNINITIALIZED
    assert manager.acquire() is not first


def test_release_swallows_close_errors(caplog: pytest.LogCaptureFixture) -> None:
    launcher = open_launcher()
    manager = SharedResourceManager(launcher)
    handle = manager.acquire()
    handle.close_error = RuntimeError("target closed")

    manager.release()

    assert manager.current() is None
    assert "Error closing browser: target closed" in caplog.text


def test_release_without_browser_is_a_no_op() -> None:
    manager = SharedResourceManager(open_launcher())

    manager.release()
    manager.shutdown()

    assert manager.state is ResourceState.UNINITIALIZED


def test_is_ready_checks_prerequisite_without_launching() -> None:
    launcher = open_launcher(available=False)
    manager = SharedResourceManager(launcher)

    assert manager.is_ready() is False
    launcher.available = True
    assert manager.is_ready() is True
    assert launcher.launches == 0
    assert manager.state is ResourceState.UNINITIALIZED


def test_disconnect_from_replaced_handle_is_ignored() -> None:
    launcher = open_launcher()
    manager = SharedResourceManager(launcher)
    first = manager.acquire()
    manager.release()
    second = manager.acquire()

    first.disconnect()

    assert manager.current() is second
