from __future__ import annotations

import subprocess
import threading
from pathlib import Path

import pytest

from services.browser import (
    ChromiumHandle,
    ChromiumLauncher,
    ResourceLaunchError,
    SharedResourceManager,
    find_chromium_executable,
    parse_devtools_endpoint,
)


_ENDPOINT = "ws://127.0.0.1:41233/devtools/browser/6f1c2a4e-9d1b-4c55-a1d3-0c8e2b7f9a10"


class FakeStderr:
    def __init__(self, lines: list[str], hold_open: threading.Event | None) -> None:
        self._lines = lines
        self._hold_open = hold_open

    def __iter__(self):
        yield from self._lines
        if self._hold_open is not None:
            self._hold_open.wait(5)


class FakeChromiumProcess:
    def __init__(self, lines: list[str], *, hold_open: bool = True) -> None:
        self.pid = 4242
        self.returncode: int | None = None
        self.terminated = False
        self.killed = False
        self._exited = threading.Event()
        self.stderr = FakeStderr(lines, self._exited if hold_open else None)

    def poll(self) -> int | None:
        return self.returncode

    def wait(self, timeout: float | None = None) -> int | None:
        if not self._exited.wait(timeout):
            raise subprocess.TimeoutExpired("chromium", timeout)
        return self.returncode

    def exit(self, code: int = 0) -> None:
        self.returncode = code
        self._exited.set()

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class FakePopen:
    def __init__(self, process: FakeChromiumProcess) -> None:
        self.process = process
        self.commands: list[list[str]] = []
        self.kwargs: list[dict] = []

    def __call__(self, command, **kwargs):  # type: ignore[no-untyped-def]
        self.commands.append(list(command))
        self.kwargs.append(kwargs)
        return self.process

    def profile_dir(self) -> Path:
        for argument in self.commands[0]:
            if argument.startswith("--user-data-dir="):
                return Path(argument.split("=", 1)[1])
        raise AssertionError("profile directory flag missing")


@pytest.fixture
def chromium_binary(tmp_path: Path) -> Path:
    binary = tmp_path / "chromium"
    binary.write_text("#!/bin/sh\n", encoding="utf-8")
    return binary


def test_parse_devtools_endpoint() -> None:
    assert parse_devtools_endpoint(f"\nDevTools listening on {_ENDPOINT}\n") == _ENDPOINT
    assert parse_devtools_endpoint("[1019/101500.123:ERROR:gpu_init.cc] Passthrough is not supported") is None


def test_find_chromium_executable_prefers_configuration(chromium_binary: Path, monkeypatch) -> None:
    monkeypatch.delenv("AGENTOS_CHROMIUM_PATH", raising=False)

    assert find_chromium_executable(str(chromium_binary)) == chromium_binary
    assert find_chromium_executable(str(chromium_binary.parent / "missing")) is None


def test_find_chromium_executable_reads_environment(chromium_binary: Path, monkeypatch) -> None:
    monkeypatch.setenv("AGENTOS_CHROMIUM_PATH", str(chromium_binary))

    assert find_chromium_executable() == chromium_binary


def test_launcher_reports_availability(chromium_binary: Path) -> None:
    assert ChromiumLauncher(str(chromium_binary)).is_available() is True
    assert ChromiumLauncher(str(chromium_binary.parent / "missing")).is_available() is False


def test_launch_returns_handle_once_endpoint_is_announced(chromium_binary: Path) -> None:
    process = FakeChromiumProcess(
        [
            "[1019/101500.123:WARNING:bluez_dbus_manager.cc] Floss manager not present\n",
            "\n",
            f"DevTools listening on {_ENDPOINT}\n",
        ]
    )
    popen = FakePopen(process)
    launcher = ChromiumLauncher(
        str(chromium_binary), args=("--disable-gpu",), viewport=(1024, 768), popen=popen
    )

    handle = launcher.launch()

    command = popen.commands[0]
    assert command[0] == str(chromium_binary)
    assert "--headless=new" in command
    assert "--remote-debugging-port=0" in command
    assert "--window-size=1024,768" in command
    assert "--disable-gpu" in command
    assert popen.kwargs[0]["stderr"] == subprocess.PIPE
    assert handle.ws_endpoint == _ENDPOINT
    assert handle.pid == 4242
    assert handle.is_connected()
    assert popen.profile_dir().is_dir()

    handle.close(timeout=1.0)

    assert process.terminated
    assert not handle.is_connected()
    assert not popen.profile_dir().exists()


def test_launch_fails_when_chromium_exits_early(chromium_binary: Path) -> None:
    process = FakeChromiumProcess(["Fontconfig error: no fonts\n"], hold_open=False)
    popen = FakePopen(process)

    with pytest.raises(ResourceLaunchError, match="exited during startup"):
        ChromiumLauncher(str(chromium_binary), popen=popen).launch()

    assert not popen.profile_dir().exists()


def test_launch_times_out_without_endpoint(chromium_binary: Path) -> None:
    process = FakeChromiumProcess(["still starting\n"])
    popen = FakePopen(process)

    with pytest.raises(ResourceLaunchError, match="DevTools endpoint"):
        ChromiumLauncher(str(chromium_binary), launch_timeout=0.1, popen=popen).launch()

    assert process.terminated
    assert not popen.profile_dir().exists()


def test_launch_without_executable_fails(tmp_path: Path) -> None:
    launcher = ChromiumLauncher(str(tmp_path / "missing"))

    with pytest.raises(ResourceLaunchError, match="not found"):
        launcher.launch()


def test_launch_wraps_spawn_errors(chromium_binary: Path) -> None:
    def failing_popen(command, **kwargs):  # type: ignore[no-untyped-def]
        raise PermissionError("permission denied")

    with pytest.raises(ResourceLaunchError, match="Failed to start Chromium"):
        ChromiumLauncher(str(chromium_binary), popen=failing_popen).launch()


def test_handle_notifies_listeners_when_process_exits() -> None:
    process = FakeChromiumProcess([])
    handle = ChromiumHandle(process, _ENDPOINT)
    notified: list[ChromiumHandle] = []
    handle.add_disconnect_listener(notified.append)

    process.exit(1)

    assert handle.wait_disconnected(5)
    assert not handle.is_connected()
    assert notified == [handle]

    late: list[ChromiumHandle] = []
    handle.add_disconnect_listener(late.append)
    assert late == [handle]


def test_manager_relaunches_after_chromium_crash(chromium_binary: Path) -> None:
    processes: list[FakeChromiumProcess] = []

    def popen(command, **kwargs):  # type: ignore[no-untyped-def]
        process = FakeChromiumProcess([f"DevTools listening on {_ENDPOINT}\n"])
        processes.append(process)
        return process

    manager = SharedResourceManager(ChromiumLauncher(str(chromium_binary), popen=popen))
    first = manager.acquire()

    processes[0].exit(-11)
    assert first.wait_disconnected(5)

    second = manager.acquire()
    assert second is not first
    assert len(processes) == 2
    manager.release()
    assert processes[1].terminated
