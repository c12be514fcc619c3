"""Launch headless Chromium and track the running process."""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from queue import Empty, SimpleQueue
from typing import Callable, Optional, Sequence

from app.config import DEFAULT_BROWSER_ARGS
from services.browser.models import BrowserHandle, ResourceLaunchError


logger = logging.getLogger(__name__)

CHROMIUM_PATH_ENV = "AGENTOS_CHROMIUM_PATH"

_EXECUTABLE_NAMES = ("chromium", "chromium-browser", "google-chrome", "google-chrome-stable")
_MACOS_EXECUTABLES = (
    Path("/Applications/Chromium.app/Contents/MacOS/Chromium"),
    Path("/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
)
_DEVTOOLS_PATTERN = re.compile(r"DevTools listening on (ws://\S+)")

PopenFactory = Callable[..., "subprocess.Popen[str]"]


def parse_devtools_endpoint(line: str) -> Optional[str]:
    """Return the WebSocket URL announced by Chromium on stderr, if any.

    Chromium prints ``DevTools listening on ws://127.0.0.1:<port>/devtools/browser/<id>``
    once the remote debugging server is accepting connections.
    """

    match = _DEVTOOLS_PATTERN.search(line)
    if match is None:
        return None
    return match.group(1)


def find_chromium_executable(configured: Optional[str] = None) -> Optional[Path]:
    """Locate a Chromium executable without starting it."""

    explicit = configured or os.environ.get(CHROMIUM_PATH_ENV)
    if explicit:
        path = Path(explicit).expanduser()
        return path if path.is_file() else None

    for name in _EXECUTABLE_NAMES:
        found = shutil.which(name)
        if found:
            return Path(found)
    for candidate in _MACOS_EXECUTABLES:
        if candidate.is_file():
            return candidate
    return None


class ChromiumHandle:
    """Running Chromium process reachable over the DevTools protocol."""

    def __init__(
        self,
        process: "subprocess.Popen[str]",
        ws_endpoint: str,
        *,
        profile_dir: Optional[Path] = None,
    ) -> None:
        self._process = process
        self._ws_endpoint = ws_endpoint
        self._profile_dir = profile_dir
        self._lock = threading.Lock()
        self._disconnected = threading.Event()
        self._listeners: list[Callable[[BrowserHandle], None]] = []
        self._watcher = threading.Thread(
            target=self._watch_process,
            name="chromium-watch",
            daemon=True,
        )
        self._watcher.start()

    @property
    def ws_endpoint(self) -> str:
        return self._ws_endpoint

    @property
    def pid(self) -> int:
        return self._process.pid

    def is_connected(self) -> bool:
        return not self._disconnected.is_set() and self._process.poll() is None

    def add_disconnect_listener(self, callback: Callable[[BrowserHandle], None]) -> None:
        with self._lock:
            if not self._disconnected.is_set():
                self._listeners.append(callback)
                return
        # Already gone; notify straight away.
        self._notify(callback)

    def wait_disconnected(self, timeout: Optional[float] = None) -> bool:
        return self._disconnected.wait(timeout)

    def close(self, timeout: Optional[float] = None) -> None:
        process = self._process
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.warning("Chromium did not exit after terminate; killing pid %s", process.pid)
                process.kill()
                process.wait(timeout=timeout)
        if threading.current_thread() is not self._watcher:
            # The watcher may be removing the profile; let it finish first.
            self._watcher.join(timeout)
        self._remove_profile()

    def _watch_process(self) -> None:
        returncode = self._process.wait()
        logger.debug("Chromium pid %s exited with status %s", self._process.pid, returncode)
        self._remove_profile()
        with self._lock:
            self._disconnected.set()
            listeners = list(self._listeners)
            self._listeners.clear()
        for callback in listeners:
            self._notify(callback)

    def _notify(self, callback: Callable[[BrowserHandle], None]) -> None:
        try:
            callback(self)
        except Exception:
            logger.warning("Browser disconnect listener failed", exc_info=True)

    def _remove_profile(self) -> None:
        with self._lock:
            profile_dir, self._profile_dir = self._profile_dir, None
        if profile_dir is not None:
            shutil.rmtree(profile_dir, ignore_errors=True)


class ChromiumLauncher:
    """Start headless Chromium with the host's standard flags."""

    def __init__(
        self,
        executable: Optional[str] = None,
        *,
        args: Sequence[str] = DEFAULT_BROWSER_ARGS,
        launch_timeout: float = 30.0,
        viewport: tuple[int, int] = (1280, 800),
        popen: PopenFactory = subprocess.Popen,
    ) -> None:
        self._executable = executable
        self._args = tuple(args)
        self._launch_timeout = launch_timeout
        self._viewport = viewport
        self._popen = popen

    def is_available(self) -> bool:
        return find_chromium_executable(self._executable) is not None

    def build_command(self, executable: Path, profile_dir: Path) -> list[str]:
        width, height = self._viewport
        return [
            str(executable),
            "--headless=new",
            "--remote-debugging-port=0",
            f"--user-data-dir={profile_dir}",
            f"--window-size={width},{height}",
            *self._args,
            "about:blank",
        ]

    def launch(self) -> ChromiumHandle:
        executable = find_chromium_executable(self._executable)
        if executable is None:
            raise ResourceLaunchError("Chromium executable not found")

        profile_dir = Path(tempfile.mkdtemp(prefix="agentos-chromium-"))
        command = self.build_command(executable, profile_dir)
        logger.debug("Starting Chromium: %s", command)
        try:
            process = self._popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as exc:
            shutil.rmtree(profile_dir, ignore_errors=True)
            raise ResourceLaunchError(f"Failed to start Chromium: {exc}") from exc

        try:
            endpoint = self._await_endpoint(process)
        except ResourceLaunchError:
            _terminate(process)
            shutil.rmtree(profile_dir, ignore_errors=True)
            raise
        logger.info("Chromium pid %s listening on %s", process.pid, endpoint)
        return ChromiumHandle(process, endpoint, profile_dir=profile_dir)

    def _await_endpoint(self, process: "subprocess.Popen[str]") -> str:
        lines: SimpleQueue[Optional[str]] = SimpleQueue()
        handshake_done = threading.Event()

        def pump_stderr() -> None:
            stream = process.stderr
            if stream is None:
                lines.put(None)
                return
            for line in stream:
                if handshake_done.is_set():
                    logger.debug("chromium: %s", line.rstrip())
                else:
                    lines.put(line)
            lines.put(None)

        threading.Thread(target=pump_stderr, name="chromium-stderr", daemon=True).start()

        deadline = time.monotonic() + self._launch_timeout
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                try:
                    line = lines.get(timeout=remaining)
                except Empty:
                    break
                if line is None:
                    raise ResourceLaunchError(
                        f"Chromium exited during startup with status {process.poll()}"
                    )
                endpoint = parse_devtools_endpoint(line)
                if endpoint is not None:
                    return endpoint
        finally:
            handshake_done.set()
        raise ResourceLaunchError(
            f"Chromium did not report a DevTools endpoint within {self._launch_timeout:.1f}s"
        )


def _terminate(process: "subprocess.Popen[str]") -> None:
    if process.poll() is not None:
        return
    process.terminate()
    try:
        process.wait(timeout=5.0)
    except subprocess.TimeoutExpired:
        process.kill()


__all__ = [
    "CHROMIUM_PATH_ENV",
    "ChromiumHandle",
    "ChromiumLauncher",
    "find_chromium_executable",
    "parse_devtools_endpoint",
]
