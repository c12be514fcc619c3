"""Streaming download of release assets with redirect handling and progress."""

from __future__ import annotations

import logging
from http.client import HTTPException
from pathlib import Path
from typing import Any, Callable, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import urljoin
from urllib.request import HTTPRedirectHandler, Request, build_opener

from services.companion.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_REDIRECTS,
    REDIRECT_STATUSES,
    STAGE_DOWNLOAD,
)
from services.companion.models import (
    DownloadError,
    DownloadState,
    NetworkError,
    TooManyRedirectsError,
)
from shared.cancellation import CancellationToken, raise_if_cancelled


_LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class Opener(Protocol):
    def open(self, request: Request, timeout: float = ...) -> Any:
        """Issue ``request`` and return a file-like response."""


class _NoRedirectHandler(HTTPRedirectHandler):
    """Surface 3xx responses as :class:`HTTPError` so hops can be counted."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):  # type: ignore[override]
        return None


def build_download_opener() -> Opener:
    return build_opener(_NoRedirectHandler())


class Transferer:
    """Download a URL to disk, following redirects and reporting progress."""

    def __init__(
        self,
        *,
        user_agent: str = "Offline-AgentOS",
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = 30.0,
        opener: Opener | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._max_redirects = max(0, int(max_redirects))
        self._chunk_size = max(1, int(chunk_size))
        self._timeout = timeout
        self._opener = opener or build_download_opener()

    def fetch(
        self,
        url: str,
        dest_path: Path,
        on_progress: ProgressCallback | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> Path:
        """Stream ``url`` into ``dest_path`` and return the written path.

        The destination file is only created once a successful response has
        been received, and it is removed again if streaming fails for any
        reason, so callers never observe a partial download.
        """

        dest_path = Path(dest_path)
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DownloadError(
                f"Unable to create download directory {dest_path.parent}: {exc}"
            ) from exc
        raise_if_cancelled(cancel_token)

        response = self._open_following_redirects(url)
        state = DownloadState(dest_path=dest_path, total_bytes=_content_length(response))
        _LOGGER.info(
            "Downloading %s to %s (%s bytes)",
            url,
            dest_path,
            state.total_bytes if state.total_known else "unknown",
        )
        try:
            with response, dest_path.open("wb") as destination:
                self._stream(response, destination, state, on_progress, cancel_token)
        except (OSError, HTTPException) as exc:
            _remove_partial(dest_path)
            raise NetworkError(
                f"Download of {url} was interrupted: {exc}", stage=STAGE_DOWNLOAD
            ) from exc
        except BaseException:
            _remove_partial(dest_path)
            raise

        if state.total_known and state.bytes_downloaded != state.total_bytes:
            _remove_partial(dest_path)
            raise NetworkError(
                f"Download of {url} ended after {state.bytes_downloaded} of "
                f"{state.total_bytes} bytes",
                stage=STAGE_DOWNLOAD,
            )

        _LOGGER.debug("Downloaded %d bytes to %s", state.bytes_downloaded, dest_path)
        return dest_path

    def _open_following_redirects(self, url: str) -> Any:
        current = url
        hops = 0
        while True:
            try:
                request = Request(current, headers={"User-Agent": self._user_agent})
                response = self._opener.open(request, timeout=self._timeout)
            except HTTPError as exc:
                location = exc.headers.get("Location") if exc.headers is not None else None
                exc.close()
                if exc.code in REDIRECT_STATUSES and location:
                    hops += 1
                    if hops > self._max_redirects:
                        raise TooManyRedirectsError(
                            f"Download of {url} exceeded {self._max_redirects} redirects",
                            status_code=exc.code,
                        ) from exc
                    current = urljoin(current, location)
                    _LOGGER.debug("Following HTTP %d redirect to %s", exc.code, current)
                    continue
                raise DownloadError(
                    f"Download failed with status {exc.code}", status_code=exc.code
                ) from exc
            except (OSError, URLError, HTTPException) as exc:
                raise NetworkError(
                    f"Failed to download {current}: {exc}", stage=STAGE_DOWNLOAD
                ) from exc
            except ValueError as exc:
                raise DownloadError(f"Invalid download URL {current!r}: {exc}") from exc

            status = getattr(response, "status", None) or 200
            if not 200 <= status < 300:
                response.close()
                raise DownloadError(f"Download failed with status {status}", status_code=status)
            return response

    def _stream(
        self,
        response: Any,
        destination: Any,
        state: DownloadState,
        on_progress: ProgressCallback | None,
        cancel_token: CancellationToken | None,
    ) -> None:
        while True:
            raise_if_cancelled(cancel_token)
            chunk = response.read(self._chunk_size)
            if not chunk:
                break
            destination.write(chunk)
            state.bytes_downloaded += len(chunk)
            if state.total_known and on_progress is not None:
                _notify_progress(on_progress, state.bytes_downloaded, state.total_bytes)


def _content_length(response: Any) -> int:
    headers = getattr(response, "headers", None)
    raw = headers.get("Content-Length") if headers is not None else None
    try:
        return max(int(raw), 0) if raw is not None else 0
    except (TypeError, ValueError):
        return 0


def _notify_progress(callback: ProgressCallback, downloaded: int, total: int) -> None:
    try:
        callback(downloaded, total)
    except Exception:
        _LOGGER.warning("Download progress callback failed", exc_info=True)


def _remove_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        _LOGGER.warning("Unable to remove partial download %s", path, exc_info=True)


__all__ = ["Opener", "ProgressCallback", "Transferer", "build_download_opener"]
