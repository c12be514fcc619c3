"""Release resolver implementations."""

from __future__ import annotations

import json
import logging
import re
from http.client import HTTPException
from pathlib import Path
from typing import Any, Iterable, Protocol
from urllib.error import URLError
from urllib.request import Request, urlopen

from services.companion.constants import API_URL, DISK_IMAGE_EXTENSION
from services.companion.models import NetworkError, ParseError, ReleaseAsset, ReleaseInfo


_LOGGER = logging.getLogger(__name__)

_SHA256_PATTERN = re.compile(r"[0-9a-f]{64}")


class ReleaseResolver(Protocol):
    """Protocol describing release metadata sources."""

    def get_latest(self, feed_url: str | None = None) -> ReleaseInfo:
        """Return the newest release, with ``asset=None`` when nothing matches."""


class GitHubReleaseResolver:
    """Fetch the latest release from a GitHub Releases API endpoint."""

    def __init__(
        self,
        feed_url: str = API_URL,
        *,
        asset_suffix: str = f"-arm64{DISK_IMAGE_EXTENSION}",
        user_agent: str = "Offline-AgentOS",
        timeout: float = 30.0,
    ) -> None:
        self._feed_url = feed_url
        self._asset_suffix = asset_suffix
        self._user_agent = user_agent
        self._timeout = timeout

    @property
    def asset_suffix(self) -> str:
        return self._asset_suffix

    def get_latest(self, feed_url: str | None = None) -> ReleaseInfo:
        url = feed_url or self._feed_url
        payload = self._request_json(url)
        return self._build_release_info(payload)

    def _request_json(self, url: str) -> dict[str, Any]:
        _LOGGER.debug("Querying release feed %s", url)
        try:
            request = Request(
                url, headers={"User-Agent": self._user_agent, "Accept": "application/json"}
            )
            with urlopen(request, timeout=self._timeout) as response:  # nosec - HTTPS feed
                raw = response.read()
        except (OSError, URLError, HTTPException) as exc:
            raise NetworkError(f"Failed to query release feed {url}: {exc}") from exc
        except ValueError as exc:
            raise NetworkError(f"Invalid release feed URL {url!r}: {exc}") from exc

        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ParseError(f"Release feed {url} returned malformed JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ParseError(
                f"Release feed {url} returned {type(payload).__name__} instead of an object"
            )
        return payload

    def _build_release_info(self, data: dict[str, Any]) -> ReleaseInfo:
        version = str(data.get("tag_name") or data.get("name") or "").strip()
        if not version:
            raise ParseError("Release feed entry is missing a tag name")

        notes = _clean_release_notes(data.get("body"))
        assets = data.get("assets")
        if not isinstance(assets, list):
            assets = []

        selected = self._select_asset(assets)
        if selected is None:
            _LOGGER.info(
                "Release %s has no asset ending with %s", version, self._asset_suffix
            )
            return ReleaseInfo(version=version, asset=None, release_notes=notes)

        asset = ReleaseAsset(
            name=str(selected.get("name")),
            size_bytes=_coerce_size(selected.get("size")),
            url=str(selected.get("browser_download_url") or ""),
            digest=_extract_asset_digest(selected),
        )
        _LOGGER.info("Release %s includes disk image %s", version, asset.name)
        return ReleaseInfo(version=version, asset=asset, release_notes=notes)

    def _select_asset(self, assets: Iterable[Any]) -> dict[str, Any] | None:
        for asset in assets:
            if not isinstance(asset, dict):
                continue
            name = asset.get("name")
            if isinstance(name, str) and name.endswith(self._asset_suffix):
                return asset
        return None


class LocalFolderReleaseResolver:
    """Serve release metadata and a disk image from a local directory."""

    def __init__(self, folder: Path) -> None:
        self._folder = Path(folder)

    def get_latest(self, feed_url: str | None = None) -> ReleaseInfo:
        metadata_path = self._folder / "release.json"
        try:
            raw = metadata_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise NetworkError(f"Local release metadata unavailable: {metadata_path}") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Local release metadata is malformed: {exc}") from exc
        if not isinstance(data, dict):
            raise ParseError("Local release metadata must be a JSON object")

        version = str(data.get("version", "")).strip()
        if not version:
            raise ParseError("Local release metadata is missing a version")

        notes = _clean_release_notes(data.get("notes") or data.get("release_notes"))
        image_name = str(data.get("image", "")).strip()
        image_path = self._folder / image_name if image_name else None
        if image_path is None or not image_path.is_file():
            _LOGGER.warning("Local release %s has no disk image at %s", version, image_path)
            return ReleaseInfo(version=version, asset=None, release_notes=notes)

        digest = data.get("sha256")
        asset = ReleaseAsset(
            name=image_path.name,
            size_bytes=image_path.stat().st_size,
            url=image_path.resolve().as_uri(),
            digest=_normalise_digest(digest) if isinstance(digest, str) else None,
        )
        _LOGGER.info("Local release %s will supply disk image %s", version, image_name)
        return ReleaseInfo(version=version, asset=asset, release_notes=notes)


def _extract_asset_digest(asset: dict[str, Any]) -> str | None:
    digest = asset.get("digest")
    if not isinstance(digest, str) or not digest.strip():
        return None
    digest = digest.strip()
    if ":" in digest:
        algorithm, value = digest.split(":", 1)
        if algorithm.strip().lower() != "sha256":
            _LOGGER.debug(
                "Ignoring unsupported digest algorithm '%s' for asset %s",
                algorithm.strip(),
                asset.get("name"),
            )
            return None
        digest = value
    return _normalise_digest(digest)


def _normalise_digest(value: str) -> str | None:
    candidate = value.strip().lower()
    if not _SHA256_PATTERN.fullmatch(candidate):
        _LOGGER.debug("Ignoring digest that is not a SHA-256 hex string: %r", value)
        return None
    return candidate


def _coerce_size(raw: object) -> int:
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return max(raw, 0)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return 0


def _clean_release_notes(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    cleaned = raw.strip()
    return cleaned or None


__all__ = ["GitHubReleaseResolver", "LocalFolderReleaseResolver", "ReleaseResolver"]
