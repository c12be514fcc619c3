"""Digest helpers for verifying downloaded disk images."""

from __future__ import annotations

import hashlib
from pathlib import Path

from services.companion.models import DigestMismatchError, DownloadError


def calculate_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as source:
        for chunk in iter(lambda: source.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_sha256(path: Path, expected: str) -> None:
    """Raise :class:`DigestMismatchError` unless ``path`` hashes to ``expected``.

    A staged image that cannot be read is reported as a :class:`DownloadError`.
    """

    try:
        actual = calculate_sha256(path)
    except OSError as exc:
        raise DownloadError(f"Unable to read disk image {path.name} for verification: {exc}") from exc
    if actual.lower() != expected.strip().lower():
        raise DigestMismatchError(
            f"Disk image {path.name} digest mismatch: expected {expected} but received {actual}"
        )


__all__ = ["calculate_sha256", "verify_sha256"]
