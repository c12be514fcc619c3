"""Resolve the host version reported in logs and ``User-Agent`` headers."""

from __future__ import annotations

import os
import subprocess
from functools import lru_cache
from importlib import metadata
from typing import Callable, Optional

DISTRIBUTION_NAME = "agentos-edge"
_FALLBACK_VERSION = "0.0.0-dev"
_VERSION_ENV = "AGENTOS_APP_VERSION"


def _strip_tag_prefix(raw_version: str) -> str:
    version = raw_version.strip()
    if version[:1] in {"v", "V"}:
        version = version[1:]
    return version


def _from_environment() -> Optional[str]:
    value = os.environ.get(_VERSION_ENV, "")
    return _strip_tag_prefix(value) or None


def _from_distribution() -> Optional[str]:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return None


def _from_git_checkout() -> Optional[str]:
    try:
        described = subprocess.check_output(
            ["git", "describe", "--tags", "--dirty"],
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return _strip_tag_prefix(described) or None


_SOURCES: tuple[Callable[[], Optional[str]], ...] = (
    _from_environment,
    _from_distribution,
    _from_git_checkout,
)


@lru_cache(maxsize=1)
def get_app_version() -> str:
    """Return the host version.

    Sources are consulted in order: ``AGENTOS_APP_VERSION``, the installed
    ``agentos-edge`` distribution metadata, ``git describe`` in a source
    checkout, and finally a development placeholder.
    """

    for source in _SOURCES:
        version = source()
        if version:
            return version
    return _FALLBACK_VERSION


def build_user_agent(product: str) -> str:
    """Return ``product/<host version>`` for outgoing HTTP requests."""

    return f"{product}/{get_app_version()}"


__all__ = ["DISTRIBUTION_NAME", "build_user_agent", "get_app_version"]
