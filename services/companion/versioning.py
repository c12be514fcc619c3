"""Compare release tags against installed bundle versions."""

from __future__ import annotations

import logging

from packaging.version import InvalidVersion, Version


_LOGGER = logging.getLogger(__name__)

__all__ = ["is_update_available", "normalise_tag", "parse_version"]


def normalise_tag(tag: str) -> str:
    """Strip whitespace and a leading ``v`` from a release tag."""

    cleaned = tag.strip()
    if cleaned[:1] in {"v", "V"}:
        cleaned = cleaned[1:]
    return cleaned


def parse_version(tag: str) -> Version | None:
    try:
        return Version(normalise_tag(tag))
    except InvalidVersion:
        _LOGGER.debug("Unable to parse version %r", tag)
        return None


def is_update_available(installed: str | None, candidate: str) -> bool:
    """Return ``True`` when ``candidate`` should replace ``installed``.

    Nothing installed always warrants an install.  When either side cannot be
    parsed the tags are compared textually, so any difference counts as an
    update rather than silently keeping an unknown build.
    """

    if installed is None:
        return True

    installed_version = parse_version(installed)
    candidate_version = parse_version(candidate)
    if installed_version is None or candidate_version is None:
        return normalise_tag(installed) != normalise_tag(candidate)
    return candidate_version > installed_version
