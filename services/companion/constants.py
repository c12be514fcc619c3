"""Constants shared across the companion installer modules."""

from __future__ import annotations

GITHUB_REPO = "ReEnvision-AI/systray"
API_URL = f"https://api.github.com/repos/{GITHUB_REPO}/releases/latest"

DISK_IMAGE_EXTENSION = ".dmg"
BUNDLE_EXTENSION = ".app"
VOLUME_ROOT = "/Volumes/"
DISK_IMAGE_TOOL = "hdiutil"

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_CHUNK_SIZE = 64 * 1024

LOCAL_RELEASE_ENV = "AGENTOS_COMPANION_LOCAL_DIR"
FORCE_PLATFORM_ENV = "AGENTOS_COMPANION_FORCE"

STAGE_CHECK = "check"
STAGE_DOWNLOAD = "download"
STAGE_INSTALL = "install"
