"""Host configuration loaded from JSON resources."""

from __future__ import annotations

import json
import os
import platform
import tempfile
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Mapping

_CONFIG_RESOURCE = "app.json"
_CONFIG_FILE_ENV = "AGENTOS_CONFIG_FILE"
_FEED_URL_ENV = "AGENTOS_COMPANION_FEED_URL"
_INSTALL_DIR_ENV = "AGENTOS_COMPANION_INSTALL_DIR"
_CHROMIUM_PATH_ENV = "AGENTOS_CHROMIUM_PATH"
_APP_CONFIG_CACHE: AppConfig | None = None

DEFAULT_FEED_URL = "https://api.github.com/repos/ReEnvision-AI/systray/releases/latest"
DEFAULT_APP_NAME = "Agent Grid"
DEFAULT_INSTALL_DIR = Path("/Applications")
DEFAULT_STAGING_DIRNAME = "agent-grid-installer"
DEFAULT_USER_AGENT = "Offline-AgentOS"

DEFAULT_BROWSER_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    # Sandpack cross-origin iframes time out under site isolation.
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-web-security",
    "--disable-site-isolation-trials",
    # WebGL contexts get lost without a software GL backend.
    "--use-gl=swiftshader",
    "--ignore-gpu-blocklist",
    "--disable-gpu",
)


@dataclass(frozen=True)
class CompanionConfig:
    """Settings for discovering, downloading and installing the companion app."""

    feed_url: str = DEFAULT_FEED_URL
    asset_suffix: str = ""
    app_name: str = DEFAULT_APP_NAME
    install_dir: Path = DEFAULT_INSTALL_DIR
    staging_dir: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / DEFAULT_STAGING_DIRNAME
    )
    user_agent: str = DEFAULT_USER_AGENT
    max_redirects: int = 10
    request_timeout_s: float = 30.0
    chunk_size: int = 64 * 1024

    @property
    def bundle_name(self) -> str:
        return f"{self.app_name}.app"

    @property
    def install_path(self) -> Path:
        return self.install_dir / self.bundle_name


@dataclass(frozen=True)
class BrowserConfig:
    """Settings for the shared headless browser process."""

    executable: str | None = None
    args: tuple[str, ...] = DEFAULT_BROWSER_ARGS
    launch_timeout_s: float = 30.0
    acquire_timeout_s: float = 60.0
    close_timeout_s: float = 5.0
    viewport_width: int = 1280
    viewport_height: int = 800


@dataclass(frozen=True)
class AppConfig:
    """Structured configuration values for the edge host."""

    companion: CompanionConfig
    browser: BrowserConfig


def get_app_config() -> AppConfig:
    """Return the cached host configuration."""

    global _APP_CONFIG_CACHE
    if _APP_CONFIG_CACHE is None:
        _APP_CONFIG_CACHE = load_app_config(os.environ.get(_CONFIG_FILE_ENV) or None)
    return _APP_CONFIG_CACHE


def reset_app_config_cache() -> None:
    """Reset the cached configuration for subsequent reloads."""

    global _APP_CONFIG_CACHE
    _APP_CONFIG_CACHE = None


def load_app_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from ``path`` or the bundled JSON resource.

    Environment overrides are applied on top of the file values so that a
    packaged build can be pointed at a different feed or install location
    without editing resources.
    """

    data = _read_config_data(path)
    companion_section = data.get("companion") if isinstance(data, Mapping) else None
    browser_section = data.get("browser") if isinstance(data, Mapping) else None
    companion = _parse_companion_section(companion_section)
    browser = _parse_browser_section(browser_section)
    return AppConfig(companion=companion, browser=browser)


def get_companion_config() -> CompanionConfig:
    """Convenience accessor for the companion installer configuration."""

    return get_app_config().companion


def get_browser_config() -> BrowserConfig:
    """Convenience accessor for the shared browser configuration."""

    return get_app_config().browser


def default_asset_suffix(machine: str | None = None) -> str:
    """Return the disk-image suffix published for ``machine``."""

    arch = (machine if machine is not None else platform.machine()).strip().lower()
    if arch in {"x86_64", "amd64", "x64"}:
        return "-x64.dmg"
    return "-arm64.dmg"


def _read_config_data(path: str | Path | None) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_default_config_data()


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_default_config_data() -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(_CONFIG_RESOURCE)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _parse_companion_section(section: Mapping[str, Any] | None) -> CompanionConfig:
    defaults = CompanionConfig()
    if not isinstance(section, Mapping):
        section = {}

    feed_url = os.environ.get(_FEED_URL_ENV) or _coerce_text(
        section.get("feed_url"), default=defaults.feed_url
    )
    suffix = _coerce_text(section.get("asset_suffix"), default="") or default_asset_suffix()
    install_dir_raw = os.environ.get(_INSTALL_DIR_ENV) or section.get("install_dir")
    staging_raw = section.get("staging_dir")

    return CompanionConfig(
        feed_url=feed_url,
        asset_suffix=suffix,
        app_name=_coerce_text(section.get("app_name"), default=defaults.app_name),
        install_dir=_coerce_path(install_dir_raw, default=defaults.install_dir),
        staging_dir=_coerce_path(staging_raw, default=defaults.staging_dir),
        user_agent=_coerce_text(section.get("user_agent"), default=defaults.user_agent),
        max_redirects=_coerce_positive_int(
            section.get("max_redirects"), default=defaults.max_redirects
        ),
        request_timeout_s=_coerce_positive_float(
            section.get("request_timeout_s"), default=defaults.request_timeout_s
        ),
        chunk_size=_coerce_positive_int(section.get("chunk_size"), default=defaults.chunk_size),
    )


def _parse_browser_section(section: Mapping[str, Any] | None) -> BrowserConfig:
    defaults = BrowserConfig()
    if not isinstance(section, Mapping):
        section = {}

    executable = os.environ.get(_CHROMIUM_PATH_ENV) or _coerce_text(
        section.get("executable"), default=""
    )
    raw_args = section.get("args")
    if isinstance(raw_args, list) and all(isinstance(arg, str) for arg in raw_args):
        args = tuple(arg.strip() for arg in raw_args if arg.strip())
    else:
        args = defaults.args

    viewport = section.get("viewport")
    if not isinstance(viewport, Mapping):
        viewport = {}

    return BrowserConfig(
        executable=executable or None,
        args=args,
        launch_timeout_s=_coerce_positive_float(
            section.get("launch_timeout_s"), default=defaults.launch_timeout_s
        ),
        acquire_timeout_s=_coerce_positive_float(
            section.get("acquire_timeout_s"), default=defaults.acquire_timeout_s
        ),
        close_timeout_s=_coerce_positive_float(
            section.get("close_timeout_s"), default=defaults.close_timeout_s
        ),
        viewport_width=_coerce_positive_int(viewport.get("width"), default=defaults.viewport_width),
        viewport_height=_coerce_positive_int(
            viewport.get("height"), default=defaults.viewport_height
        ),
    )


def _coerce_text(value: Any, *, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _coerce_path(value: Any, *, default: Path) -> Path:
    if isinstance(value, (str, Path)) and str(value).strip():
        return Path(str(value).strip()).expanduser()
    return default


def _coerce_positive_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = int(value)
    elif isinstance(value, str):
        try:
            candidate = int(float(value))
        except ValueError:
            return default
    else:
        return default
    if candidate <= 0:
        return default
    return candidate


def _coerce_positive_float(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = float(value)
    elif isinstance(value, str):
        try:
            candidate = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if candidate != candidate or candidate <= 0:
        return default
    return candidate


__all__ = [
    "AppConfig",
    "BrowserConfig",
    "CompanionConfig",
    "DEFAULT_BROWSER_ARGS",
    "DEFAULT_FEED_URL",
    "default_asset_suffix",
    "get_app_config",
    "get_browser_config",
    "get_companion_config",
    "load_app_config",
    "reset_app_config_cache",
]
