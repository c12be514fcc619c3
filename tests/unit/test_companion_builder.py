from __future__ import annotations

from pathlib import Path

import pytest

from app.config import CompanionConfig
from services.companion import (
    GitHubReleaseResolver,
    InstallOrchestrator,
    LocalFolderReleaseResolver,
    ReleaseInfo,
    Transferer,
    build_install_orchestrator,
    schedule_companion_install,
)
from tests.unit.companion_test_utils import FakeOpener, RecordingInstaller, StaticReleaseResolver


def _config(tmp_path: Path) -> CompanionConfig:
    return CompanionConfig(
        feed_url="https://example.invalid/api",
        asset_suffix="-arm64.dmg",
        install_dir=tmp_path / "Applications",
        staging_dir=tmp_path / "staging",
    )


@pytest.fixture(autouse=True)
def _clear_companion_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AGENTOS_COMPANION_LOCAL_DIR", raising=False)
    monkeypatch.delenv("AGENTOS_COMPANION_FORCE", raising=False)


def test_build_install_orchestrator_returns_none_off_macos(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("sys.platform", "linux", raising=False)

    assert build_install_orchestrator(_config(tmp_path)) is None


def test_build_install_orchestrator_on_macos_uses_github(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("sys.platform", "darwin", raising=False)

    orchestrator = build_install_orchestrator(_config(tmp_path))

    assert isinstance(orchestrator, InstallOrchestrator)
    assert orchestrator.staging_dir == tmp_path / "staging"
    assert isinstance(orchestrator._resolver, GitHubReleaseResolver)  # type: ignore[attr-defined]
    assert orchestrator._resolver.asset_suffix == "-arm64.dmg"  # type: ignore[attr-defined]


def test_force_env_enables_other_platforms(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("sys.platform", "linux", raising=False)
    monkeypatch.setenv("AGENTOS_COMPANION_FORCE", "1")

    assert build_install_orchestrator(_config(tmp_path)) is not None


def test_local_release_directory_overrides_feed(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("sys.platform", "darwin", raising=False)
    monkeypatch.setenv("AGENTOS_COMPANION_LOCAL_DIR", str(tmp_path))

    orchestrator = build_install_orchestrator(_config(tmp_path))

    assert orchestrator is not None
    assert isinstance(orchestrator._resolver, LocalFolderReleaseResolver)  # type: ignore[attr-defined]


def test_missing_local_release_directory_falls_back(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("sys.platform", "darwin", raising=False)
    monkeypatch.setenv("AGENTOS_COMPANION_LOCAL_DIR", str(tmp_path / "missing"))

    orchestrator = build_install_orchestrator(_config(tmp_path))

    assert orchestrator is not None
    assert isinstance(orchestrator._resolver, GitHubReleaseResolver)  # type: ignore[attr-defined]


def test_schedule_companion_install_runs_in_background(tmp_path: Path) -> None:
    orchestrator = InstallOrchestrator(
        StaticReleaseResolver(release=ReleaseInfo(version="v1.2.0", asset=None)),
        Transferer(opener=FakeOpener({})),
        RecordingInstaller(tmp_path / "Applications" / "Foo.app"),
        staging_dir=tmp_path / "staging",
    )
    completions: list[tuple[object, object]] = []

    thread = schedule_companion_install(
        orchestrator, on_complete=lambda error, path: completions.append((error, path))
    )
    thread.join(5)

    assert not thread.is_alive()
    assert thread.name == "agentos-companion-install"
    assert completions == [(None, None)]


def test_scheduled_install_reports_unexpected_errors(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    error = KeyError("tag_name")
    orchestrator = InstallOrchestrator(
        StaticReleaseResolver(error=error),
        Transferer(opener=FakeOpener({})),
        RecordingInstaller(tmp_path / "Applications" / "Foo.app"),
        staging_dir=tmp_path / "staging",
    )
    completions: list[tuple[object, object]] = []

    with caplog.at_level("ERROR", logger="services.companion.builder"):
        thread = schedule_companion_install(
            orchestrator, on_complete=lambda err, path: completions.append((err, path))
        )
        thread.join(5)

    assert completions == [(error, None)]
    assert "Unexpected error while installing the companion app" in caplog.text
