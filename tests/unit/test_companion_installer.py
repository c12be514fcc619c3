from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from services.companion import (
    BundleInstaller,
    BundleNotFoundError,
    DiskImageTool,
    InstallCopyError,
    MountError,
    installed_version,
)
from tests.unit.companion_test_utils import FakeHdiutil, build_app_bundle


def _installer(tmp_path: Path, **hdiutil_kwargs) -> tuple[BundleInstaller, FakeHdiutil, Path]:
    volume = tmp_path / "Volumes" / "Agent Grid"
    volume.mkdir(parents=True)
    hdiutil = FakeHdiutil(volume=volume, **hdiutil_kwargs)
    tool = DiskImageTool(runner=hdiutil, volume_root=str(tmp_path / "Volumes"))
    install_dir = tmp_path / "Applications"
    return BundleInstaller(tool, install_dir), hdiutil, volume


def test_install_copies_single_bundle(tmp_path: Path) -> None:
    installer, hdiutil, volume = _installer(tmp_path)
    build_app_bundle(volume, "Foo.app", version="1.2.0")
    (volume / "README.txt").write_text("read me", encoding="utf-8")

    destination = installer.install(tmp_path / "Foo-arm64.dmg")

    assert destination == tmp_path / "Applications" / "Foo.app"
    assert (destination / "Contents" / "MacOS" / "Foo").read_bytes() == b"binary"
    assert installed_version(destination) == "1.2.0"
    assert not (tmp_path / "Applications" / "README.txt").exists()
    assert len(hdiutil.attach_calls) == 1
    assert len(hdiutil.detach_calls) == 1


def test_install_without_bundle_raises_and_detaches_once(tmp_path: Path) -> None:
    installer, hdiutil, volume = _installer(tmp_path)
    (volume / "README.txt").write_text("nothing to see", encoding="utf-8")

    with pytest.raises(BundleNotFoundError):
        installer.install(tmp_path / "Foo-arm64.dmg")

    assert len(hdiutil.detach_calls) == 1
    assert not (tmp_path / "Applications").exists()


def test_install_picks_first_bundle_in_sorted_order(tmp_path: Path) -> None:
    installer, _, volume = _installer(tmp_path)
    build_app_bundle(volume, "Zed.app")
    build_app_bundle(volume, "Alpha.app")

    destination = installer.install(tmp_path / "Foo-arm64.dmg")

    assert destination.name == "Alpha.app"
    assert not (tmp_path / "Applications" / "Zed.app").exists()


def test_install_replaces_existing_bundle(tmp_path: Path) -> None:
    installer, _, volume = _installer(tmp_path)
    build_app_bundle(volume, "Foo.app", version="1.2.0")
    old = build_app_bundle(tmp_path / "Applications", "Foo.app", version="1.0.0")
    (old / "Contents" / "stale.txt").write_text("old", encoding="utf-8")

    destination = installer.install(tmp_path / "Foo-arm64.dmg")

    assert installed_version(destination) == "1.2.0"
    assert not (destination / "Contents" / "stale.txt").exists()
    assert not (tmp_path / "Applications" / ".Foo.app.previous").exists()


def test_copy_failure_restores_previous_bundle(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    installer, hdiutil, volume = _installer(tmp_path)
    build_app_bundle(volume, "Foo.app", version="1.2.0")
    build_app_bundle(tmp_path / "Applications", "Foo.app", version="1.0.0")

    def failing_copytree(src, dst, symlinks=False):  # type: ignore[no-untyped-def]
        Path(dst).mkdir(parents=True)
        (Path(dst) / "partial").write_text("half", encoding="utf-8")
        raise shutil.Error([(str(src), str(dst), "No space left on device")])

    monkeypatch.setattr("services.companion.installer.shutil.copytree", failing_copytree)

    with pytest.raises(InstallCopyError, match="No space left"):
        installer.install(tmp_path / "Foo-arm64.dmg")

    destination = tmp_path / "Applications" / "Foo.app"
    assert installed_version(destination) == "1.0.0"
    assert not (destination / "partial").exists()
    assert len(hdiutil.detach_calls) == 1


def test_detach_failure_does_not_fail_install(tmp_path: Path) -> None:
    installer, hdiutil, volume = _installer(tmp_path, detach_returncode=16)
    build_app_bundle(volume, "Foo.app")

    destination = installer.install(tmp_path / "Foo-arm64.dmg")

    assert destination.exists()
    assert len(hdiutil.detach_calls) == 1


def test_mount_failure_skips_detach(tmp_path: Path) -> None:
    installer, hdiutil, _ = _installer(tmp_path, attach_returncode=1)

    with pytest.raises(MountError):
        installer.install(tmp_path / "Foo-arm64.dmg")

    assert hdiutil.detach_calls == []


def test_unreadable_volume_raises_mount_error(tmp_path: Path) -> None:
    installer, hdiutil, volume = _installer(tmp_path)
    volume.rmdir()

    with pytest.raises(MountError):
        installer.install(tmp_path / "Foo-arm64.dmg")

    assert len(hdiutil.detach_calls) == 1
