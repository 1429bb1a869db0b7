"""Tests for pipeline/manifest.py."""

import asyncio
import os

import pytest

from openstore.domain.errors import ErrorKind, SubmissionError
from openstore.pipeline.manifest import (
    ManifestData,
    _load_snap_meta,
    package_extension,
    parse_click,
    parse_package,
    read_ar_members,
)
from tests.helpers import (
    PNG_BYTES,
    damaged_click_bytes,
    flip_first_deflate_byte,
    make_raw_script,
    truncate,
    write_click,
)

SNAP_YAML = """\
name: hello-snap
version: 2.1
summary: Says hello
description: A friendly snap
base: core18
architectures:
  - amd64
  - arm64
"""


class TestPackageExtension:
    @pytest.mark.parametrize("name,expected", [
        ("app.click", ".click"),
        ("app_1.0_all.snap", ".snap"),
        ("app.zip", None),
        ("click", None),
        ("app.click.txt", None),
    ])
    def test_extension(self, name, expected):
        assert package_extension(name) == expected


class TestReadArMembers:
    def test_rejects_non_ar_data(self):
        with pytest.raises(ValueError):
            read_ar_members(b"PK\x03\x04 not an ar file")

    def test_reads_odd_sized_members(self, tmp_path):
        path = write_click(tmp_path / "a.click")
        with open(path, "rb") as f:
            members = read_ar_members(f.read())
        assert members["debian-binary"] == b"2.0\n"
        assert "control.tar.gz" in members
        assert "data.tar.gz" in members


class TestParseClick:
    def test_reads_manifest_fields(self, tmp_path):
        path = write_click(tmp_path / "a.click", name="com.example.app", version="1.2.3", arch="armhf")
        data = parse_click(path)
        try:
            assert data.name == "com.example.app"
            assert data.version == "1.2.3"
            assert data.architectures == ["armhf"]
            assert data.framework == "ubuntu-sdk-15.04"
            assert data.title == "Example App"
            assert data.types == ["app"]
            assert data.raw["hooks"]["app"]["desktop"] == "app.desktop"
        finally:
            data.cleanup()

    def test_extracts_icon_into_workdir(self, tmp_path):
        data = parse_click(write_click(tmp_path / "a.click"))
        assert data.icon is not None
        with open(data.icon, "rb") as f:
            assert f.read() == PNG_BYTES
        workdir = data.workdir
        data.cleanup()
        assert not os.path.exists(workdir)

    def test_no_icon(self, tmp_path):
        data = parse_click(write_click(tmp_path / "a.click", icon=None))
        assert data.icon is None
        assert data.workdir is None

    def test_webapp_detected_from_exec_line(self, tmp_path):
        data = parse_click(write_click(tmp_path / "a.click", webapp=True))
        data.cleanup()
        assert data.types == ["webapp"]

    def test_scope_hook(self, tmp_path):
        data = parse_click(write_click(tmp_path / "a.click", hooks={"s": {"scope": "s"}}))
        assert data.types == ["scope"]

    def test_missing_fields_are_not_enforced(self, tmp_path):
        data = parse_click(write_click(tmp_path / "a.click", version=None, icon=None))
        assert data.version is None
        assert data.name == "com.example.app"

    def test_multi_architecture(self, tmp_path):
        data = parse_click(write_click(tmp_path / "a.click", arch=["armhf", "arm64"], icon=None))
        assert data.architectures == ["armhf", "arm64"]

    def test_garbage_is_unreadable(self, tmp_path):
        path = tmp_path / "bad.click"
        path.write_bytes(b"definitely not a click package")
        with pytest.raises(SubmissionError) as exc:
            parse_click(str(path))
        assert exc.value.kind is ErrorKind.UNREADABLE_PACKAGE

    @pytest.mark.parametrize("damage", [truncate, flip_first_deflate_byte])
    def test_damaged_control_member_is_unreadable(self, tmp_path, damage):
        path = tmp_path / "bad.click"
        path.write_bytes(damaged_click_bytes("control.tar.gz", damage))
        with pytest.raises(SubmissionError) as exc:
            parse_click(str(path))
        assert exc.value.kind is ErrorKind.UNREADABLE_PACKAGE

    @pytest.mark.parametrize("damage", [truncate, flip_first_deflate_byte])
    def test_damaged_data_member_keeps_metadata(self, tmp_path, damage):
        path = tmp_path / "a.click"
        path.write_bytes(damaged_click_bytes("data.tar.gz", damage, version="2.0"))
        data = parse_click(str(path))
        assert data.name == "com.example.app"
        assert data.version == "2.0"
        assert data.icon is None
        assert data.workdir is None


class TestSnapMeta:
    def test_load_snap_meta(self, tmp_path):
        meta = tmp_path / "meta"
        (meta / "gui").mkdir(parents=True)
        (meta / "snap.yaml").write_text(SNAP_YAML)
        (meta / "gui" / "icon.png").write_bytes(PNG_BYTES)

        data = _load_snap_meta("hello.snap", str(tmp_path))
        assert data.name == "hello-snap"
        assert data.version == "2.1"
        assert data.architectures == ["amd64", "arm64"]
        assert data.types == ["snappy"]
        assert data.framework == "core18"
        assert data.title == "Says hello"
        assert data.icon == str(meta / "gui" / "icon.png")

    def test_architectures_default_to_all(self, tmp_path):
        (tmp_path / "meta").mkdir()
        (tmp_path / "meta" / "snap.yaml").write_text("name: x\nversion: '1'\n")
        data = _load_snap_meta("x.snap", str(tmp_path))
        assert data.architectures == ["all"]
        assert data.icon is None

    def test_invalid_yaml_is_unreadable(self, tmp_path):
        (tmp_path / "meta").mkdir()
        (tmp_path / "meta" / "snap.yaml").write_text("name: [unterminated\n")
        with pytest.raises(SubmissionError) as exc:
            _load_snap_meta("x.snap", str(tmp_path))
        assert exc.value.kind is ErrorKind.UNREADABLE_PACKAGE


class TestParsePackage:
    def test_dispatches_click(self, settings_env, tmp_path):
        data = asyncio.run(parse_package(write_click(tmp_path / "a.click")))
        data.cleanup()
        assert isinstance(data, ManifestData)
        assert data.name == "com.example.app"

    def test_snap_through_unsquashfs(self, settings_env, tmp_path, monkeypatch):
        """The unpack tool is called as: -n -f -d <dest> <file> meta."""
        from openstore.core.config import reset_settings

        body = (
            'mkdir -p "$4/meta"\n'
            f"cat > \"$4/meta/snap.yaml\" <<'YAML'\n{SNAP_YAML}YAML\n"
        )
        monkeypatch.setenv("UNSQUASHFS_COMMAND", make_raw_script(tmp_path, body, name="fake-unsquashfs"))
        reset_settings()

        snap = tmp_path / "hello.snap"
        snap.write_bytes(b"hsqs")
        data = asyncio.run(parse_package(str(snap)))
        workdir = data.workdir
        assert data.name == "hello-snap"
        assert os.path.isdir(workdir)
        data.cleanup()
        assert not os.path.exists(workdir)

    def test_snap_unpack_failure_is_unreadable(self, settings_env, tmp_path, monkeypatch):
        from openstore.core.config import reset_settings

        monkeypatch.setenv("UNSQUASHFS_COMMAND", make_raw_script(tmp_path, "echo broken >&2\nexit 1\n"))
        reset_settings()
        snap = tmp_path / "bad.snap"
        snap.write_bytes(b"junk")
        with pytest.raises(SubmissionError) as exc:
            asyncio.run(parse_package(str(snap)))
        assert exc.value.kind is ErrorKind.UNREADABLE_PACKAGE

    def test_missing_unsquashfs_is_unreadable(self, settings_env, tmp_path, monkeypatch):
        from openstore.core.config import reset_settings

        monkeypatch.setenv("UNSQUASHFS_COMMAND", str(tmp_path / "no-such-tool"))
        reset_settings()
        snap = tmp_path / "a.snap"
        snap.write_bytes(b"junk")
        with pytest.raises(SubmissionError) as exc:
            asyncio.run(parse_package(str(snap)))
        assert exc.value.kind is ErrorKind.UNREADABLE_PACKAGE
