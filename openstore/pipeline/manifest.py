# openstore/pipeline/manifest.py
"""
Manifest extraction for the two supported container formats.

.click  A Debian ``ar`` archive. ``control.tar.*`` carries a JSON
        ``manifest``; ``data.tar.*`` carries the payload, including the
        .desktop/apparmor hook files and the icon.
.snap   A squashfs image. ``meta/snap.yaml`` carries the metadata and
        ``meta/gui/icon.*`` (or ``meta/icon.*``) the icon. The image is
        unpacked with the external ``unsquashfs`` tool.

The parser never enforces field presence: callers decide which fields
they need. Anything that prevents the container from being read raises
SubmissionError(UnreadablePackage). An extracted icon lives in
``ManifestData.workdir``; the caller owns that directory and must remove
it with ``cleanup()``.
"""
from __future__ import annotations

import asyncio
import io
import json
import lzma
import os
import shutil
import tarfile
import tempfile
import zlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import yaml
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ..core.config import get_settings
from ..domain.errors import ErrorKind, SubmissionError

CLICK = ".click"
SNAP = ".snap"
SUPPORTED_EXTENSIONS = (CLICK, SNAP)

_AR_MAGIC = b"!<arch>\n"
_AR_HEADER_SIZE = 60
_ICON_NAMES = ("icon.png", "icon.svg", "icon.jpg")
# raised by tarfile decompression on truncated or corrupt members
_CORRUPT_TAR_ERRORS = (OSError, EOFError, ValueError, tarfile.TarError, zlib.error, lzma.LZMAError)


@dataclass
class ManifestData:
    name: Optional[str] = None
    version: Optional[str] = None
    architecture: Union[str, List[str], None] = None
    icon: Optional[str] = None
    framework: str = ""
    title: str = ""
    description: str = ""
    types: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)
    workdir: Optional[str] = None

    @property
    def architectures(self) -> List[str]:
        if isinstance(self.architecture, list):
            return [str(a) for a in self.architecture]
        if self.architecture:
            return [str(self.architecture)]
        return []

    def cleanup(self) -> None:
        if self.workdir:
            shutil.rmtree(self.workdir, ignore_errors=True)
            self.workdir = None


def package_extension(filename: str) -> Optional[str]:
    """The recognised extension of an uploaded file name, or None."""
    for ext in SUPPORTED_EXTENSIONS:
        if filename.endswith(ext):
            return ext
    return None


def _unreadable(path: str, reason: str) -> SubmissionError:
    logger.info("Package {} is unreadable: {}", path, reason)
    return SubmissionError(ErrorKind.UNREADABLE_PACKAGE, path=path, reason=reason)


# ---------------------------------------------------------
# click
# ---------------------------------------------------------
def read_ar_members(data: bytes) -> Dict[str, bytes]:
    """Split a (GNU or BSD style, short-name) ar archive into its members."""
    if not data.startswith(_AR_MAGIC):
        raise ValueError("not an ar archive")

    members: Dict[str, bytes] = {}
    offset = len(_AR_MAGIC)
    while offset + _AR_HEADER_SIZE <= len(data):
        header = data[offset:offset + _AR_HEADER_SIZE]
        if header[58:60] != b"`\n":
            raise ValueError(f"corrupt ar header at offset {offset}")
        name = header[0:16].decode("ascii").strip().rstrip("/")
        size = int(header[48:58].decode("ascii").strip())
        start = offset + _AR_HEADER_SIZE
        members[name] = data[start:start + size]
        offset = start + size + (size % 2)
    return members


def _open_member_tar(members: Dict[str, bytes], prefix: str) -> tarfile.TarFile:
    for name, payload in members.items():
        if name.startswith(prefix + ".tar"):
            return tarfile.open(fileobj=io.BytesIO(payload), mode="r:*")
    raise ValueError(f"{prefix}.tar.* member missing")


def _tar_read(tar: tarfile.TarFile, path: str) -> Optional[bytes]:
    path = path.lstrip("/")
    for candidate in (path, "./" + path):
        try:
            member = tar.getmember(candidate)
        except KeyError:
            continue
        f = tar.extractfile(member)
        if f is not None:
            return f.read()
    return None


def _desktop_entries(text: str) -> Dict[str, str]:
    entries: Dict[str, str] = {}
    for line in text.splitlines():
        if "=" in line and not line.lstrip().startswith("#"):
            key, value = line.split("=", 1)
            entries.setdefault(key.strip(), value.strip())
    return entries


def _click_types_and_icon(manifest: Dict[str, Any], data_tar: tarfile.TarFile):
    types: List[str] = []
    icon_path = manifest.get("icon") or None
    hooks = manifest.get("hooks") or {}

    for hook in hooks.values():
        if not isinstance(hook, dict):
            continue
        if "scope" in hook:
            types.append("scope")
        if "desktop" in hook:
            kind = "app"
            desktop = _tar_read(data_tar, hook["desktop"])
            if desktop is not None:
                entries = _desktop_entries(desktop.decode("utf-8", errors="replace"))
                if "webapp-container" in entries.get("Exec", ""):
                    kind = "webapp"
                if not icon_path and entries.get("Icon"):
                    icon_path = entries["Icon"]
            if "apparmor" in hook:
                apparmor = _tar_read(data_tar, hook["apparmor"])
                try:
                    template = json.loads(apparmor).get("template", "") if apparmor else ""
                except (ValueError, AttributeError):
                    template = ""
                if "webapp" in str(template):
                    kind = "webapp"
            types.append(kind)

    return list(dict.fromkeys(types)), icon_path


def parse_click(path: str) -> ManifestData:
    try:
        with open(path, "rb") as f:
            members = read_ar_members(f.read())
        with _open_member_tar(members, "control") as control:
            raw_manifest = _tar_read(control, "manifest")
        if raw_manifest is None:
            raise ValueError("control tarball has no manifest")
        manifest = json.loads(raw_manifest)
        if not isinstance(manifest, dict):
            raise ValueError("manifest is not an object")
    except _CORRUPT_TAR_ERRORS as e:
        raise _unreadable(path, str(e)) from e

    data = ManifestData(
        name=manifest.get("name"),
        version=manifest.get("version"),
        architecture=manifest.get("architecture"),
        framework=str(manifest.get("framework") or ""),
        title=str(manifest.get("title") or ""),
        description=str(manifest.get("description") or ""),
        raw=manifest,
    )

    try:
        with _open_member_tar(members, "data") as data_tar:
            data.types, icon_path = _click_types_and_icon(manifest, data_tar)
            icon_bytes = _tar_read(data_tar, icon_path) if icon_path else None
    except _CORRUPT_TAR_ERRORS as e:
        # metadata is usable without the payload; the icon is optional
        logger.warning("Could not read data tarball of {}: {}", path, e)
        icon_path, icon_bytes = None, None

    if icon_bytes:
        data.workdir = tempfile.mkdtemp(prefix="openstore-icon-")
        data.icon = os.path.join(data.workdir, "icon" + (os.path.splitext(icon_path)[1] or ".png"))
        with open(data.icon, "wb") as f:
            f.write(icon_bytes)
    return data


# ---------------------------------------------------------
# snap
# ---------------------------------------------------------
async def _unsquash_meta(path: str, dest: str) -> None:
    s = get_settings()
    try:
        proc = await asyncio.create_subprocess_exec(
            s.UNSQUASHFS_COMMAND, "-n", "-f", "-d", dest, path, "meta",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise _unreadable(path, f"cannot run {s.UNSQUASHFS_COMMAND}: {e}") from e
    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise _unreadable(path, stderr.decode("utf-8", errors="replace").strip())


def _load_snap_meta(path: str, workdir: str) -> ManifestData:
    meta_dir = os.path.join(workdir, "meta")
    try:
        with open(os.path.join(meta_dir, "snap.yaml"), "r", encoding="utf-8") as f:
            snap = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise _unreadable(path, f"meta/snap.yaml: {e}") from e
    if not isinstance(snap, dict):
        raise _unreadable(path, "meta/snap.yaml is not a mapping")

    icon = None
    for candidate_dir in (os.path.join(meta_dir, "gui"), meta_dir):
        for name in _ICON_NAMES:
            candidate = os.path.join(candidate_dir, name)
            if os.path.isfile(candidate):
                icon = candidate
                break
        if icon:
            break

    version = snap.get("version")
    return ManifestData(
        name=snap.get("name"),
        version=str(version) if version is not None else None,
        architecture=snap.get("architectures") or ["all"],
        icon=icon,
        framework=str(snap.get("base") or ""),
        title=str(snap.get("title") or snap.get("summary") or ""),
        description=str(snap.get("description") or ""),
        types=["snappy"],
        raw=snap,
        workdir=workdir,
    )


async def parse_snap(path: str) -> ManifestData:
    workdir = tempfile.mkdtemp(prefix="openstore-snap-")
    try:
        await _unsquash_meta(path, workdir)
        return await run_in_threadpool(_load_snap_meta, path, workdir)
    except BaseException:
        shutil.rmtree(workdir, ignore_errors=True)
        raise


# ---------------------------------------------------------
# entry point
# ---------------------------------------------------------
async def parse_package(path: str) -> ManifestData:
    """Extract manifest metadata from a .click or .snap file."""
    ext = package_extension(path)
    if ext == CLICK:
        return await run_in_threadpool(parse_click, path)
    if ext == SNAP:
        return await parse_snap(path)
    raise _unreadable(path, "unknown package format")
