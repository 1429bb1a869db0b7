"""Builders for package files and stand-in review tools used across the test suite."""

import gzip
import io
import json
import os
import stat
import tarfile
from pathlib import Path

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _tar_gz(files):
    buf = io.BytesIO()
    # fixed gzip mtime so identical inputs give identical bytes
    with gzip.GzipFile(fileobj=buf, mode="wb", mtime=0) as gz, tarfile.open(fileobj=gz, mode="w") as tar:
        for name, payload in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))
    return buf.getvalue()


def _ar(members):
    out = b"!<arch>\n"
    for name, payload in members:
        header = f"{name + '/':<16}{0:<12}{0:<6}{0:<6}{'100644':<8}{len(payload):<10}`\n"
        out += header.encode("ascii") + payload
        if len(payload) % 2:
            out += b"\n"
    return out


def _click_members(name="com.example.app", version="1.0.0", arch="armhf",
                webapp=False, icon=PNG_BYTES, **manifest_extra):
    """Members of a minimal but well-formed .click archive; None drops a manifest field."""
    manifest = {
        "name": name,
        "version": version,
        "architecture": arch,
        "framework": "ubuntu-sdk-15.04",
        "title": "Example App",
        "description": "An example",
        "maintainer": "Alice <alice@example.com>",
        "hooks": {"app": {"desktop": "app.desktop", "apparmor": "app.apparmor"}},
    }
    manifest.update(manifest_extra)
    manifest = {k: v for k, v in manifest.items() if v is not None}

    exec_line = "webapp-container http://example.com" if webapp else "app"
    data_files = {
        "app.desktop": f"[Desktop Entry]\nName=Example\nExec={exec_line}\nIcon=icon.png\n".encode(),
        "app.apparmor": json.dumps({"policy_groups": ["networking"]}).encode(),
    }
    if icon is not None:
        data_files["icon.png"] = icon

    return [
        ("debian-binary", b"2.0\n"),
        ("control.tar.gz", _tar_gz({"manifest": json.dumps(manifest).encode()})),
        ("data.tar.gz", _tar_gz(data_files)),
    ]


def click_bytes(**kwargs):
    """A minimal but well-formed .click archive; see _click_members for the knobs."""
    return _ar(_click_members(**kwargs))


def damaged_click_bytes(member, damage, **kwargs):
    """A .click archive whose `member` payload has been passed through damage(bytes)."""
    return _ar([(name, damage(payload) if name == member else payload)
                for name, payload in _click_members(**kwargs)])


def truncate(payload):
    return payload[: len(payload) // 2]


def flip_first_deflate_byte(payload):
    # a gzip header without optional fields is 10 bytes
    return payload[:10] + bytes([payload[10] ^ 0xFF]) + payload[11:]


def write_click(path, **kwargs):
    Path(path).write_bytes(click_bytes(**kwargs))
    return str(path)


def _script(path, body):
    path = Path(path)
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


def make_review_script(directory, report, exit_code=0, name="review-tool"):
    """A fake click-review/snap-review printing a fixed JSON report."""
    return _script(
        os.path.join(directory, name),
        f"cat <<'JSON'\n{json.dumps(report)}\nJSON\nexit {exit_code}\n",
    )


def make_raw_script(directory, body, name="raw-tool"):
    return _script(os.path.join(directory, name), body)


APPROVE_REPORT = {
    "lint": {"error": {}, "warn": {}, "info": {"lint_control": {"text": "OK", "manual_review": False}}},
    "security": {"error": {}, "warn": {}, "info": {}},
}

REJECT_REPORT = {
    "lint": {"error": {}, "warn": {}, "info": {}},
    "security": {
        "error": {"security_policy_groups": {"text": "(NEEDS REVIEW) reserved group", "manual_review": True}},
        "warn": {},
        "info": {},
    },
}
