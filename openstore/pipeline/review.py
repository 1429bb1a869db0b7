# openstore/pipeline/review.py
"""
Trust Reviewer: runs the external click-review / snap-review tool.

The tools print a JSON report keyed by check group, each group holding
``error``, ``warn`` and ``info`` sections that map check names to
``{"text": ..., "manual_review": bool}``. A package needs manual review when
any error or warning was raised, or any check asks for manual review. The
tools exit non-zero when they find problems, so the exit status alone is
not a failure; an unusable report is.
"""
from __future__ import annotations

import asyncio
import json
import shlex
from typing import Any, Dict, List, Optional

from loguru import logger

from ..core.config import get_settings
from ..domain.errors import ErrorKind, SubmissionError
from .manifest import CLICK, SNAP, package_extension


def _tool_error(path: str, reason: str) -> SubmissionError:
    logger.warning("Review tool failed on {}: {}", path, reason)
    return SubmissionError(ErrorKind.REVIEW_TOOL_ERROR, path=path, reason=reason)


def report_needs_manual_review(report: Dict[str, Any]) -> bool:
    for group_name, group in report.items():
        if not isinstance(group, dict):
            continue
        for section in ("error", "warn"):
            if group.get(section):
                logger.debug("Review group {} has {} entries", group_name, section)
                return True
        for section in group.values():
            if not isinstance(section, dict):
                continue
            for check in section.values():
                if isinstance(check, dict) and check.get("manual_review"):
                    return True
    return False


class TrustReviewer:
    def __init__(
        self,
        click_command: Optional[str] = None,
        snap_command: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        s = get_settings()
        self.click_command = click_command or s.CLICK_REVIEW_COMMAND
        self.snap_command = snap_command or s.SNAP_REVIEW_COMMAND
        self.timeout = timeout if timeout is not None else s.REVIEW_TIMEOUT_S

    def _command(self, path: str) -> List[str]:
        ext = package_extension(path)
        if ext == CLICK:
            return shlex.split(self.click_command) + ["--json", path]
        if ext == SNAP:
            return shlex.split(self.snap_command) + ["--json", path]
        raise _tool_error(path, "unknown package format")

    async def _run(self, path: str) -> bytes:
        cmd = self._command(path)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise _tool_error(path, f"cannot run {cmd[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise _tool_error(path, f"timed out after {self.timeout}s") from e
        except asyncio.CancelledError:
            proc.kill()
            raise

        if stderr:
            logger.debug("{} stderr: {}", cmd[0], stderr.decode("utf-8", errors="replace").strip())
        return stdout

    async def needs_manual_review(self, path: str) -> bool:
        stdout = await self._run(path)
        try:
            report = json.loads(stdout)
        except ValueError as e:
            raise _tool_error(path, "review output is not JSON") from e
        if not isinstance(report, dict):
            raise _tool_error(path, "review output is not an object")

        verdict = report_needs_manual_review(report)
        logger.info("Review of {}: {}", path, "manual review" if verdict else "approved")
        return verdict
