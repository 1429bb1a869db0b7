# openstore/pipeline/submission.py
"""
Submission Orchestrator: the create/update workflow for uploaded packages.

Stages, in order:

1. file kind check on the client-side file name (.click / .snap)
2. rename of the temporary upload so it carries its extension
3. review gate: admins and trusted uploaders skip it, everybody else goes
   through the Trust Reviewer
4. manifest parse and checksum, concurrently
5. required manifest fields, duplicate / identity checks
6. merge of manifest, form fields and checksum into the record
7. artifact upload (binary, icon)
8. registry write: atomic insert on create, revision-checked update on edit

Scratch files (the upload, an uploaded icon, extracted manifest icons) are
removed when the submission ends, however it ends, with one exception: a
package that needs manual review stays on disk for the human reviewer.
Nothing is written to the registry before the artifacts are stored, so a
failed or cancelled submission never leaves a half-written record behind.
"""
from __future__ import annotations

import asyncio
import copy
import os
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Set, Tuple

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from ..domain.errors import ErrorKind, SubmissionError
from ..domain.models import Package, User
from ..domain.repos import PackageRepo
from ..domain.storage import BlobStore, BlobStoreError
from .checksum import checksum
from .manifest import ManifestData, package_extension, parse_package
from .review import TrustReviewer

REQUIRED_MANIFEST_FIELDS = ("name", "version", "architecture")

# form field -> Package attribute; values are copied as given
TEXT_FIELDS = {
    "title": "title",
    "name": "title",
    "description": "description",
    "tagline": "tagline",
    "category": "category",
    "license": "license",
    "source": "source",
    "support_url": "support_url",
    "donate_url": "donate_url",
    "video_url": "video_url",
    "changelog": "changelog",
}
LIST_FIELDS = ("keywords", "screenshots")


@dataclass
class UploadedFile:
    """A multipart upload already spooled to a temporary path."""

    original_name: str
    path: str


def _remove_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove temporary file {}: {}", path, e)


class _Scratch:
    """Temporary paths owned by one submission, removed on exit unless retained."""

    def __init__(self, *uploads: Optional[UploadedFile]):
        self.paths: Set[str] = {u.path for u in uploads if u is not None}
        self.manifests: List[ManifestData] = []

    def moved(self, old: str, new: str) -> None:
        self.paths.discard(old)
        self.paths.add(new)

    def retain(self, path: str) -> None:
        self.paths.discard(path)

    def __enter__(self) -> "_Scratch":
        return self

    def __exit__(self, *exc_info) -> None:
        for path in self.paths:
            _remove_file(path)
        for manifest in self.manifests:
            manifest.cleanup()


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(",")
    return [str(item).strip() for item in items if str(item).strip()]


def merge_form(pkg: Package, form: Mapping[str, Any], principal: User) -> None:
    """
    Copy requester-supplied fields onto a record.

    id, version, download_sha512 and the artifact references are never taken
    from the form; maintainer only when the requester is an administrator.
    """
    for key, attr in TEXT_FIELDS.items():
        value = form.get(key)
        if value is not None:
            setattr(pkg, attr, str(value))
    for key in LIST_FIELDS:
        if form.get(key) is not None:
            setattr(pkg, key, _as_list(form[key]))
    if form.get("published") is not None:
        pkg.published = _as_bool(form["published"])

    maintainer = form.get("maintainer")
    if maintainer and principal.is_admin:
        pkg.maintainer = str(maintainer)
        if form.get("maintainer_name"):
            pkg.maintainer_name = str(form["maintainer_name"])


def merge_manifest(pkg: Package, manifest: ManifestData) -> None:
    architectures = manifest.architectures
    pkg.version = str(manifest.version)
    pkg.architectures = architectures
    pkg.architecture = "all" if "all" in architectures else ",".join(architectures)
    pkg.framework = manifest.framework
    pkg.types = list(manifest.types)
    pkg.manifest = dict(manifest.raw)
    if not pkg.title:
        pkg.title = manifest.title or str(manifest.name)
    if not pkg.description:
        pkg.description = manifest.description


def validate_manifest(manifest: ManifestData) -> None:
    missing = [f for f in REQUIRED_MANIFEST_FIELDS if not getattr(manifest, f)]
    if missing:
        logger.info("Manifest of {} is missing {}", manifest.name, ", ".join(missing))
        raise SubmissionError(ErrorKind.MALFORMED_MANIFEST, missing=missing)


def artifact_prefix(pkg: Package) -> str:
    # the per-submission token keeps concurrent uploads from overwriting each other
    return f"apps/{pkg.id}/{pkg.version}/{uuid.uuid4().hex[:12]}"


def package_filename(pkg: Package, ext: str) -> str:
    arch = pkg.architecture if len(pkg.architectures) <= 1 else "multi"
    return f"{pkg.id}_{pkg.version}_{arch}{ext}"


class SubmissionService:
    def __init__(
        self,
        repo: PackageRepo,
        blobs: BlobStore,
        reviewer: Optional[TrustReviewer] = None,
        parser: Callable[[str], Awaitable[ManifestData]] = parse_package,
        hasher: Callable[[str], Awaitable[str]] = checksum,
    ):
        self.repo = repo
        self.blobs = blobs
        self.reviewer = reviewer or TrustReviewer()
        self.parser = parser
        self.hasher = hasher

    # ------------------------------------------------------------------ stages

    async def _checked_upload(self, scratch: _Scratch, upload: UploadedFile, principal: User) -> Tuple[str, str]:
        ext = package_extension(upload.original_name)
        if ext is None:
            logger.info("Rejected upload {!r}: not a click or snap package", upload.original_name)
            raise SubmissionError(ErrorKind.INVALID_FILE_KIND)

        # the review tools dispatch on the extension
        path = upload.path if upload.path.endswith(ext) else upload.path + ext
        if path != upload.path:
            await run_in_threadpool(os.rename, upload.path, path)
            scratch.moved(upload.path, path)

        if principal.is_admin_or_trusted:
            needs_review = False
        else:
            needs_review = await self.reviewer.needs_manual_review(path)

        if needs_review:
            scratch.retain(path)
            logger.warning("Upload by {} needs manual review, kept at {}", principal.id, path)
            raise SubmissionError(ErrorKind.PENDING_REVIEW, path=path)
        return path, ext

    async def _analyse(self, scratch: _Scratch, path: str) -> Tuple[ManifestData, str]:
        manifest, digest = await asyncio.gather(
            self.parser(path), self.hasher(path), return_exceptions=True
        )
        if isinstance(manifest, ManifestData):
            scratch.manifests.append(manifest)
        for result in (manifest, digest):
            if isinstance(result, BaseException):
                raise result
        validate_manifest(manifest)
        return manifest, digest

    async def _put(self, key: str, path: str, uploaded: List[str]) -> str:
        try:
            url = await run_in_threadpool(self.blobs.put, key, path)
        except BlobStoreError as e:
            logger.error("Upload of {} failed: {}", key, e)
            await self._discard(uploaded)
            raise SubmissionError(ErrorKind.STORAGE_FAILURE, key=key) from e
        uploaded.append(key)
        return url

    async def _store_artifacts(
        self,
        pkg: Package,
        path: Optional[str],
        ext: Optional[str],
        icon_path: Optional[str],
        icon_name: Optional[str] = None,
    ) -> List[str]:
        """Upload binary and icon; on failure nothing stays behind."""
        prefix = artifact_prefix(pkg)
        uploaded: List[str] = []
        if path and ext:
            pkg.package = await self._put(f"{prefix}/{package_filename(pkg, ext)}", path, uploaded)
            pkg.filesize = await run_in_threadpool(os.path.getsize, path)
        if icon_path:
            icon_ext = os.path.splitext(icon_name or icon_path)[1].lower() or ".png"
            pkg.icon = await self._put(f"{prefix}/icon{icon_ext}", icon_path, uploaded)
        logger.debug("Stored {} artifact(s) for {} under {}", len(uploaded), pkg.id, prefix)
        return uploaded

    async def _discard(self, keys: List[str]) -> None:
        for key in keys:
            try:
                await run_in_threadpool(self.blobs.delete, key)
            except BlobStoreError as e:
                logger.warning("Could not remove artifact {}: {}", key, e)

    def _superseded(self, old: Package, new: Package) -> List[str]:
        keys = []
        for attr in ("package", "icon"):
            old_url, new_url = getattr(old, attr), getattr(new, attr)
            if old_url and old_url != new_url:
                key = self.blobs.key_for(old_url)
                if key:
                    keys.append(key)
        return keys

    async def _persist(self, write: Callable[[], Package], uploaded: List[str]) -> Package:
        try:
            return await run_in_threadpool(write)
        except SubmissionError:
            await self._discard(uploaded)
            raise
        except SQLAlchemyError as e:
            logger.exception("Registry write failed")
            await self._discard(uploaded)
            raise SubmissionError(ErrorKind.STORAGE_FAILURE) from e

    # -------------------------------------------------------------- operations

    async def create_submission(
        self,
        upload: UploadedFile,
        form: Mapping[str, Any],
        principal: User,
        icon: Optional[UploadedFile] = None,
    ) -> Package:
        with _Scratch(upload, icon) as scratch:
            path, ext = await self._checked_upload(scratch, upload, principal)
            manifest, digest = await self._analyse(scratch, path)

            existing = await run_in_threadpool(self.repo.get, manifest.name)
            if existing is not None:
                logger.info("Rejected create of {}: already exists", manifest.name)
                raise SubmissionError(ErrorKind.DUPLICATE_PACKAGE, package_id=manifest.name)

            pkg = Package(id=str(manifest.name), maintainer=principal.id, maintainer_name=principal.name)
            merge_form(pkg, form, principal)
            merge_manifest(pkg, manifest)
            pkg.download_sha512 = digest

            icon_path, icon_name = (icon.path, icon.original_name) if icon else (manifest.icon, None)
            uploaded = await self._store_artifacts(pkg, path, ext, icon_path, icon_name)
            stored = await self._persist(lambda: self.repo.insert(pkg), uploaded)
            logger.info("Created package {} {} for {}", stored.id, stored.version, principal.id)
            return stored

    async def update_submission(
        self,
        package_id: str,
        upload: Optional[UploadedFile],
        form: Mapping[str, Any],
        principal: User,
        icon: Optional[UploadedFile] = None,
    ) -> Package:
        with _Scratch(upload, icon) as scratch:
            existing = await run_in_threadpool(self.repo.get, package_id)
            if existing is None:
                raise SubmissionError(ErrorKind.NOT_FOUND, package_id=package_id)
            if not (principal.is_admin or principal.id == existing.maintainer):
                logger.info("{} may not update {}", principal.id, package_id)
                raise SubmissionError(ErrorKind.PERMISSION_DENIED, package_id=package_id)

            pkg = copy.deepcopy(existing)
            merge_form(pkg, form, principal)

            path = ext = None
            icon_path, icon_name = (icon.path, icon.original_name) if icon else (None, None)
            if upload is not None:
                path, ext = await self._checked_upload(scratch, upload, principal)
                manifest, digest = await self._analyse(scratch, path)
                if str(manifest.name) != package_id:
                    logger.info("Rejected update of {}: package declares {}", package_id, manifest.name)
                    raise SubmissionError(ErrorKind.PACKAGE_MISMATCH, package_id=package_id)
                merge_manifest(pkg, manifest)
                pkg.download_sha512 = digest
                icon_path = icon_path or manifest.icon

            uploaded = []
            if path or icon_path:
                uploaded = await self._store_artifacts(pkg, path, ext, icon_path, icon_name)
            stored = await self._persist(lambda: self.repo.update(pkg, existing.revision), uploaded)
            await self._discard(self._superseded(existing, stored))
            logger.info(
                "Updated package {} ({}) for {}",
                stored.id,
                "new revision " + stored.version if upload is not None else "metadata",
                principal.id,
            )
            return stored
