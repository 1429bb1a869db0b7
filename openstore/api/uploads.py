# openstore/api/uploads.py
import os
import shutil
import uuid
from typing import Any, Dict, Optional, Tuple

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile

from ..core.config import get_settings
from ..pipeline.submission import UploadedFile

FILE_FIELDS = ("file", "icon")


def _spool(part: UploadFile, upload_dir: str) -> str:
    os.makedirs(upload_dir, exist_ok=True)
    dst = os.path.join(upload_dir, uuid.uuid4().hex)
    part.file.seek(0)
    with open(dst, "wb") as f:
        shutil.copyfileobj(part.file, f)
    return dst


async def spool_upload(part: Any) -> Optional[UploadedFile]:
    """Copy a multipart file part into UPLOAD_DIR under a random name."""
    if not isinstance(part, UploadFile) or not part.filename:
        return None
    path = await run_in_threadpool(_spool, part, get_settings().UPLOAD_DIR)
    return UploadedFile(original_name=part.filename, path=path)


async def read_submission(form: FormData) -> Tuple[Optional[UploadedFile], Optional[UploadedFile], Dict[str, Any]]:
    """Split a multipart form into (package file, icon file, metadata fields)."""
    upload = await spool_upload(form.get("file"))
    try:
        icon = await spool_upload(form.get("icon"))
    except BaseException:
        discard(upload)
        raise

    fields: Dict[str, Any] = {}
    for key in form.keys():
        if key in FILE_FIELDS:
            continue
        values = [v for v in form.getlist(key) if isinstance(v, str)]
        if values:
            fields[key] = values if len(values) > 1 else values[0]
    return upload, icon, fields


def discard(*uploads: Optional[UploadedFile]) -> None:
    for upload in uploads:
        if upload is not None:
            try:
                os.remove(upload.path)
            except FileNotFoundError:
                pass
