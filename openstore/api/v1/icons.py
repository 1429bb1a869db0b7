# openstore/api/v1/icons.py
import mimetypes

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from ... import deps
from ...domain import repos
from ...domain.icons import IconCache, icon_id
from ..responses import error

router = APIRouter()

CACHE_CONTROL = "public, max-age=2592000"  # 30 days


@router.get("/api/icon/{id}")
@router.get("/api/icon/{version}/{id}")
async def icon(id: str,
               version: str | None = None,
               repo: repos.PackageRepo = Depends(deps.get_repo),
               cache: IconCache = Depends(deps.get_icon_cache)):
    # version only busts client caches; the current icon is always served
    pkg = await run_in_threadpool(repo.get, icon_id(id))
    if pkg is None or not pkg.icon:
        return error("Icon not found", 404)

    path = await run_in_threadpool(cache.fetch, pkg.icon)
    if path is None:
        return error("Icon not found", 404)

    media_type = mimetypes.guess_type(path)[0] or "image/png"
    return FileResponse(path, media_type=media_type, headers={"Cache-Control": CACHE_CONTROL})
