# openstore/api/v1/downloads.py
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ... import deps
from ...domain import repos
from ..responses import error

router = APIRouter()


@router.get("/api/download/{id}/{filename}")
async def download(id: str, filename: str, repo: repos.PackageRepo = Depends(deps.get_repo)):
    pkg = await run_in_threadpool(repo.get_published, id)
    if pkg is None or not pkg.package:
        return error("App not found", 404)

    await run_in_threadpool(repo.increment_download, pkg.id, pkg.version)
    logger.debug("Download of {} {} as {}", pkg.id, pkg.version, filename)
    return RedirectResponse(pkg.package, status_code=301)
