# openstore/api/v1/manage.py
from fastapi import APIRouter, Depends, Request
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ... import deps
from ...core.config import get_settings
from ...domain import repos
from ...domain.models import User
from ...domain.schemas import to_json
from ...pipeline.submission import SubmissionService
from ..responses import error, success
from ..uploads import discard, read_submission

router = APIRouter()

NO_FILE = "No file upload specified"


@router.get("/api/v1/manage/apps")
async def list_managed(user: User = Depends(deps.require_user),
                       repo: repos.PackageRepo = Depends(deps.get_repo)):
    maintainer = None if user.is_admin else user.id
    pkgs = await run_in_threadpool(repo.list_by_maintainer, maintainer)
    server = get_settings().SERVER_URL
    return success({"count": len(pkgs), "packages": [to_json(p, server) for p in pkgs]})


@router.get("/api/v1/manage/apps/{id}")
async def get_managed(id: str,
                      user: User = Depends(deps.require_user),
                      repo: repos.PackageRepo = Depends(deps.get_repo)):
    pkg = await run_in_threadpool(repo.get, id)
    if pkg is None or not (user.is_admin or pkg.maintainer == user.id):
        return error("App not found", 404)
    return success(to_json(pkg, get_settings().SERVER_URL))


@router.post("/api/apps")
@router.post("/api/v1/manage/apps")
async def create_package(request: Request,
                         user: User = Depends(deps.require_user),
                         service: SubmissionService = Depends(deps.get_submission_service)):
    async with request.form() as form:
        upload, icon, fields = await read_submission(form)
    if upload is None:
        discard(icon)
        return error(NO_FILE, 400)

    logger.info("Create request from {} with {}", user.id, upload.original_name)
    pkg = await service.create_submission(upload, fields, user, icon=icon)
    return success(to_json(pkg, get_settings().SERVER_URL))


@router.put("/api/apps/{id}")
@router.put("/api/v1/manage/apps/{id}")
async def update_package(id: str,
                         request: Request,
                         user: User = Depends(deps.require_user),
                         service: SubmissionService = Depends(deps.get_submission_service)):
    async with request.form() as form:
        upload, icon, fields = await read_submission(form)

    logger.info("Update request for {} from {}", id, user.id)
    pkg = await service.update_submission(id, upload, fields, user, icon=icon)
    return success(to_json(pkg, get_settings().SERVER_URL))
