# openstore/api/v1/apps.py
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from ... import deps
from ...core.config import get_settings
from ...domain import repos
from ...domain.schemas import to_json
from ..responses import error, success

router = APIRouter()


def _split(values: Optional[List[str]]) -> List[str]:
    # accepts both ?types=app&types=scope and ?types=app,scope
    out: List[str] = []
    for value in values or []:
        out.extend(v.strip() for v in value.split(",") if v.strip())
    return out


async def _search(
    repo: repos.PackageRepo,
    types: Optional[List[str]],
    frameworks: Optional[str],
    architecture: Optional[str],
    limit: Optional[int],
    skip: Optional[int],
) -> Tuple[int, List[dict]]:
    s = get_settings()
    page_size = min(limit, s.MAX_PAGE_SIZE) if limit else None
    total, pkgs = await run_in_threadpool(
        repo.search,
        _split(types) or None,
        _split([frameworks]) if frameworks else None,
        architecture,
        page_size,
        skip,
    )
    return total, [to_json(p, s.SERVER_URL) for p in pkgs]


@router.get("/api/apps")
async def list_apps(types: Optional[List[str]] = Query(default=None),
                    frameworks: Optional[str] = None,
                    architecture: Optional[str] = None,
                    limit: Optional[int] = Query(default=None, ge=1),
                    skip: Optional[int] = Query(default=None, ge=0),
                    repo: repos.PackageRepo = Depends(deps.get_repo)):
    _, packages = await _search(repo, types, frameworks, architecture, limit, skip)
    return success(packages)


@router.get("/api/v1/apps")
async def list_apps_v1(types: Optional[List[str]] = Query(default=None),
                       frameworks: Optional[str] = None,
                       architecture: Optional[str] = None,
                       limit: Optional[int] = Query(default=None, ge=1),
                       skip: Optional[int] = Query(default=None, ge=0),
                       repo: repos.PackageRepo = Depends(deps.get_repo)):
    total, packages = await _search(repo, types, frameworks, architecture, limit, skip)
    return success({"count": total, "packages": packages})


@router.get("/repo/repolist.json")
async def repolist(repo: repos.PackageRepo = Depends(deps.get_repo)):
    """Flat list consumed by older store clients."""
    _, packages = await _search(repo, None, None, None, None, None)
    return {"success": True, "message": None, "packages": packages}


@router.get("/api/apps/{id}")
@router.get("/api/v1/apps/{id}")
async def get_app(id: str, repo: repos.PackageRepo = Depends(deps.get_repo)):
    pkg = await run_in_threadpool(repo.get_published, id)
    if pkg is None:
        return error("App not found", 404)
    return success(to_json(pkg, get_settings().SERVER_URL))
