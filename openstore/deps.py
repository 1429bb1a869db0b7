# openstore/deps.py
from __future__ import annotations

from fastapi import Depends, HTTPException, Header, Query

from .domain import icons, repos, storage
from .domain.icons import IconCache
from .domain.models import User
from .pipeline.submission import SubmissionService


def get_repo() -> repos.PackageRepo:
    return repos.get_repo()

def get_blob_store() -> storage.BlobStore:
    return storage.get_blob_store()

def get_submission_service(
    repo: repos.PackageRepo = Depends(get_repo),
    blobs: storage.BlobStore = Depends(get_blob_store),
) -> SubmissionService:
    return SubmissionService(repo, blobs)

def require_user(
    apikey: str | None = Query(default=None),
    x_authorization: str | None = Header(default=None, alias="X-Authorization"),
    repo: repos.PackageRepo = Depends(get_repo),
) -> User:
    key = apikey or x_authorization
    if not key:
        raise HTTPException(status_code=401, detail="Missing API key")
    user = repo.get_user_by_api_key(key)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user

def get_icon_cache() -> IconCache:
    return icons.get_icon_cache()
