# openstore/api/v1/health.py
from fastapi import APIRouter

from ...core.config import get_settings
from ..responses import success

router = APIRouter()


@router.get("/api/health")
def health():
    return success({"id": get_settings().WORKER_ID})
