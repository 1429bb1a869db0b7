# openstore/domain/schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .models import Package


class Envelope(BaseModel):
    success: bool
    data: Any = None
    message: Optional[str] = None


class PackageOut(BaseModel):
    id: str
    name: str
    version: str
    architecture: str
    architectures: List[str] = []
    framework: str = ""
    types: List[str] = []
    maintainer: Optional[str] = None
    maintainer_name: Optional[str] = None
    published: bool = False
    download: str
    download_sha512: str = ""
    filesize: int = 0
    icon: str = ""
    downloads: Dict[str, int] = {}
    total_downloads: int = 0
    description: str = ""
    tagline: str = ""
    category: str = ""
    license: str = ""
    source: str = ""
    support_url: str = ""
    donate_url: str = ""
    video_url: str = ""
    changelog: str = ""
    keywords: List[str] = []
    screenshots: List[str] = []
    manifest: Dict[str, Any] = {}
    published_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None


def download_filename(pkg: Package) -> str:
    ext = ".snap" if "snappy" in pkg.types else ".click"
    arch = pkg.architecture if len(pkg.architectures) <= 1 else "multi"
    return f"{pkg.id}_{pkg.version}_{arch}{ext}"


def to_json(pkg: Package, server_url: str) -> Dict[str, Any]:
    """Public representation of a package; binary and icon go through our own endpoints."""
    server = server_url.rstrip("/")
    out = PackageOut(
        id=pkg.id,
        name=pkg.title or pkg.id,
        version=pkg.version,
        architecture=pkg.architecture,
        architectures=pkg.architectures,
        framework=pkg.framework,
        types=pkg.types,
        maintainer=pkg.maintainer,
        maintainer_name=pkg.maintainer_name,
        published=pkg.published,
        download=f"{server}/api/download/{pkg.id}/{download_filename(pkg)}",
        download_sha512=pkg.download_sha512,
        filesize=pkg.filesize,
        icon=f"{server}/api/icon/{pkg.version}/{pkg.id}.png" if pkg.icon else "",
        downloads=pkg.downloads,
        total_downloads=sum(pkg.downloads.values()),
        description=pkg.description,
        tagline=pkg.tagline,
        category=pkg.category,
        license=pkg.license,
        source=pkg.source,
        support_url=pkg.support_url,
        donate_url=pkg.donate_url,
        video_url=pkg.video_url,
        changelog=pkg.changelog,
        keywords=pkg.keywords,
        screenshots=pkg.screenshots,
        manifest=pkg.manifest,
        published_date=pkg.published_date,
        updated_date=pkg.updated_date,
    )
    return out.model_dump(mode="json")
