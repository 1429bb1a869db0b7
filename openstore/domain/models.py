# openstore/domain/models.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

ADMIN = "admin"
TRUSTED = "trusted"
COMMUNITY = "community"


@dataclass
class User:
    id: str
    name: str
    role: str = COMMUNITY

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN

    @property
    def is_admin_or_trusted(self) -> bool:
        return self.role in (ADMIN, TRUSTED)


@dataclass
class Package:
    id: str = ""
    version: str = ""
    architecture: str = ""
    architectures: List[str] = field(default_factory=list)
    framework: str = ""
    types: List[str] = field(default_factory=list)
    maintainer: str | None = None
    maintainer_name: str | None = None
    published: bool = False
    downloads: Dict[str, int] = field(default_factory=dict)
    download_sha512: str = ""
    package: str = ""
    filesize: int = 0
    icon: str = ""
    manifest: Dict[str, Any] = field(default_factory=dict)
    title: str = ""
    description: str = ""
    tagline: str = ""
    category: str = ""
    license: str = ""
    source: str = ""
    support_url: str = ""
    donate_url: str = ""
    video_url: str = ""
    changelog: str = ""
    keywords: List[str] = field(default_factory=list)
    screenshots: List[str] = field(default_factory=list)
    revision: int = 0
    published_date: datetime | None = None
    updated_date: datetime | None = None


def version_key(version: str) -> str:
    """Key of a version in Package.downloads, e.g. 1.0.2 -> v1__0__2."""
    return "v" + version.replace(".", "__")
