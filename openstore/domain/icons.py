# openstore/domain/icons.py
"""
Local cache of package icons.

Icons are stored in DATA_DIR under the SHA-256 of their source URL. Every
submission uploads its icon under a fresh key, so a new icon gets a new cache
entry and stale entries are never served for a newer version.
"""
import hashlib
import os
import uuid
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

import requests
from loguru import logger

from ..core.config import get_settings

ICON_EXTENSIONS = (".png", ".svg", ".jpg", ".jpeg", ".gif")


def icon_id(raw: str) -> str:
    """Strip the image extension clients append to the package id."""
    for ext in ICON_EXTENSIONS:
        if raw.endswith(ext):
            return raw[: -len(ext)]
    return raw


@dataclass
class IconCache:
    root: str
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def path_for(self, url: str) -> str:
        ext = os.path.splitext(urlparse(url).path)[1].lower()
        if ext not in ICON_EXTENSIONS:
            ext = ".png"
        return os.path.join(self.root, hashlib.sha256(url.encode("utf-8")).hexdigest() + ext)

    def fetch(self, url: str) -> Optional[str]:
        """Cached file for url, downloading it on a miss; None when unavailable."""
        path = self.path_for(url)
        if os.path.exists(path):
            return path

        try:
            resp = self.session.get(url, timeout=self.timeout, stream=True)
            resp.raise_for_status()
            os.makedirs(self.root, exist_ok=True)
            partial = f"{path}.{uuid.uuid4().hex}.partial"
            with open(partial, "wb") as f:
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    f.write(chunk)
            os.replace(partial, path)
        except (requests.RequestException, OSError) as e:
            logger.warning("Could not fetch icon {}: {}", url, e)
            return None
        logger.debug("Cached icon {} as {}", url, path)
        return path


_cache: IconCache | None = None

def get_icon_cache() -> IconCache:
    global _cache
    if _cache is None:
        s = get_settings()
        _cache = IconCache(s.DATA_DIR, timeout=s.ICON_FETCH_TIMEOUT_S)
    return _cache


def reset_icon_cache() -> None:
    global _cache
    _cache = None
