# openstore/pipeline/checksum.py
import hashlib

from starlette.concurrency import run_in_threadpool

DEFAULT_ALGORITHM = "sha512"
_CHUNK_SIZE = 64 * 1024


def file_checksum(path: str, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Hex digest of the file's full byte content."""
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


async def checksum(path: str, algorithm: str = DEFAULT_ALGORITHM) -> str:
    return await run_in_threadpool(file_checksum, path, algorithm)
