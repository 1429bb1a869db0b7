# openstore/domain/repos.py
"""
Registry Store: durable keyed storage for package records.

All writes are single statements or single transactions so that the
database, not the application, arbitrates between concurrent writers:

- insert() relies on the primary key on packages.id; the constraint
  violation raised for the second writer becomes DuplicatePackage.
- update() is a conditional UPDATE on (id, revision); a writer whose merge
  started from a stale revision gets ConcurrentUpdate instead of silently
  overwriting the other writer's merge.
- increment_download() bumps counters in SQL, never read-modify-write.
"""
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..core.database import get_db
from ..core.security import hash_api_key
from .db_models import DownloadCountModel, PackageModel, UserModel
from .errors import ErrorKind, SubmissionError
from .models import Package, User, version_key

DEFAULT_TYPES = ("app", "webapp", "scope")

# Never written by update(): identity and creation bookkeeping
_IMMUTABLE_COLUMNS = {"id", "published_date", "revision", "downloads"}


def get_repo():
    return PackageRepo()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _columns(pkg: Package) -> Dict:
    values = asdict(pkg)
    values.pop("downloads", None)
    return values


class PackageRepo:
    # ------------------------------------------------------------------ reads

    def _downloads(self, session, pids: Iterable[str]) -> Dict[str, Dict[str, int]]:
        pids = list(pids)
        result: Dict[str, Dict[str, int]] = {pid: {} for pid in pids}
        if not pids:
            return result
        rows = session.execute(
            select(DownloadCountModel).where(DownloadCountModel.package_id.in_(pids))
        ).scalars().all()
        for row in rows:
            result[row.package_id][row.version_key] = row.count
        return result

    def _to_domain(self, session, models: List[PackageModel]) -> List[Package]:
        downloads = self._downloads(session, [m.id for m in models])
        return [m.to_domain(downloads[m.id]) for m in models]

    def get(self, pid: str) -> Optional[Package]:
        with get_db() as session:
            model = session.get(PackageModel, pid)
            if model is None:
                return None
            return self._to_domain(session, [model])[0]

    def get_published(self, pid: str) -> Optional[Package]:
        pkg = self.get(pid)
        if pkg is None or not pkg.published:
            return None
        return pkg

    def list_by_maintainer(self, maintainer: Optional[str]) -> List[Package]:
        """All packages of one maintainer, or every package when maintainer is None."""
        with get_db() as session:
            stmt = select(PackageModel).order_by(PackageModel.title, PackageModel.id)
            if maintainer is not None:
                stmt = stmt.where(PackageModel.maintainer == maintainer)
            return self._to_domain(session, list(session.execute(stmt).scalars().all()))

    def search(
        self,
        types: Optional[List[str]] = None,
        frameworks: Optional[List[str]] = None,
        architecture: Optional[str] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> Tuple[int, List[Package]]:
        """Published packages matching the filters; returns (total, page)."""
        wanted_types = set(types or DEFAULT_TYPES)
        architectures = None
        if architecture:
            architectures = {architecture}
            if architecture != "all":
                architectures.add("all")

        with get_db() as session:
            stmt = select(PackageModel).where(PackageModel.published.is_(True))
            if frameworks:
                stmt = stmt.where(PackageModel.framework.in_(frameworks))
            stmt = stmt.order_by(PackageModel.title, PackageModel.id)
            models = session.execute(stmt).scalars().all()

            matched = []
            for m in models:
                if not wanted_types.intersection(m.types or []):
                    continue
                if architectures is not None:
                    candidates = set(m.architectures or []) | {m.architecture}
                    if not architectures.intersection(candidates):
                        continue
                matched.append(m)

            total = len(matched)
            start = max(skip or 0, 0)
            end = start + limit if limit else None
            return total, self._to_domain(session, matched[start:end])

    # ----------------------------------------------------------------- writes

    def insert(self, pkg: Package) -> Package:
        """Atomic create: the primary key rejects a second record with the same id."""
        values = _columns(pkg)
        now = _now()
        values.update(revision=1, published_date=now, updated_date=now)
        try:
            with get_db() as session:
                session.add(PackageModel(**values))
        except IntegrityError as e:
            logger.info("Insert of package {} rejected by uniqueness constraint", pkg.id)
            raise SubmissionError(ErrorKind.DUPLICATE_PACKAGE) from e

        stored = self.get(pkg.id)
        assert stored is not None
        return stored

    def update(self, pkg: Package, expected_revision: int) -> Package:
        """Conditional write: succeeds only if nobody persisted since expected_revision."""
        values = {k: v for k, v in _columns(pkg).items() if k not in _IMMUTABLE_COLUMNS}
        values.update(revision=expected_revision + 1, updated_date=_now())
        with get_db() as session:
            result = session.execute(
                update(PackageModel)
                .where(PackageModel.id == pkg.id, PackageModel.revision == expected_revision)
                .values(**values)
            )
            if result.rowcount == 0:
                exists = session.get(PackageModel, pkg.id) is not None
                if not exists:
                    raise SubmissionError(ErrorKind.NOT_FOUND)
                raise SubmissionError(ErrorKind.CONCURRENT_UPDATE, package_id=pkg.id)

        stored = self.get(pkg.id)
        assert stored is not None
        return stored

    def increment_download(self, pid: str, version: str, attempts: int = 3) -> None:
        key = version_key(version)
        for attempt in range(attempts):
            try:
                with get_db() as session:
                    result = session.execute(
                        update(DownloadCountModel)
                        .where(
                            DownloadCountModel.package_id == pid,
                            DownloadCountModel.version_key == key,
                        )
                        .values(count=DownloadCountModel.count + 1)
                    )
                    if result.rowcount == 0:
                        session.add(DownloadCountModel(package_id=pid, version_key=key, count=1))
                return
            except IntegrityError:
                # another request created the counter first; retry as an UPDATE
                logger.debug("Download counter {}/{} created concurrently, retrying", pid, key)
        raise SubmissionError(ErrorKind.STORAGE_FAILURE, package_id=pid)

    # ------------------------------------------------------------------ users

    def get_user_by_api_key(self, api_key: str) -> Optional[User]:
        with get_db() as session:
            model = session.execute(
                select(UserModel).where(UserModel.api_key_hash == hash_api_key(api_key))
            ).scalar_one_or_none()
            return model.to_domain() if model else None

    def upsert_user(self, user_id: str, name: str, role: str, api_key: str) -> User:
        with get_db() as session:
            model = session.get(UserModel, user_id)
            if model is None:
                model = UserModel(id=user_id)
                session.add(model)
            model.name = name
            model.role = role
            model.api_key_hash = hash_api_key(api_key)
            return model.to_domain()

    def get_user(self, user_id: str) -> Optional[User]:
        with get_db() as session:
            model = session.get(UserModel, user_id)
            return model.to_domain() if model else None
