# openstore/domain/db_models.py
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Boolean, Text, JSON, DateTime, ForeignKey
from sqlalchemy.ext.declarative import declarative_base

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PackageModel(Base):
    __tablename__ = "packages"

    # primary key doubles as the create-time uniqueness constraint
    id = Column(String, primary_key=True)
    version = Column(String, nullable=False)
    architecture = Column(String, nullable=False, default="")
    architectures = Column(JSON, nullable=False, default=list)
    framework = Column(String, nullable=False, default="")
    types = Column(JSON, nullable=False, default=list)
    maintainer = Column(String, nullable=True, index=True)
    maintainer_name = Column(String, nullable=True)
    published = Column(Boolean, nullable=False, default=False)
    download_sha512 = Column(String, nullable=False, default="")
    package = Column(String, nullable=False, default="")
    filesize = Column(Integer, nullable=False, default=0)
    icon = Column(String, nullable=False, default="")
    manifest = Column(JSON, nullable=False, default=dict)
    title = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    tagline = Column(String, nullable=False, default="")
    category = Column(String, nullable=False, default="")
    license = Column(String, nullable=False, default="")
    source = Column(String, nullable=False, default="")
    support_url = Column(String, nullable=False, default="")
    donate_url = Column(String, nullable=False, default="")
    video_url = Column(String, nullable=False, default="")
    changelog = Column(Text, nullable=False, default="")
    keywords = Column(JSON, nullable=False, default=list)
    screenshots = Column(JSON, nullable=False, default=list)
    revision = Column(Integer, nullable=False, default=1)
    published_date = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_date = Column(DateTime(timezone=True), nullable=False, default=_now)

    def to_domain(self, downloads=None):
        """Convert database model to domain Package"""
        from .models import Package
        return Package(
            id=self.id,
            version=self.version,
            architecture=self.architecture,
            architectures=list(self.architectures or []),
            framework=self.framework,
            types=list(self.types or []),
            maintainer=self.maintainer,
            maintainer_name=self.maintainer_name,
            published=self.published,
            downloads=dict(downloads or {}),
            download_sha512=self.download_sha512,
            package=self.package,
            filesize=self.filesize,
            icon=self.icon,
            manifest=dict(self.manifest or {}),
            title=self.title,
            description=self.description,
            tagline=self.tagline,
            category=self.category,
            license=self.license,
            source=self.source,
            support_url=self.support_url,
            donate_url=self.donate_url,
            video_url=self.video_url,
            changelog=self.changelog,
            keywords=list(self.keywords or []),
            screenshots=list(self.screenshots or []),
            revision=self.revision,
            published_date=self.published_date,
            updated_date=self.updated_date,
        )


class DownloadCountModel(Base):
    __tablename__ = "package_downloads"

    package_id = Column(String, ForeignKey("packages.id", ondelete="CASCADE"), primary_key=True)
    version_key = Column(String, primary_key=True)
    count = Column(Integer, nullable=False, default=0)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False)
    api_key_hash = Column(String, nullable=False, unique=True, index=True)

    def to_domain(self):
        from .models import User
        return User(id=self.id, name=self.name, role=self.role)
