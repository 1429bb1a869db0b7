import pytest
from fastapi.testclient import TestClient

from openstore.core.config import reset_settings
from openstore.core.database import dispose_engine, init_db
from openstore.domain.icons import reset_icon_cache
from openstore.domain.models import ADMIN, COMMUNITY, TRUSTED
from openstore.domain.repos import PackageRepo
from openstore.domain.storage import reset_blob_store
from tests.helpers import APPROVE_REPORT, make_review_script


def _reset_singletons():
    reset_settings()
    dispose_engine()
    reset_blob_store()
    reset_icon_cache()


@pytest.fixture
def settings_env(tmp_path, monkeypatch):
    """Point every setting that touches disk at tmp_path and start with a fresh registry."""
    approve = make_review_script(tmp_path, APPROVE_REPORT, name="approve-review")
    monkeypatch.setenv("DB_URL", f"sqlite:///{tmp_path / 'registry.db'}")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("BLOB_ROOT", str(tmp_path / "blobs"))
    monkeypatch.setenv("BLOB_BASE_URL", "http://testserver/blobs")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "icons"))
    monkeypatch.setenv("SERVER_URL", "http://testserver")
    monkeypatch.setenv("WORKER_ID", "worker-7")
    monkeypatch.setenv("CLICK_REVIEW_COMMAND", approve)
    monkeypatch.setenv("SNAP_REVIEW_COMMAND", approve)
    monkeypatch.delenv("ADMIN_API_KEY", raising=False)
    _reset_singletons()
    init_db()
    yield tmp_path
    _reset_singletons()


@pytest.fixture
def repo(settings_env):
    return PackageRepo()


@pytest.fixture
def users(repo):
    """One user per role; each API key is '<id>-key'."""
    return {
        "admin": repo.upsert_user("admin", "Admin", ADMIN, "admin-key"),
        "trusted": repo.upsert_user("trusty", "Trusty", TRUSTED, "trusty-key"),
        "alice": repo.upsert_user("alice", "Alice", COMMUNITY, "alice-key"),
        "bob": repo.upsert_user("bob", "Bob", COMMUNITY, "bob-key"),
    }


@pytest.fixture
def app(settings_env):
    from openstore.main import create_app
    return create_app()


@pytest.fixture
def client(app, users):
    with TestClient(app) as c:
        yield c
