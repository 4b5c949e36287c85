# tests/conftest.py
import os
import tempfile

# must be set before the engine is first initialised
_DB_DIR = tempfile.mkdtemp(prefix="intentions-test-")
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{os.path.join(_DB_DIR, 'test.sqlite3')}")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

import boto3  # noqa: E402
import pytest  # noqa: E402
from moto import mock_aws  # noqa: E402
from app import create_app  # noqa: E402
from models.base import Base, init_engine_and_session  # noqa: E402
from services.asset_migration import AssetMigrator  # noqa: E402
from services.reconciliation import ReconciliationEngine  # noqa: E402
from services.storage import ObjectStorage  # noqa: E402
from tests.utils import BUCKET, PUBLIC_BASE, WEBHOOK_SECRET, FakeLookup  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _set_env():
    os.environ.setdefault("APP_ENV", "test")
    os.environ.setdefault("METRICS_ENABLED", "1")
    os.environ.setdefault("AUTO_CREATE_SCHEMA", "1")
    yield


@pytest.fixture(scope="session")
def app():
    return create_app({
        "TESTING": True,
        "MP_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "MP_ACCESS_TOKEN": "test-token",
        "STORAGE_BUCKET": BUCKET,
        "STORAGE_REGION": "us-east-1",
        "ASSET_PUBLIC_BASE_URL": PUBLIC_BASE,
    })


@pytest.fixture(scope="session")
def db_engine(app):
    engine, _Session = init_engine_and_session()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(autouse=True)
def _db_clean(db_engine):
    with db_engine.begin() as conn:
        for t in reversed(Base.metadata.sorted_tables):
            conn.execute(t.delete())
    yield


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture
def storage():
    with mock_aws():
        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket=BUCKET)
        yield ObjectStorage(BUCKET, client=s3)


@pytest.fixture
def migrator(storage):
    return AssetMigrator(storage, PUBLIC_BASE, max_workers=4)


@pytest.fixture
def lookup():
    return FakeLookup()


@pytest.fixture
def engine(app, lookup, migrator, monkeypatch):
    """Reconciliation engine wired to the fake lookup + mocked S3, installed in the app."""
    eng = ReconciliationEngine(lookup, migrator)
    monkeypatch.setitem(app.extensions, "reconciliation_engine", eng)
    return eng
