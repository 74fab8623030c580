import os
import sys
import shutil
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Tests use an in-memory SQLite DB and a throwaway uploads root
os.environ.setdefault("DATABASE_URL", "sqlite://")
UPLOAD_ROOT = Path(tempfile.mkdtemp(prefix="volmed-uploads-"))
os.environ["UPLOAD_ROOT"] = str(UPLOAD_ROOT)
os.environ["STAGING_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ.setdefault("UPLOAD_RATE_LIMIT", "1000/minute")

# Ensure the project root is on sys.path so `import volmed` works when running
# pytest from the repository root.
ROOT_DIR = Path(__file__).resolve().parents[2]  # repository root
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from volmed.app import app
from volmed.db.session import Base, get_db
from volmed.middleware.rate_limit import reset_limiter
from volmed.models.patient import Patient
from volmed.services.storage import DocumentStore, StorageSettings, get_document_store


# In-memory SQLite shared across connections
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def create_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    shutil.rmtree(UPLOAD_ROOT, ignore_errors=True)


def _override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = _override_get_db

# Code paths that import SessionLocal directly use the test engine/session
import volmed.db.session as session_mod
session_mod.engine = engine
session_mod.SessionLocal = TestingSessionLocal


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    reset_limiter()
    yield


@pytest.fixture(autouse=True)
def clean_uploads():
    yield
    shutil.rmtree(UPLOAD_ROOT / "patients", ignore_errors=True)
    app.dependency_overrides.pop(get_document_store, None)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def app_store() -> DocumentStore:
    """The store the running app writes to."""
    return get_document_store()


@pytest.fixture
def store(tmp_path) -> DocumentStore:
    """An isolated store rooted in the test's tmp_path."""
    return DocumentStore(StorageSettings(upload_root=tmp_path / "uploads"))


@pytest.fixture
def make_patient(db_session):
    def _make(name: str = "Test Patient", patient_id=None) -> int:
        if patient_id is not None:
            existing = db_session.get(Patient, patient_id)
            if existing is not None:
                return existing.id
        patient = Patient(id=patient_id, name=name)
        db_session.add(patient)
        db_session.commit()
        return patient.id
    return _make
