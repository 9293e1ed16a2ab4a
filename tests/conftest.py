import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from libledger.core.config import Settings, get_settings
from libledger.core.database import Base, get_db, make_engine
from libledger.main import app

ADMIN_TOKEN = "test-admin"


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", admin_token=ADMIN_TOKEN)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}", timeout=5)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory, settings):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}


class RecordingSink:
    def __init__(self):
        self.events = []

    def emit(self, person_id, title, message, severity="info", related_book_id=None):
        self.events.append((person_id, title, severity, related_book_id))


@pytest.fixture
def sink():
    return RecordingSink()
