import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.clients.local_client import create_local_client
from app.database import Base
from app.main import app
from app.middleware.auth_middleware import get_registry
from app.models.auth_user import AuthUser
from app.models.profile import UserProfile
from app.services.auth_service import hash_password
from app.services.viewer_context import ViewerContextRegistry
from tests.helpers import TEST_PASSWORD

TEST_DB_URL = "sqlite:///./test_taskboard.db"

engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False})
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def session_factory():
    return TestingSession


@pytest.fixture
def registry(session_factory):
    return ViewerContextRegistry(lambda: create_local_client(session_factory))


@pytest.fixture
def make_client(registry):
    """브라우저 하나에 해당하는 TestClient를 만든다. 클라이언트마다 쿠키(viewer 컨텍스트)가 분리된다."""
    app.dependency_overrides[get_registry] = lambda: registry
    yield lambda: TestClient(app)
    app.dependency_overrides.pop(get_registry, None)


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def seed_accounts(db):
    accounts = {
        "employee": ("emp1@company.com", "Jane Kim", "employee"),
        "employee2": ("emp2@company.com", "Min Park", "employee"),
        "manager": ("boss@company.com", "Chris Lee", "manager"),
    }
    users = {}
    for key, (email, full_name, role) in accounts.items():
        user = AuthUser(email=email, password_hash=hash_password(TEST_PASSWORD), user_metadata={"full_name": full_name})
        db.add(user)
        db.flush()
        db.add(UserProfile(user_id=user.id, full_name=full_name, role=role))
        users[key] = user
    db.commit()
    for u in users.values():
        db.refresh(u)
    return users
