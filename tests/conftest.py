import os
import sys
import tempfile
from pathlib import Path

import httpx
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# settings and the password context are built at import time
_DEFAULT_DB_DIR = tempfile.mkdtemp(prefix="examify-tests-")
os.environ["SQLALCHEMY_DATABASE_URL"] = f"sqlite+aiosqlite:///{_DEFAULT_DB_DIR}/default.db"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SESSION_BACKEND"] = "memory"
for key in ("CDN_ENDPOINT", "CDN_BUCKET", "CHUNK_RETENTION_HOURS"):
    os.environ.pop(key, None)

from app.core.config import Settings
from app.database import build_engine, build_session_maker, get_db, init_db
from app.dependencies import init_services

PASSWORD = "correct-horse"


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        SQLALCHEMY_DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path}/examify.db",
        RECOVERY_DIR=tmp_path / "recovery",
        BLOB_CHUNK_SIZE=1024,
        STORE_CONNECT_RETRIES=2,
        STORE_CONNECT_BACKOFF=0.01,
        CDN_ENDPOINT="https://cdn.example.test",
        CDN_BUCKET="examify-test",
        CDN_PUBLIC_BASE_URL="https://files.example.test",
    )


@pytest.fixture
async def engine(test_settings):
    engine = build_engine(test_settings.DATABASE_URL)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def services(test_settings, session_maker):
    svc = init_services(test_settings, session_maker)
    assert await svc.blob_store.connect()
    return svc


@pytest.fixture
def cdn_uploads(services):
    """Capture CDN puts instead of talking to S3"""
    uploads = []

    def fake_put_object(key, data, metadata):
        uploads.append({"key": key, "data": data, "metadata": metadata})

    services.cdn._put_object = fake_put_object
    return uploads


@pytest.fixture
async def make_client(services, session_maker):
    from main import app

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    clients = []

    async def factory():
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()


@pytest.fixture
async def client(make_client):
    return await make_client()


async def register(client, user_id, role="student", name=None):
    response = await client.post("/api/auth/register", json={
        "userId": user_id,
        "password": PASSWORD,
        "name": name or user_id.title(),
        "role": role,
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
async def student_client(make_client):
    client = await make_client()
    await register(client, "alice", name="Alice Kim")
    return client


@pytest.fixture
async def instructor_client(make_client):
    client = await make_client()
    await register(client, "prof", role="instructor", name="Prof Lee")
    return client
