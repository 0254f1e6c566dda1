import os
import sys
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

# Configure test environment before the app modules read it
_TMP = tempfile.mkdtemp(prefix='flock-tests-')
os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{_TMP}/flock.db"
os.environ.setdefault('JWT_SECRET', 'test-secret')
os.environ.setdefault('FLOCK_PUBLIC_ORIGIN', 'https://flock.test')

# Ensure the package root is on sys.path when pytest changes CWD to this tests dir
HERE = Path(__file__).resolve()
PKG_ROOT = HERE.parents[2]
if str(PKG_ROOT) not in sys.path:
    sys.path.insert(0, str(PKG_ROOT))

from httpx import AsyncClient, ASGITransport  # noqa: E402
from jose import jwt  # noqa: E402

from flock import core  # noqa: E402
from flock.auth import SECRET, ALGORITHM, RequestContext  # noqa: E402
from flock.errors import StorageError  # noqa: E402
from flock.main import app  # noqa: E402
from flock.models import Base, engine  # noqa: E402
from flock.storage import get_storage  # noqa: E402


class FakeStorage:
    """In-memory stand-in for StorageGateway with failure injection"""

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.put_failures = 0  # fail this many puts before succeeding
        self.put_status = 200
        self.delete_failures = set()  # keys whose delete fails
        self.presign_fails = False

    def public_path(self, bucket, key):
        return f'https://storage.test/{bucket}/{key}'

    async def put_object(self, ctx, bucket, key, data, content_type):
        self.calls.append(('put', bucket, key))
        if self.put_failures:
            self.put_failures -= 1
            raise StorageError('Failed to upload file', code='InternalError', status=500)
        if self.put_status != 200:
            raise StorageError('Failed to upload file', code='UPLOAD_REJECTED', status=self.put_status)
        self.objects[(bucket, key)] = (data, content_type)
        return {'ResponseMetadata': {'HTTPStatusCode': 200}}

    async def delete_object(self, ctx, bucket, key):
        self.calls.append(('delete', bucket, key))
        if key in self.delete_failures:
            raise StorageError('Failed to delete file', code='InternalError', status=500)
        self.objects.pop((bucket, key), None)
        return {}

    async def presign(self, ctx, bucket, key, ttl=3600):
        self.calls.append(('presign', bucket, key))
        if self.presign_fails:
            raise StorageError('Failed to generate presigned URL', code='SignatureDoesNotMatch', status=403)
        return f'https://storage.test/{bucket}/{key}?X-Amz-Expires={ttl}'

    async def list_buckets(self, ctx):
        return sorted({b for b, _ in self.objects} | {'covers', 'moments'})

    def keys(self, bucket):
        return sorted(k for b, k in self.objects if b == bucket)


class FakeRedis:
    def __init__(self):
        self.data = {}

    async def setex(self, key, ttl, value):
        self.data[key] = value if isinstance(value, bytes) else str(value).encode()

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def incrby(self, key, amount):
        value = int(self.data.get(key, b'0')) + amount
        self.data[key] = str(value).encode()
        return value


def make_token(user_id='user-1', **claims):
    return jwt.encode({'sub': user_id, **claims}, SECRET, algorithm=ALGORITHM)


def auth_headers(user_id='user-1'):
    return {'Authorization': f'Bearer {make_token(user_id)}'}


@pytest_asyncio.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    # pooled aiosqlite connections are bound to this test's loop
    await engine.dispose()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def ctx():
    return RequestContext(user_id='user-1')


@pytest.fixture
def other_ctx():
    return RequestContext(user_id='user-2')


@pytest.fixture
def fake_redis(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(core, 'REDIS', redis)
    return redis


@pytest_asyncio.fixture
async def client(db, storage):
    app.dependency_overrides[get_storage] = lambda: storage
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def headers():
    return auth_headers
