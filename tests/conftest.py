import io
import os
import re
from datetime import timedelta

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("REFRESH_SECRET_KEY", "test-refresh-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./unused.db")
os.environ.setdefault("GCP_KEY_FILE", "")

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from app.core.database import Database, get_db
from app.core.mailer import get_mailer
from app.core.security import (ACCESS_COOKIE, create_access_token,
                               hash_password, session_claims)
from app.core.storage import get_storage
from app.core.utils import generate_uuid
from app.main import app
from app.models.user import User

PASSWORD = "Secret123!"


class InMemoryStorage:
    bucket_name = "test-bucket"

    def __init__(self):
        self.objects = {}
        self.content_types = {}
        self.public = set()

    def public_url(self, key):
        return f"https://storage.googleapis.com/{self.bucket_name}/{key}"

    async def upload(self, key, data, content_type=None):
        self.objects[key] = data
        self.content_types[key] = content_type

    async def delete(self, key):
        self.objects.pop(key, None)

    async def list(self, prefix, delimiter=None):
        names = sorted(k for k in self.objects if k.startswith(prefix))
        if delimiter:
            names = [k for k in names if delimiter not in k[len(prefix):]]
        return names

    async def delete_prefix(self, prefix):
        names = await self.list(prefix)
        for name in names:
            del self.objects[name]
        return len(names)

    async def exists(self, key):
        return key in self.objects

    async def size(self, key):
        return len(self.objects[key]) if key in self.objects else None

    async def read(self, key):
        return self.objects[key]

    async def copy(self, source, destination):
        self.objects[destination] = self.objects[source]

    async def signed_upload_url(self, key, content_type, minutes):
        return f"https://signed.test/{key}?contentType={content_type}&minutes={minutes}"

    async def make_public(self, key):
        self.public.add(key)
        return True

    def keys_under(self, prefix):
        return sorted(k for k in self.objects if k.startswith(prefix))


class RecordingMailer:
    def __init__(self):
        self.sent = []

    async def send(self, to, subject, text, html=None):
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})

    def last_code(self, email):
        for mail in reversed(self.sent):
            if mail["to"] == email:
                return re.search(r"code is: (\w+)", mail["text"]).group(1)
        raise AssertionError(f"no mail sent to {email}")


@pytest.fixture
async def database(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await database.create_all()
    yield database
    await database.reset()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
async def client(database, storage, mailer):
    async def override_get_db():
        async with database.session() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_mailer] = lambda: mailer
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(database):
    async def _make_user(nom="MARTIN", prenom="alice", role="user", email=None, verified=True):
        user = User(
            id=generate_uuid(),
            nom=nom,
            prenom=prenom,
            email=email or f"{prenom}.{nom.lower()}@example.com",
            password=hash_password(PASSWORD),
            is_verified=verified,
            role=role,
        )
        async with database.session() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


def login_as(client, user):
    token = create_access_token(session_claims(user), timedelta(minutes=5))
    client.cookies.set(ACCESS_COOKIE, token)


@pytest.fixture
async def admin(client, make_user):
    user = await make_user(nom="ADMIN", prenom="root", role="admin")
    login_as(client, user)
    return user


@pytest.fixture
def new_card(client):
    async def _new_card(repertoire="algebra"):
        resp = await client.post("/cards/admin", json={"repertoire": repertoire})
        assert resp.status_code == 201, resp.text
        return resp.json()["result"]

    return _new_card


def png_bytes(size=(64, 64), color="red"):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()
