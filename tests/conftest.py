import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("SMTP_HOST", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from finacco.api.http.auth import get_mailer
from finacco.api.http.documents import get_exporter
from finacco.core.db import get_db, init_db
from finacco.db.repositories.profile_repository import ProfileRepository
from finacco.db.repositories.user_repository import UserRepository
from finacco.domains.identity.entities import User
from finacco.domains.profiles.entities import Profile
from finacco.domains.templates.entities import DocumentTemplate, TemplateField
from finacco.main import create_app

from fakes import FakeExporter, FakeMailer

PASSWORD = "secret123"


def make_engine():
    return create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


async def create_user(session_factory, email: str, password: str = PASSWORD, confirmed: bool = True, admin: bool = False) -> User:
    async with session_factory() as session:
        user = User.create_user(email, password, full_name="Test User")
        if confirmed:
            user.confirm_email()
        user = await UserRepository(session).create(user)
        profiles = ProfileRepository(session)
        await profiles.upsert(Profile.for_user(user.uuid, user.email, user.full_name))
        if admin:
            await profiles.set_admin(user.uuid, True)
        return user


@pytest.fixture
async def engine():
    engine = make_engine()
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mailer():
    return FakeMailer()


class ApiHarness:
    def __init__(self, app, client: TestClient, session_factory, mailer: FakeMailer):
        self.app = app
        self.client = client
        self.session_factory = session_factory
        self.mailer = mailer

    def run(self, fn, *args):
        """Run a coroutine function on the app's event loop."""
        return self.client.portal.call(fn, *args)

    def create_user(self, email: str, password: str = PASSWORD, confirmed: bool = True, admin: bool = False) -> User:
        async def _create():
            return await create_user(self.session_factory, email, password, confirmed, admin)
        return self.run(_create)

    def sign_in(self, email: str, password: str = PASSWORD) -> dict:
        response = self.client.post("/auth/sign-in", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def api(mailer):
    engine = make_engine()
    session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    app = create_app(use_lifespan=False)

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_exporter] = lambda: FakeExporter()

    with TestClient(app, follow_redirects=False) as client:
        client.portal.call(init_db, engine)
        yield ApiHarness(app, client, session_factory, mailer)
        client.portal.call(engine.dispose)


def _agreement_template(**kwargs) -> DocumentTemplate:
    fields = kwargs.pop("fields", None) or [
        TemplateField("party1", "First Party", required=True),
        TemplateField("party2", "Second Party", required=True),
    ]
    return DocumentTemplate.create(
        name=kwargs.pop("name", "Rental Agreement"),
        template_html=kwargs.pop("template_html", "Agreement between [party1] and [party2] on [current_date]."),
        fields=fields,
        **kwargs,
    )


@pytest.fixture
def make_template():
    return _agreement_template


@pytest.fixture
async def user(session_factory):
    return await create_user(session_factory, "user@example.com")
