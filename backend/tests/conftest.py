import os
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import SessionClaims, issue_session_token
from app.core.config import settings
from app.core.database import build_engine
from app.core.email import EmailSender, OutgoingEmail
from app.core.passwords import hash_password
from app.models.base import Base, utcnow
from app.models.user import User

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

# Strong enough for validate_password_strength()
TEST_PASSWORD = "Correct-Horse-1"  # nosec B105


class FakeEmailSender(EmailSender):
    """Records every message instead of sending it.

    Attributes:
        sent: Messages handed to send(), in order.
        fail: When True, send() reports failure.
    """

    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[OutgoingEmail] = []
        self.fail = fail

    async def send(self, email: OutgoingEmail) -> bool:
        self.sent.append(email)
        return not self.fail

    def subjects(self) -> list[str]:
        return [e.subject for e in self.sent]


def create_session_token(
    user: User,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a session token for ``user`` as signin would."""
    claims = SessionClaims(
        id=str(user.id),
        email=user.email,
        is_verified=user.is_verified,
        name=user.name,
        image=user.image,
    )
    return issue_session_token(claims, secret=secret, expires_delta=expires_delta)


@pytest.fixture(autouse=True)
def test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Deterministic settings for every test.

    Cheap bcrypt, a known signing secret, non-Secure cookies (the test client
    talks plain http) and no mail redirection.
    """
    monkeypatch.setattr(settings, "auth_secret", SecretStr(TEST_AUTH_SECRET))
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)
    monkeypatch.setattr(settings, "auth_cookie_secure", False)
    monkeypatch.setattr(settings, "auth_cookie_domain", "")
    monkeypatch.setattr(settings, "auth_detailed_login_errors", True)
    monkeypatch.setattr(settings, "email_dev_recipient", "")
    monkeypatch.setattr(settings, "environment", "test")
    monkeypatch.setattr(settings, "frontend_url", "http://frontend.test")
    monkeypatch.setattr(settings, "backend_url", "http://api.test")


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Rate limiting is tested separately; disable for other tests to avoid
    flaky failures from rate limit triggers.
    """
    from app.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False
    yield
    limiter.enabled = original_enabled


@pytest.fixture
def database_url(tmp_path) -> str:
    """TEST_DATABASE_URL when set, else a throwaway SQLite file per test."""
    return os.environ.get(
        "TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'authflow.db'}"
    )


@pytest_asyncio.fixture
async def db_engine(database_url: str):
    """Create test database engine with a fresh schema."""
    engine = build_engine(database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


MakeUser = Callable[..., Awaitable[User]]


@pytest.fixture
def make_user(db_session: AsyncSession) -> MakeUser:
    """Factory that inserts and commits a user.

    Defaults to a verified credential account with TEST_PASSWORD.
    """

    async def _make(
        email: str = "user@example.com",
        *,
        password: str | None = TEST_PASSWORD,
        is_verified: bool = True,
        name: str | None = "Test User",
        verification_token: str | None = None,
        image: str | None = None,
        image_source: str | None = None,
    ) -> User:
        user = User(
            email=email.lower(),
            name=name,
            password_hash=await hash_password(password) if password else None,
            is_verified=is_verified,
            email_verified=utcnow() if is_verified else None,
            verification_token=verification_token,
            image=image,
            image_source=image_source,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest_asyncio.fixture
async def unauthenticated_client(
    session_factory: async_sessionmaker[AsyncSession],
    email_sender: FakeEmailSender,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test database and fake email sender."""
    from app.core.database import get_db
    from app.core.email import get_email_sender
    from app.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_user(make_user: MakeUser) -> User:
    """Verified credential user."""
    return await make_user()


@pytest_asyncio.fixture
async def client(
    unauthenticated_client: AsyncClient, test_user: User
) -> AsyncClient:
    """HTTP client carrying a valid session cookie for test_user."""
    unauthenticated_client.cookies.set(
        settings.auth_cookie_name, create_session_token(test_user)
    )
    return unauthenticated_client
