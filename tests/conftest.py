"""Pytest configuration and fixtures."""

# Configure the service before any zhanwen_admin module reads settings
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENCRYPTION_KEY", "test-master-key")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")

from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Union

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from zhanwen_admin import models  # noqa: F401
from zhanwen_admin.api.deps import get_http_client
from zhanwen_admin.api.main import app
from zhanwen_admin.db.database import Base, get_db
from zhanwen_admin.models import ModelConfig, Provider
from zhanwen_admin.services.vault import CredentialVault, get_vault

# Point at a postgres service to exercise the real locking and partial index
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _engine_kwargs(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {}


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **_engine_kwargs(TEST_DATABASE_URL))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def vault() -> CredentialVault:
    """The process vault, keyed from the test ENCRYPTION_KEY."""
    return get_vault()


UpstreamReply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class UpstreamStub:
    """Scripted provider endpoint for ``httpx.MockTransport``.

    Replies are consumed in order; each is a response, an exception to raise,
    or a callable taking the request.
    """

    def __init__(self):
        self.replies: List[UpstreamReply] = []
        self.requests: List[httpx.Request] = []

    def queue(self, *replies: UpstreamReply) -> "UpstreamStub":
        self.replies.extend(replies)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.replies:
            return httpx.Response(500, json={"error": "no reply queued"})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply) and not isinstance(reply, httpx.Response):
            return reply(request)
        return reply

    @property
    def call_count(self) -> int:
        return len(self.requests)


def _completion(
    text: str = "卦象解读", request_id: str = "chatcmpl-1", tokens: int = 42
) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "id": request_id,
            "object": "chat.completion",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
            "usage": {"prompt_tokens": 30, "completion_tokens": 12, "total_tokens": tokens},
        },
    )


@pytest.fixture
def completion() -> Callable[..., httpx.Response]:
    """Factory for successful chat completions responses."""
    return _completion


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest_asyncio.fixture
async def http_client(upstream: UpstreamStub) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession, http_client: httpx.AsyncClient
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and upstream overrides."""
    from httpx import ASGITransport

    async def override_get_db():
        yield db_session

    async def override_get_http_client():
        yield http_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_http_client] = override_get_http_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def providers(db_session: AsyncSession) -> Dict[str, Provider]:
    """DeepSeek and OpenAI providers without stored credentials."""
    rows = {
        "deepseek": Provider(
            name="deepseek",
            display_name="DeepSeek",
            base_url="https://api.deepseek.com",
            supported_models=["deepseek-chat"],
        ),
        "openai": Provider(
            name="openai",
            display_name="OpenAI",
            base_url="https://api.openai.com/v1",
            supported_models=["gpt-4o"],
        ),
    }
    db_session.add_all(rows.values())
    await db_session.commit()
    return rows


@pytest.fixture
def make_model(db_session: AsyncSession, vault: CredentialVault):
    """Insert a ModelConfig row directly, encrypting ``api_key`` if given."""

    async def factory(
        provider: Provider,
        name: str,
        role: str = "secondary",
        priority: int = 100,
        api_key: Optional[str] = "sk-test-key-123456",
        **fields: Any,
    ) -> ModelConfig:
        model = ModelConfig(
            provider_id=provider.provider_id,
            name=name,
            display_name=fields.pop("display_name", name),
            role=role,
            priority=priority,
            parameters=fields.pop("parameters", {"temperature": 0.7, "max_tokens": 3000}),
            encrypted_credential=vault.encrypt(api_key) if api_key else None,
            **fields,
        )
        db_session.add(model)
        await db_session.commit()
        await db_session.refresh(model)
        return model

    return factory


@pytest.fixture
def sample_result() -> Dict[str, Any]:
    """A divination result as the client sends it."""
    return {
        "query": "这次换工作是否顺利？",
        "threePalaces": {
            "skyPalace": {"hexagram": {"name": "大安", "element": "wood", "sixGod": "青龙"}},
            "earthPalace": {"hexagram": {"name": "速喜", "element": "fire", "sixGod": "朱雀"}},
            "humanPalace": {"hexagram": {"name": "小吉", "element": "water", "sixGod": "玄武"}},
        },
    }
