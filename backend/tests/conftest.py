"""Pytest configuration and fixtures for backend tests."""
import os
import tempfile

# Settings are read at import time of config/database
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{tempfile.mkdtemp()}/test.db"

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLLM:
    """Stands in for GeminiClient: returns queued responses and records prompts."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []
        self.shapes = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def generate_content(self, prompt, expected_shape=None):
        self.prompts.append(prompt)
        self.shapes.append(expected_shape)
        if not self.responses:
            raise AssertionError("unexpected LLM call")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    SessionLocal = sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with SessionLocal() as session:
        yield session
