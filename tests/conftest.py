import os

os.environ.setdefault("HP_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("HP_ENVIRONMENT", "test")
os.environ.setdefault("HP_REDIS_URL", "")

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from hirepipe.models import Base, Candidate, CandidateSkill


@pytest.fixture()
async def async_engine(tmp_path):
    # File-backed so concurrent sessions get their own connections.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture()
def make_candidate(session_factory):
    async def _make(stage: str = "applied", *, skills: list[str] | None = None, **fields) -> str:
        async with session_factory() as session:
            candidate = Candidate(current_stage=stage, **fields)
            candidate.skills = [CandidateSkill(skill=skill) for skill in (skills or [])]
            session.add(candidate)
            await session.commit()
            return candidate.candidate_id

    return _make
