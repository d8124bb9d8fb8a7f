"""Shared fixtures for prassign tests."""

from __future__ import annotations

import asyncio
import random
from contextlib import contextmanager
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from prassign.assignment.engine import AssignmentEngine
from prassign.assignment.selector import CandidateSelector
from prassign.config import AssignmentConfig
from prassign.models.schemas import Team, TeamMember
from prassign.storage.memory import MemoryStorage
from prassign.storage.sql import SQLStorage


@pytest.fixture
def rng():
    """Seeded random source so selections are reproducible."""
    return random.Random(1234)


@pytest.fixture
def selector(rng):
    return CandidateSelector(rng)


@pytest.fixture
def team_t():
    """Team T: A is the usual author, B/C/D are potential reviewers."""
    return Team(
        team_name="T",
        members=[
            TeamMember(user_id="A", username="alice"),
            TeamMember(user_id="B", username="bob"),
            TeamMember(user_id="C", username="carol"),
            TeamMember(user_id="D", username="dave"),
        ],
    )


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest_asyncio.fixture
async def sql_storage(tmp_path):
    storage = SQLStorage(f"sqlite+aiosqlite:///{tmp_path / 'prassign.db'}")
    await storage.init_schema()
    yield storage
    await storage.close()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def storage(request, tmp_path):
    """Every backend, so engine behaviour is checked against both."""
    if request.param == "memory":
        yield MemoryStorage()
        return

    sql = SQLStorage(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")
    await sql.init_schema()
    yield sql
    await sql.close()


@pytest.fixture
def engine(storage, selector):
    return AssignmentEngine.from_storage(storage, selector=selector)


@pytest_asyncio.fixture
async def seeded_engine(engine, team_t):
    """Engine whose storage already holds team T."""
    await engine.create_team(team_t)
    return engine


@pytest.fixture
def engine_factory(storage):
    """Build engines over the parametrized storage with config overrides."""

    def factory(**config) -> AssignmentEngine:
        return AssignmentEngine.from_storage(
            storage,
            selector=CandidateSelector(random.Random(99)),
            config=AssignmentConfig(database_url="memory://", **config),
        )

    return factory


@pytest.fixture
def paired_member_lookups():
    """Hold member lookups until two commands have both read their PR.

    Reassign reads the PR before it looks up candidates, so two commands
    released together act on the same snapshot.
    """

    @contextmanager
    def apply(users):
        fetch_members = users.get_active_team_members
        arrived: list[str] = []
        both_arrived = asyncio.Event()

        async def wait_for_pair(team_name, exclude_ids):
            arrived.append(team_name)
            if len(arrived) >= 2:
                both_arrived.set()
            await both_arrived.wait()
            return await fetch_members(team_name, exclude_ids)

        with patch.object(
            users, "get_active_team_members", AsyncMock(side_effect=wait_for_pair)
        ):
            yield

    return apply
