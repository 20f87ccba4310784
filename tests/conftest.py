"""
Pytest configuration and shared fixtures.

This file adds the project root (and this directory, for `builders`) to the
Python path so tests can import domain, repositories, services and api.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from builders import FakeGateway, RecordingNotifier  # noqa: E402
from repositories.memory_pool_repository import InMemoryPoolRepository  # noqa: E402
from services.contribution_service import ContributionTracker  # noqa: E402
from services.payout_service import PayoutEngine  # noqa: E402
from services.pool_service import PoolService  # noqa: E402


@pytest.fixture
def repository() -> InMemoryPoolRepository:
    return InMemoryPoolRepository()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def tracker(repository, notifier) -> ContributionTracker:
    return ContributionTracker(repository, notifier)


@pytest.fixture
def engine(repository, gateway, notifier) -> PayoutEngine:
    return PayoutEngine(repository, gateway, notifier)


@pytest.fixture
def pool_service(repository) -> PoolService:
    return PoolService(repository)
