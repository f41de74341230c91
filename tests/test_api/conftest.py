"""
API test fixtures.

Routes run against the in-memory repository, a mocked MinIO client and a
mocked notifier; the acting identity is switched per test with act_as.
"""

import pytest
from fastapi.testclient import TestClient

from src.api.deps import get_current_actor, get_notifier, get_repository, get_storage
from src.api.main import app


@pytest.fixture
def acting(facility_actor):
    return {"actor": facility_actor}


@pytest.fixture
def act_as(acting):
    def _act_as(actor):
        acting["actor"] = actor

    return _act_as


@pytest.fixture
def client(repository, storage, notifier, acting):
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_current_actor] = lambda: acting["actor"]
    yield TestClient(app)
    app.dependency_overrides.clear()
