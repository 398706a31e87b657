import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import pytest
from fastapi.testclient import TestClient
import fakeredis.aioredis as fakeredis

from meetgrid.config import clear_settings_cache
from meetgrid.tests.helpers import FakeSurface, ManualScheduler, make_grid


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def grid():
    return make_grid()


@pytest.fixture
def surface(grid):
    return FakeSurface(grid)


@pytest.fixture
def client(monkeypatch):
    def fake_redis_constructor(*_args, **_kwargs):
        return fakeredis.FakeRedis(decode_responses=True)

    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("PUSH_VAPID_PUBLIC_KEY", "BPublicTestKey")
    clear_settings_cache()
    import meetgrid.lifespan as lifespan
    import meetgrid.main as main

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)

    with TestClient(main.app) as c:
        yield c
    clear_settings_cache()
