from __future__ import annotations
import os

# settings are read at import time; keep infra off for tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("AUTH_JWKS_URL", "http://auth.test/.well-known/jwks.json")
os.environ["RL_ENABLED"] = "false"
os.environ["NATS_ENABLED"] = "false"

import pytest
from httpx import AsyncClient, ASGITransport

from checkin_rewards.db import build_engine, build_session_maker, init_db
from checkin_rewards.deps import get_db, get_claims
from checkin_rewards.models import AcceptedMethods
from checkin_rewards.services.policy import upsert_location, upsert_policy

BERLIN_BIZ = (52.5201, 13.4052)

@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'checkin.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()

@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)

@pytest.fixture
async def db(session_maker):
    async with session_maker() as s:
        yield s

@pytest.fixture
def seed_business(session_maker):
    async def _seed(business_id="biz_1", name="Cafe", lat=BERLIN_BIZ[0], lng=BERLIN_BIZ[1], methods=None, radius_m=None):
        async with session_maker() as s:
            await upsert_location(s, business_id=business_id, name=name, latitude=lat, longitude=lng)
            if methods is not None or radius_m is not None:
                await upsert_policy(
                    s, business_id=business_id, mission_type="VISIT_CHECKIN",
                    accepted_methods=AcceptedMethods(methods or "BOTH"), radius_m=radius_m,
                )
    return _seed

@pytest.fixture
def claims():
    return {"sub": "user_1", "role": "user"}

@pytest.fixture
async def client(session_maker, claims):
    from checkin_rewards.main import app

    async def _db():
        async with session_maker() as s:
            yield s

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_claims] = lambda: claims
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
