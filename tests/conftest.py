from __future__ import annotations

import asyncio
import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Must be set before any test module imports code that creates the SQLAlchemy engine.
_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="mediai-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_RUNTIME_DIR / 'app.db').as_posix()}"
os.environ["DATA_DIR"] = str(_RUNTIME_DIR)
os.environ["AUTO_CREATE_DB_SCHEMA"] = "true"
# The relay must report a missing gateway credential rather than pick one up from the host.
os.environ.pop("LLM_API_KEY", None)


@pytest.fixture(scope="session")
def app():
    import main

    return main.app


@pytest.fixture()
def session_factory(app, tmp_path):
    """A fresh, schema-initialized database per test."""

    from db.base import build_engine, build_session_factory, create_schema

    engine = build_engine(f"sqlite+aiosqlite:///{(tmp_path / 'test.db').as_posix()}")
    asyncio.run(create_schema(engine))
    yield build_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture()
def hospital_repo(session_factory):
    from db.repository import HospitalRepository

    return HospitalRepository(session_factory)


@pytest.fixture()
def conversation_repo(session_factory):
    from db.repository import ConversationRepository

    return ConversationRepository(session_factory)


@pytest.fixture()
def client(app, conversation_repo):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_conversation_repository] = lambda: conversation_repo

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
