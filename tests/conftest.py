from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Must be set before config.settings is first imported (get_settings is cached).
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("SESSION_UPDATE_DELAY_SECONDS", "0")
os.environ.setdefault("FLIGHT_WEBHOOK_URL", "https://hooks.example.test/flights")


@pytest.fixture(scope="session")
def app():
    import importlib

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
