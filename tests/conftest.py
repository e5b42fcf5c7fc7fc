from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import pytest

# Ensure the repo root is on sys.path so `import entity_store.*` works in tests.
ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))
# ...and `import fakes` from test modules.
sys.path.insert(0, str(Path(__file__).resolve().parent))

from entity_store.db.dynamodb.table import DynamoTable, open_table  # noqa: E402
from entity_store.models import EntityDraft  # noqa: E402
from entity_store.settings import Settings  # noqa: E402
from fakes import TABLE_NAME, FakeDynamoClient  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        aws_region="us-east-1",
        ddb_table_name=TABLE_NAME,
        ddb_scan_page_size=None,
        ddb_max_inflight=4,
        next_token_enc_key="test-token-key",
    )


@pytest.fixture
def fake_client() -> FakeDynamoClient:
    return FakeDynamoClient()


@pytest.fixture
def table(settings: Settings, fake_client: FakeDynamoClient):
    t: DynamoTable = open_table(settings, client=fake_client)
    yield t
    t.close()


@pytest.fixture
def make_draft() -> Callable[..., EntityDraft]:
    def _make(**overrides: Any) -> EntityDraft:
        data: dict[str, Any] = {
            "fullname": "Ada Lovelace",
            "email": "ada@example.com",
            "authoredRecipes": ["r-1", "r-2"],
            "likedRecipes": ["r-9"],
        }
        data.update(overrides)
        return EntityDraft(**data)

    return _make
