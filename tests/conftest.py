from typing import Any, Dict, List, Optional

import pytest

from app.schemas.lead_capture import LeadFormData
from app.services.lead_capture_service import LeadCapturePipeline
from app.services.lead_store import StoreError
from app.services.local_storage import MemoryStorage, NamespacedStorage


class FakeStore:
    """Supabase de mentira: guarda linhas em memória e falha sob demanda."""

    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self.insert_calls: List[Dict[str, Any]] = []
        self.query_calls: List[Dict[str, Any]] = []
        # cada insert consome um item: None = ok, StoreError = falha
        self.insert_failures: List[Optional[StoreError]] = []
        self.query_error: Optional[StoreError] = None

    def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        self.insert_calls.append(dict(record))
        if self.insert_failures:
            failure = self.insert_failures.pop(0)
            if failure is not None:
                raise failure
        row = {**record, "id": f"lead-{len(self.rows) + 1}", "created_at": "2026-10-19T12:00:00+00:00"}
        self.rows.append(row)
        return row

    def query(self, table: str, filters: Dict[str, Any], limit: int = 1) -> List[Dict[str, Any]]:
        self.query_calls.append(dict(filters))
        if self.query_error is not None:
            raise self.query_error
        matches = [r for r in self.rows if all(r.get(k) == v for k, v in filters.items())]
        return matches[:limit]


class FakeClock:
    def __init__(self, now: float = 1_760_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenStorage:
    """Persistência que sempre falha (cota estourada / storage desabilitado)."""

    def get_item(self, key):
        raise OSError("storage indisponível")

    def set_item(self, key, value):
        raise OSError("quota exceeded")

    def remove_item(self, key):
        raise OSError("storage indisponível")


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def storage() -> NamespacedStorage:
    return NamespacedStorage(MemoryStorage(), namespace="flor_")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def connectivity() -> Dict[str, bool]:
    return {"online": True}


@pytest.fixture
def pipeline(store, storage, clock, sleeps, connectivity) -> LeadCapturePipeline:
    return LeadCapturePipeline(
        store=store,
        storage=storage,
        is_online=lambda: connectivity["online"],
        clock=clock,
        sleep=sleeps.append,
    )


@pytest.fixture
def valid_form() -> LeadFormData:
    return LeadFormData(
        name="Ana Souza",
        email="ANA@Example.com",
        phone="(11) 98888-7777",
        birthday="",
        preferences=[],
        terms=True,
        website="",
    )
