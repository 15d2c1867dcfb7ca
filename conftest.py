import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from library import Library


class FakeClock:
    """Callable clock that only moves when a test tells it to."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 10, 0, 0))


@pytest.fixture
def lib(tmp_path, request, clock, monkeypatch):
    # Every test gets its own database file
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    monkeypatch.setenv("LIBRARY_DB_FILE", db_file)
    lib = Library(db_file=db_file, clock=clock)
    yield lib
    lib.close()
    if os.path.exists(db_file):
        os.remove(db_file)


@pytest.fixture
def client(lib):
    import api as api_module

    api_module.app.dependency_overrides[api_module.get_library] = lambda: lib
    with TestClient(api_module.app) as test_client:
        yield test_client
    api_module.app.dependency_overrides.clear()
