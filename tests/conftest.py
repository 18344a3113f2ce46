from datetime import datetime, timedelta

import pytest

from softcatalog.services.local_installations import LocalInstallationStore
from softcatalog.services.reference_catalog import ReferenceCatalogStore


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 15, 12, 0, 0))


@pytest.fixture
def catalog(tmp_path, clock) -> ReferenceCatalogStore:
    store = ReferenceCatalogStore.open(tmp_path / "master_catalog.db", clock=clock)
    yield store
    store.engine.dispose()


@pytest.fixture
def installations(tmp_path, clock) -> LocalInstallationStore:
    store = LocalInstallationStore.open(tmp_path / "ref.db", clock=clock)
    yield store
    store.engine.dispose()
