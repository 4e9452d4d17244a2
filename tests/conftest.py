import logging

import pytest

from services.file_lifecycle.CleanupService import CleanupService
from services.file_lifecycle.LifecycleService import LifecycleService
from services.file_lifecycle.QuotaLedger import QuotaLedger
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.storage.BlobStoreLocal import BlobStoreLocal
from shared.storage.ParseCacheLocal import ParseCacheLocal
from tests.fakes import FakeCacheClient, FakeCatalogClient, FakeRAGClient

ORG_ID = "6f1c2b0e-3c59-4a55-9a1e-0d2f4b6c8a10"
OTHER_ORG_ID = "0b7e5d7a-91c4-4f0e-8a43-2f6d1c9e7b21"
COURSE_A = "a3c0e1f2-5b6d-4e7f-8091-a2b3c4d5e6f7"
COURSE_B = "b4d1f203-6c7e-4f80-9102-b3c4d5e6f708"
DEFAULT_QUOTA = 10_000_000


@pytest.fixture(autouse=True)
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("ROOT_DIR", str(tmp_path))
    monkeypatch.setenv("RAG_QDRANT_BASE_URL", "http://qdrant.test:6333")
    monkeypatch.setenv("RAG_QDRANT_COLLECTION", "course_chunks")
    monkeypatch.setenv("API_SERVER_API_KEY", "test-key")
    for key in ("LIFECYCLE_UPSERT_BATCH_SIZE", "LIFECYCLE_SCROLL_PAGE_SIZE", "CLEANUP_CONTEXT_EXPIRATION_HOURS", "RAG_QDRANT_API_KEY"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("tests")))


@pytest.fixture
def catalog(helper_config) -> FakeCatalogClient:
    client = FakeCatalogClient(helper_config)
    client.add_organization(ORG_ID, quota_bytes=DEFAULT_QUOTA)
    client.add_organization(OTHER_ORG_ID, quota_bytes=DEFAULT_QUOTA)
    return client


@pytest.fixture
def rag(helper_config) -> FakeRAGClient:
    return FakeRAGClient(helper_config)


@pytest.fixture
def cache(helper_config) -> FakeCacheClient:
    return FakeCacheClient(helper_config)


@pytest.fixture
def blob_store(helper_config, tmp_path) -> BlobStoreLocal:
    return BlobStoreLocal(helper_config, root=tmp_path / "uploads")


@pytest.fixture
def parse_cache(helper_config, tmp_path) -> ParseCacheLocal:
    return ParseCacheLocal(helper_config, root=tmp_path / "parse-cache")


@pytest.fixture
def quota_ledger(helper_config, catalog) -> QuotaLedger:
    return QuotaLedger(helper_config=helper_config, catalog_client=catalog)


@pytest.fixture
def lifecycle(helper_config, catalog, rag, blob_store, quota_ledger) -> LifecycleService:
    return LifecycleService(
        helper_config=helper_config,
        catalog_client=catalog,
        rag_client=rag,
        blob_store=blob_store,
        quota_ledger=quota_ledger,
    )


@pytest.fixture
def cleanup(helper_config, catalog, rag, cache, blob_store, parse_cache) -> CleanupService:
    return CleanupService(
        helper_config=helper_config,
        catalog_client=catalog,
        rag_client=rag,
        cache_client=cache,
        blob_store=blob_store,
        parse_cache=parse_cache,
    )
