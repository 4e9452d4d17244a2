from datetime import timedelta

import httpx
import pytest

from server.api_server import app
from shared.models.errors import BackendRequestError
from shared.models.lifecycle import UploadMetadata
from tests.conftest import COURSE_A, COURSE_B, ORG_ID
from tests.fakes import seed_vectors

HEADERS = {"X-Api-Key": "test-key"}


@pytest.fixture
async def client(helper_config, quota_ledger, lifecycle, cleanup):
    # the lifespan is not run by ASGITransport, state is wired by hand
    app.state.helper_config = helper_config
    app.state.logging = helper_config.get_logger()
    app.state.quota_ledger = quota_ledger
    app.state.lifecycle_service = lifecycle
    app.state.cleanup_service = cleanup
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


def upload(client, course_id=COURSE_A, organization_id=ORG_ID, content=b"week one slides"):
    return client.post(
        "/files",
        headers=HEADERS,
        files={"file": ("slides.txt", content, "text/plain")},
        data={"organization_id": organization_id, "course_id": course_id},
    )


async def test_wrong_api_key_is_rejected(client):
    response = await client.delete(f"/files/{COURSE_A}", headers={"X-Api-Key": "nope"})
    assert response.status_code == 401


async def test_upload_and_deduplicate(client, catalog, rag):
    first = await upload(client)
    assert first.status_code == 200
    body = first.json()
    assert body["deduplicated"] is False
    assert body["vector_status"] == "pending"

    file_id = body["file_id"]
    seed_vectors(rag, file_id, COURSE_A, ORG_ID)
    for status in ("indexing", "indexed"):
        response = await client.patch(f"/files/{file_id}/vector-status", headers=HEADERS, json={"vector_status": status})
        assert response.status_code == 200
        assert response.json() == {"file_id": file_id, "vector_status": status}

    second = await upload(client, course_id=COURSE_B)
    assert second.json()["deduplicated"] is True
    assert second.json()["original_file_id"] == file_id
    assert second.json()["vectors_duplicated"] == 3

    deleted = await client.delete(f"/files/{second.json()['file_id']}", headers=HEADERS)
    assert deleted.status_code == 200
    assert deleted.json()["remaining_references"] == 1
    assert deleted.json()["physical_file_deleted"] is False


async def test_invalid_status_transition_is_a_bad_request(client):
    file_id = (await upload(client)).json()["file_id"]
    response = await client.patch(f"/files/{file_id}/vector-status", headers=HEADERS, json={"vector_status": "indexed"})
    assert response.status_code == 400


async def test_upload_with_invalid_identifier(client):
    response = await upload(client, organization_id="../../etc")
    assert response.status_code == 400
    assert "organization_id" in response.json()["detail"]


async def test_upload_over_quota(client, catalog):
    catalog.add_organization(ORG_ID, quota_bytes=4)
    response = await upload(client)
    assert response.status_code == 413
    assert response.json()["requested_bytes"] == len(b"week one slides")


async def test_delete_unknown_file(client):
    response = await client.delete("/files/00000000-0000-4000-8000-000000000000", headers=HEADERS)
    assert response.status_code == 404


async def test_duplicate_without_source_vectors_is_a_conflict(client, lifecycle):
    donor = await lifecycle.handle_upload(
        b"x" * 10, UploadMetadata(filename="x.txt", organization_id=ORG_ID, course_id=COURSE_A, mime_type="text/plain"),
    )
    response = await client.post(
        f"/files/{donor.file_id}/vectors/duplicate",
        headers=HEADERS,
        json={"new_file_id": "c5e2a314-7d8f-4091-a213-c4d5e6f70819", "new_course_id": COURSE_B, "new_organization_id": ORG_ID},
    )
    assert response.status_code == 409


async def test_course_cleanup_returns_result_even_on_failure(client, cache):
    cache.fail_on["do_delete_by_pattern"] = ConnectionError("redis down")

    response = await client.delete(f"/courses/{COURSE_A}", headers=HEADERS, params={"organization_id": ORG_ID})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["cache"]["success"] is False
    assert body["errors"] == ["cache: redis down"]


async def test_quota_and_stats(client):
    await upload(client)

    quota = await client.get(f"/organizations/{ORG_ID}/quota", headers=HEADERS)
    assert quota.status_code == 200
    assert quota.json()["storage_used_bytes"] == len(b"week one slides")
    assert "usage_percentage" in quota.json()

    stats = await client.get(f"/organizations/{ORG_ID}/deduplication-stats", headers=HEADERS)
    assert stats.json()["original_files"] == 1

    missing = await client.get("/organizations/00000000-0000-4000-8000-000000000000/quota", headers=HEADERS)
    assert missing.status_code == 404


@pytest.mark.parametrize("method,path,kwargs", [
    ("delete", "/files/abc", {}),
    ("patch", "/files/abc/vector-status", {"json": {"vector_status": "indexing"}}),
])
async def test_malformed_file_id_is_not_found(client, method, path, kwargs):
    response = await getattr(client, method)(path, headers=HEADERS, **kwargs)
    assert response.status_code == 404


async def test_duplicate_with_malformed_target_is_a_bad_request(client, rag):
    donor_id = "11111111-2222-4333-8444-555555555555"
    seed_vectors(rag, donor_id, COURSE_A, ORG_ID)

    response = await client.post(
        f"/files/{donor_id}/vectors/duplicate",
        headers=HEADERS,
        json={"new_file_id": "abc", "new_course_id": COURSE_B, "new_organization_id": ORG_ID},
    )

    assert response.status_code == 400
    assert "new_file_id" in response.json()["detail"]


async def test_backend_failure_is_a_bad_gateway(client, catalog):
    catalog.fail_on["do_get_file_record"] = BackendRequestError("http://catalog.test/rest/v1/file_catalog", 503, "down")

    response = await client.delete("/files/00000000-0000-4000-8000-000000000000", headers=HEADERS)

    assert response.status_code == 502


async def test_context_cache_status_and_sweep(client, catalog):
    catalog.add_context(COURSE_A, count=2, age=timedelta(hours=3))

    status = await client.get(f"/courses/{COURSE_A}/context-cache", headers=HEADERS)
    assert status.json() == {"course_id": COURSE_A, "entries": 2, "has_context": True}

    dry = await client.post("/maintenance/context-cache/cleanup", headers=HEADERS, params={"dry_run": "true"})
    assert dry.status_code == 200
    assert dry.json()["total_deleted"] == 2
    assert len(catalog.context_rows) == 2

    swept = await client.post("/maintenance/context-cache/cleanup", headers=HEADERS, params={"expiration_hours": 1})
    assert swept.json()["courses_processed"] == 1
    assert catalog.context_rows == []
