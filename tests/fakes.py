"""In-memory stand-ins for the catalog, vector index and cache clients.

They implement the same interfaces as the real clients so the lifecycle and
cleanup services run unchanged against them. Any method can be made to fail
by putting an exception into ``fail_on[<method name>]``.
"""

import copy
import fnmatch
import uuid
from datetime import datetime, timedelta, timezone

from shared.clients.cache.CacheClientInterface import CacheClientInterface
from shared.clients.cache.redis.CacheClientRedis import DEFAULT_KEY_PATTERNS
from shared.clients.catalog.CatalogClientInterface import CatalogClientInterface
from shared.clients.catalog.models.FileRecord import FileRecord, FileRecordCreate, VectorStatus
from shared.clients.catalog.models.Organization import DeduplicationStats, OrganizationQuota
from shared.clients.rag.models.Scroll import ScrollResult
from shared.clients.rag.qdrant.RAGClientQdrant import DENSE_VECTOR_NAME, SPARSE_VECTOR_NAME, RAGClientQdrant
from shared.helper.HelperHash import make_point_id
from shared.models.config import EnvConfig
from shared.models.errors import FileNotFoundInCatalogError, OrganizationNotFoundError

_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


class _FailureInjection:
    fail_on: dict[str, Exception]

    def _maybe_fail(self, method: str) -> None:
        exc = self.fail_on.get(method)
        if exc is not None:
            raise exc


class FakeCatalogClient(_FailureInjection, CatalogClientInterface):
    def __init__(self, helper_config):
        super().__init__(helper_config=helper_config)
        self.files: dict[str, FileRecord] = {}
        self.organizations: dict[str, dict] = {}
        self.context_rows: list[dict] = []
        self.fail_on = {}
        self._clock = 0

    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    def _get_auth_header(self) -> dict:
        return {}

    def _get_base_url(self) -> str:
        return "memory://catalog"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    async def do_healthcheck(self) -> bool:
        return True

    def add_organization(self, organization_id: str, quota_bytes: int, used_bytes: int = 0) -> None:
        self.organizations[organization_id] = {
            "storage_used_bytes": used_bytes,
            "storage_quota_bytes": quota_bytes,
        }

    def add_context(self, course_id: str, count: int = 1, age: timedelta = timedelta(0), expires_in: timedelta | None = None) -> None:
        created_at = datetime.now(timezone.utc) - age
        expires_at = created_at + expires_in if expires_in is not None else None
        for _ in range(count):
            self.context_rows.append({"course_id": course_id, "created_at": created_at, "expires_at": expires_at})

    def records_with_fingerprint(self, digest: str) -> list[FileRecord]:
        return [r for r in self.files.values() if r.content_fingerprint == digest]

    ################ FILE RECORDS ##################

    async def do_find_donor(self, content_fingerprint: str) -> FileRecord | None:
        self._maybe_fail("do_find_donor")
        candidates = sorted(
            (r for r in self.files.values()
             if r.content_fingerprint == content_fingerprint
             and r.vector_status == VectorStatus.INDEXED
             and r.original_file_id is None),
            key=lambda r: r.created_at,
        )
        return candidates[0].model_copy() if candidates else None

    async def do_insert_file_record(self, record: FileRecordCreate) -> FileRecord:
        self._maybe_fail("do_insert_file_record")
        self._clock += 1
        created_at = (_EPOCH + timedelta(seconds=self._clock)).isoformat()
        row = record.to_row()
        row.setdefault("reference_count", 1)
        stored = FileRecord.model_validate({**row, "id": str(uuid.uuid4()), "created_at": created_at, "updated_at": created_at})
        self.files[stored.id] = stored
        return stored.model_copy()

    async def do_get_file_record(self, file_id: str) -> FileRecord | None:
        self._maybe_fail("do_get_file_record")
        record = self.files.get(file_id)
        return record.model_copy() if record else None

    async def do_delete_file_record(self, file_id: str) -> None:
        self._maybe_fail("do_delete_file_record")
        self.files.pop(file_id, None)

    async def do_list_course_files(self, course_id: str) -> list[FileRecord]:
        self._maybe_fail("do_list_course_files")
        return [r.model_copy() for r in self.files.values() if r.course_id == course_id]

    async def do_update_vector_status(self, file_id: str, status: VectorStatus) -> FileRecord:
        self._maybe_fail("do_update_vector_status")
        record = self.files.get(file_id)
        if record is None:
            raise FileNotFoundInCatalogError(file_id)
        record.vector_status = status
        return record.model_copy()

    async def do_increment_reference_count(self, file_id: str) -> int:
        self._maybe_fail("do_increment_reference_count")
        record = self.files.get(file_id)
        if record is None:
            raise FileNotFoundInCatalogError(file_id)
        record.reference_count += 1
        return record.reference_count

    async def do_decrement_reference_count(self, file_id: str) -> int:
        self._maybe_fail("do_decrement_reference_count")
        record = self.files.get(file_id)
        if record is None:
            raise FileNotFoundInCatalogError(file_id)
        record.reference_count = max(record.reference_count - 1, 0)
        return record.reference_count

    async def do_promote_reference(self, original_id: str) -> FileRecord | None:
        self._maybe_fail("do_promote_reference")
        original = self.files.get(original_id)
        references = sorted(
            (r for r in self.files.values() if r.original_file_id == original_id),
            key=lambda r: r.created_at,
        )
        if original is None or not references:
            return None
        promoted = references[0]
        promoted.original_file_id = None
        promoted.reference_count = original.reference_count
        for other in references[1:]:
            other.original_file_id = promoted.id
        del self.files[original_id]
        return promoted.model_copy()

    ################ ORGANIZATIONS ##################

    async def do_get_organization_quota(self, organization_id: str) -> OrganizationQuota:
        self._maybe_fail("do_get_organization_quota")
        org = self.organizations.get(organization_id)
        if org is None:
            raise OrganizationNotFoundError(organization_id)
        return OrganizationQuota(organization_id=organization_id, **org)

    async def do_adjust_organization_storage(self, organization_id: str, delta_bytes: int) -> OrganizationQuota:
        self._maybe_fail("do_adjust_organization_storage")
        org = self.organizations.get(organization_id)
        if org is None:
            raise OrganizationNotFoundError(organization_id)
        org["storage_used_bytes"] = max(org["storage_used_bytes"] + delta_bytes, 0)
        return OrganizationQuota(organization_id=organization_id, **org)

    async def do_get_deduplication_stats(self, organization_id: str) -> DeduplicationStats:
        org = self.organizations.get(organization_id)
        if org is None:
            raise OrganizationNotFoundError(organization_id)
        records = [r for r in self.files.values() if r.organization_id == organization_id]
        references = [r for r in records if not r.is_original]
        return DeduplicationStats(
            organization_id=organization_id,
            original_files=len(records) - len(references),
            reference_files=len(references),
            storage_saved_bytes=sum(r.file_size for r in references),
            total_storage_bytes=org["storage_used_bytes"],
        )

    async def do_delete_context_cache(self, course_id: str) -> int:
        self._maybe_fail("do_delete_context_cache")
        before = len(self.context_rows)
        self.context_rows = [r for r in self.context_rows if r["course_id"] != course_id]
        return before - len(self.context_rows)

    async def do_count_context_cache(self, course_id: str) -> int:
        self._maybe_fail("do_count_context_cache")
        return sum(1 for r in self.context_rows if r["course_id"] == course_id)

    async def do_list_expired_context_courses(self, threshold: datetime) -> list[str]:
        self._maybe_fail("do_list_expired_context_courses")
        expired = (
            r["course_id"] for r in self.context_rows
            if r["created_at"] < threshold and (r["expires_at"] is None or r["expires_at"] < threshold)
        )
        return list(dict.fromkeys(expired))


class FakeRAGClient(_FailureInjection, RAGClientQdrant):
    """Vector index kept in a dict; filters use the real Qdrant payload builders."""

    def __init__(self, helper_config):
        super().__init__(helper_config=helper_config)
        self.points: dict[str, dict] = {}
        self.upsert_calls: list[tuple[int, bool]] = []
        self.delete_calls: list[list[dict]] = []
        self.fail_on = {}

    @staticmethod
    def _matches(point: dict, filters: list[dict]) -> bool:
        payload = point.get("payload") or {}
        return all(payload.get(f["key"]) == f["match"]["value"] for f in filters)

    def find(self, **tags) -> list[dict]:
        filters = [self.build_match_condition(k, v) for k, v in tags.items()]
        return [copy.deepcopy(p) for p in self.points.values() if self._matches(p, filters)]

    async def do_healthcheck(self) -> bool:
        return True

    async def do_existence_check(self) -> bool:
        return True

    async def do_upsert_points(self, points: list[dict], wait: bool = True) -> None:
        self._maybe_fail("do_upsert_points")
        self.upsert_calls.append((len(points), wait))
        for point in points:
            self.points[point["id"]] = copy.deepcopy(point)

    async def do_delete_points_by_filter(self, filters: list[dict], wait: bool = True) -> None:
        self._maybe_fail("do_delete_points_by_filter")
        self.delete_calls.append(filters)
        for point_id in [pid for pid, p in self.points.items() if self._matches(p, filters)]:
            del self.points[point_id]

    async def do_count(self, filters: list[dict], exact: bool = True) -> int:
        self._maybe_fail("do_count")
        return sum(1 for p in self.points.values() if self._matches(p, filters))

    async def do_scroll(self, filters, with_payload, with_vector, limit=None, offset=None) -> ScrollResult:
        self._maybe_fail("do_scroll")
        matching = sorted((p for p in self.points.values() if self._matches(p, filters)), key=lambda p: p["id"])
        start = offset or 0
        end = start + limit if limit else len(matching)
        page = []
        for point in matching[start:end]:
            item = {"id": point["id"], "payload": copy.deepcopy(point["payload"])}
            if with_vector:
                item["vector"] = copy.deepcopy(point["vector"])
            page.append(item)
        return ScrollResult(result=page, status="ok", time=0, next_page_offset=end if end < len(matching) else None)


class FakeCacheClient(_FailureInjection, CacheClientInterface):
    def __init__(self, helper_config):
        super().__init__(helper_config=helper_config)
        self.keys: set[str] = set()
        self.fail_on = {}

    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    def _get_auth_header(self) -> dict:
        return {}

    def _get_base_url(self) -> str:
        return "memory://cache"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    async def do_healthcheck(self) -> bool:
        return True

    def get_course_key_patterns(self, course_id: str) -> list[str]:
        return [pattern.format(course_id=course_id) for pattern in DEFAULT_KEY_PATTERNS]

    async def do_delete_by_pattern(self, pattern: str) -> int:
        self._maybe_fail("do_delete_by_pattern")
        matched = {k for k in self.keys if fnmatch.fnmatchcase(k, pattern)}
        self.keys -= matched
        return len(matched)


def seed_vectors(rag: FakeRAGClient, file_id: str, course_id: str, organization_id: str, count: int = 3) -> list[dict]:
    """Write the points the processing pipeline would produce for an indexed file."""
    points = []
    for chunk in range(count):
        points.append({
            "id": make_point_id(file_id, chunk),
            "vector": {
                DENSE_VECTOR_NAME: [0.1 * (chunk + 1)] * 4,
                SPARSE_VECTOR_NAME: {"indices": [chunk, chunk + 7], "values": [0.5, 0.25]},
            },
            "payload": {
                "document_id": file_id,
                "course_id": course_id,
                "organization_id": organization_id,
                "chunk_id": chunk,
                "content": f"chunk {chunk}",
                "heading_path": "Intro > Basics",
                "page_number": chunk + 1,
                "has_code": chunk % 2 == 0,
                "indexed_at": "2026-01-01T00:00:00+00:00",
            },
        })
    for point in points:
        rag.points[point["id"]] = point
    return points
