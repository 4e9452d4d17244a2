from datetime import datetime, timezone
from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.clients.catalog.CatalogClientInterface import CatalogClientInterface
from shared.clients.catalog.models.FileRecord import FileRecord, FileRecordCreate, VectorStatus
from shared.clients.catalog.models.Organization import DeduplicationStats, OrganizationQuota
from shared.models.config import EnvConfig
from shared.models.errors import FileNotFoundInCatalogError, OrganizationNotFoundError

REST_PREFIX = "/rest/v1"


class CatalogClientSupabase(CatalogClientInterface):
    """Catalog backed by Supabase, spoken to through its PostgREST API.

    Plain reads and writes go to the table endpoints; counter updates go
    through SQL functions (see sql/catalog_schema.sql) so that each one is a
    single atomic UPDATE.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._files_table = self.get_config_val("FILES_TABLE", default="file_catalog", val_type="string")
        self._organizations_table = self.get_config_val("ORGANIZATIONS_TABLE", default="organizations", val_type="string")
        self._context_cache_table = self.get_config_val("CONTEXT_CACHE_TABLE", default="rag_context_cache", val_type="string")
        self._stats_view = self.get_config_val("STATS_VIEW", default="organization_deduplication_stats", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Supabase"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="FILES_TABLE", val_type="string", default="file_catalog"),
            EnvConfig(env_key="ORGANIZATIONS_TABLE", val_type="string", default="organizations"),
            EnvConfig(env_key="CONTEXT_CACHE_TABLE", val_type="string", default="rag_context_cache"),
            EnvConfig(env_key="STATS_VIEW", val_type="string", default="organization_deduplication_stats"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"{REST_PREFIX}/"

    def _get_endpoint_table(self, table: str) -> str:
        return f"{REST_PREFIX}/{table}"

    def _get_endpoint_rpc(self, function: str) -> str:
        return f"{REST_PREFIX}/rpc/{function}"

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _select(self, table: str, params: dict) -> list[dict]:
        resp = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_table(table),
            params=params,
            raise_on_error=True,
        )
        return resp.json() or []

    async def _rpc(self, function: str, args: dict) -> Any:
        resp = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_rpc(function),
            json=args,
            raise_on_error=True,
        )
        return resp.json() if resp.content else None

    @staticmethod
    def _first_row(data: Any) -> dict | None:
        """RPCs return either a single object or a list of rows depending on their SQL signature."""
        if isinstance(data, list):
            return data[0] if data else None
        if isinstance(data, dict):
            return data
        return None

    @staticmethod
    def _to_count(file_id: str, data: Any) -> int:
        # the counter functions return NULL when no row matched
        if data is None:
            raise FileNotFoundInCatalogError(file_id, "reference count target no longer exists")
        return int(data)

    @staticmethod
    def _to_quota(organization_id: str, row: dict) -> OrganizationQuota:
        return OrganizationQuota(
            organization_id=organization_id,
            storage_used_bytes=int(row.get("storage_used_bytes") or 0),
            storage_quota_bytes=int(row.get("storage_quota_bytes") or 0),
        )

    ##########################################
    ############### FILE RECORDS #############
    ##########################################

    async def do_find_donor(self, content_fingerprint: str) -> FileRecord | None:
        rows = await self._select(self._files_table, {
            "select": "*",
            "hash": f"eq.{content_fingerprint}",
            "vector_status": f"eq.{VectorStatus.INDEXED.value}",
            "original_file_id": "is.null",
            "order": "created_at.asc",
            "limit": "1",
        })
        return FileRecord.model_validate(rows[0]) if rows else None

    async def do_insert_file_record(self, record: FileRecordCreate) -> FileRecord:
        resp = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_table(self._files_table),
            json=record.to_row(),
            additional_headers={"Prefer": "return=representation"},
            raise_on_error=True,
        )
        row = self._first_row(resp.json())
        if row is None:
            raise RuntimeError(f"Insert into '{self._files_table}' returned no row.")
        return FileRecord.model_validate(row)

    async def do_get_file_record(self, file_id: str) -> FileRecord | None:
        rows = await self._select(self._files_table, {"select": "*", "id": f"eq.{file_id}"})
        return FileRecord.model_validate(rows[0]) if rows else None

    async def do_delete_file_record(self, file_id: str) -> None:
        await self.do_request(
            method="DELETE",
            endpoint=self._get_endpoint_table(self._files_table),
            params={"id": f"eq.{file_id}"},
            raise_on_error=True,
        )

    async def do_list_course_files(self, course_id: str) -> list[FileRecord]:
        rows = await self._select(self._files_table, {
            "select": "id,organization_id,course_id,filename,file_size,hash,storage_path,original_file_id,reference_count,vector_status",
            "course_id": f"eq.{course_id}",
        })
        return [FileRecord.model_validate(row) for row in rows]

    async def do_update_vector_status(self, file_id: str, status: VectorStatus) -> FileRecord:
        resp = await self.do_request(
            method="PATCH",
            endpoint=self._get_endpoint_table(self._files_table),
            params={"id": f"eq.{file_id}"},
            json={"vector_status": status.value, "updated_at": datetime.now(timezone.utc).isoformat()},
            additional_headers={"Prefer": "return=representation"},
            raise_on_error=True,
        )
        row = self._first_row(resp.json())
        if row is None:
            raise FileNotFoundInCatalogError(file_id)
        return FileRecord.model_validate(row)

    async def do_increment_reference_count(self, file_id: str) -> int:
        return self._to_count(file_id, await self._rpc("increment_file_reference_count", {"p_file_id": file_id}))

    async def do_decrement_reference_count(self, file_id: str) -> int:
        return self._to_count(file_id, await self._rpc("decrement_file_reference_count", {"p_file_id": file_id}))

    async def do_promote_reference(self, original_id: str) -> FileRecord | None:
        row = self._first_row(await self._rpc("promote_file_reference", {"p_original_id": original_id}))
        # a function returning a composite answers with all-null columns when nothing was promoted
        if row is None or row.get("id") is None:
            return None
        return FileRecord.model_validate(row)

    ##########################################
    ############## ORGANIZATIONS #############
    ##########################################

    async def do_get_organization_quota(self, organization_id: str) -> OrganizationQuota:
        rows = await self._select(self._organizations_table, {
            "select": "id,storage_used_bytes,storage_quota_bytes",
            "id": f"eq.{organization_id}",
        })
        if not rows:
            raise OrganizationNotFoundError(organization_id)
        return self._to_quota(organization_id, rows[0])

    async def do_adjust_organization_storage(self, organization_id: str, delta_bytes: int) -> OrganizationQuota:
        row = self._first_row(await self._rpc("update_organization_storage", {
            "p_organization_id": organization_id,
            "p_delta_bytes": delta_bytes,
        }))
        if row is None or row.get("storage_quota_bytes") is None:
            raise OrganizationNotFoundError(organization_id)
        return self._to_quota(organization_id, row)

    async def do_get_deduplication_stats(self, organization_id: str) -> DeduplicationStats:
        rows = await self._select(self._stats_view, {"select": "*", "organization_id": f"eq.{organization_id}"})
        if not rows:
            raise OrganizationNotFoundError(organization_id)
        row = rows[0]
        return DeduplicationStats(
            organization_id=organization_id,
            original_files=int(row.get("original_files_count") or 0),
            reference_files=int(row.get("reference_files_count") or 0),
            storage_saved_bytes=int(row.get("storage_saved_bytes") or 0),
            total_storage_bytes=int(row.get("total_storage_used_bytes") or 0),
        )

    ##########################################
    ############# CONTEXT CACHE ##############
    ##########################################

    async def do_delete_context_cache(self, course_id: str) -> int:
        resp = await self.do_request(
            method="DELETE",
            endpoint=self._get_endpoint_table(self._context_cache_table),
            params={"course_id": f"eq.{course_id}", "select": "course_id"},
            additional_headers={"Prefer": "return=representation"},
            raise_on_error=True,
        )
        return len(resp.json() or [])

    async def do_count_context_cache(self, course_id: str) -> int:
        resp = await self.do_request(
            method="HEAD",
            endpoint=self._get_endpoint_table(self._context_cache_table),
            params={"course_id": f"eq.{course_id}", "select": "course_id"},
            additional_headers={"Prefer": "count=exact"},
            raise_on_error=True,
        )
        # Content-Range: "0-4/5", or "*/0" for an empty result
        total = resp.headers.get("content-range", "").rpartition("/")[2]
        return int(total) if total.isdigit() else 0

    async def do_list_expired_context_courses(self, threshold: datetime) -> list[str]:
        cutoff = threshold.isoformat()
        rows = await self._select(self._context_cache_table, {
            "select": "course_id",
            "or": f"(expires_at.lt.{cutoff},expires_at.is.null)",
            "created_at": f"lt.{cutoff}",
        })
        return list(dict.fromkeys(row["course_id"] for row in rows))
