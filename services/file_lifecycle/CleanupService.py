"""Course teardown across every store that holds course-scoped data.

Each resource is cleaned independently and concurrently. A failure in one
resource is captured in its ResourceResult and never prevents the others.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from shared.clients.cache.CacheClientInterface import CacheClientInterface
from shared.clients.catalog.CatalogClientInterface import CatalogClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperFile import is_valid_uuid, require_uuid
from shared.models.lifecycle import BulkCleanupResult, CleanupResult, ContextCleanupResult, ResourceResult
from shared.storage.BlobStoreLocal import BlobStoreLocal
from shared.storage.ParseCacheLocal import ParseCacheLocal

RESOURCE_VECTORS = "vectors"
RESOURCE_CACHE = "cache"
RESOURCE_CONTEXT_CACHE = "context_cache"
RESOURCE_BLOB_STORAGE = "blob_storage"
RESOURCE_PARSE_CACHE = "parse_cache"

CONTEXT_EXPIRATION_HOURS = 1  # default age after which cached retrieval contexts are swept


class CleanupService:
    def __init__(
        self,
        helper_config: HelperConfig,
        catalog_client: CatalogClientInterface,
        rag_client: RAGClientInterface,
        cache_client: CacheClientInterface,
        blob_store: BlobStoreLocal,
        parse_cache: ParseCacheLocal,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._catalog = catalog_client
        self._rag = rag_client
        self._cache = cache_client
        self._blob_store = blob_store
        self._parse_cache = parse_cache
        self._context_expiration_hours = helper_config.get_number_val(
            "CLEANUP_CONTEXT_EXPIRATION_HOURS", default=CONTEXT_EXPIRATION_HOURS,
        )

    async def cleanup_course(self, course_id: str, organization_id: str) -> CleanupResult:
        """Remove all course-scoped data from the vector index, the caches and the blob store.

        An identifier that is not a UUID fails every resource that would be
        addressed with it; nothing is touched for that resource.

        Args:
            course_id (str): Course being deleted.
            organization_id (str): Tenant owning the course.

        Returns:
            CleanupResult: Per-resource outcomes. success is False if any of
            vectors, cache, context_cache or blob_storage failed.
        """
        self.logging.info("Starting cleanup of course %s (organization=%s)", course_id, organization_id)

        vectors, cache, context_cache, blob_storage, parse_cache = await asyncio.gather(
            self.delete_vectors_for_course(course_id),
            self._run_resource(RESOURCE_CACHE, lambda: self._delete_cache_keys(course_id)),
            self._run_resource(RESOURCE_CONTEXT_CACHE, lambda: self._delete_context_cache(course_id)),
            self._run_resource(
                RESOURCE_BLOB_STORAGE,
                lambda: self._blob_store.do_delete_course_directory(organization_id, course_id),
            ),
            self._run_resource(RESOURCE_PARSE_CACHE, lambda: self._delete_parse_cache(course_id)),
        )

        results = [vectors, cache, context_cache, blob_storage, parse_cache]
        errors = [f"{r.resource}: {r.error}" for r in results if not r.success]
        success = all(r.success for r in (vectors, cache, context_cache, blob_storage))

        if success:
            self.logging.info(
                "Cleanup of course %s complete: %d vectors, %d cache keys, %d context entries, %d files, %d parse results",
                course_id, vectors.deleted_count, cache.deleted_count, context_cache.deleted_count,
                blob_storage.deleted_count, parse_cache.deleted_count, color="green",
            )
        else:
            self.logging.warning("Cleanup of course %s completed with errors: %s", course_id, "; ".join(errors))

        return CleanupResult(
            course_id=course_id,
            organization_id=organization_id,
            success=success,
            vectors=vectors,
            cache=cache,
            context_cache=context_cache,
            blob_storage=blob_storage,
            parse_cache=parse_cache,
            errors=errors,
        )

    async def delete_vectors_for_course(self, course_id: str) -> ResourceResult:
        """Delete every point tagged with a course.

        The count is approximate and only used for reporting; if it is zero
        the delete request is skipped.
        """
        if not is_valid_uuid(course_id):
            return ResourceResult(resource=RESOURCE_VECTORS, success=False, error=f"Invalid course_id: {course_id!r}")

        async def _delete() -> int:
            filters = [self._rag.build_match_condition("course_id", course_id)]
            count = await self._rag.do_count(filters, exact=False)
            if count == 0:
                self.logging.info("No vectors found for course %s", course_id)
                return 0
            await self._rag.do_delete_points_by_filter(filters, wait=True)
            return count

        return await self._run_resource(RESOURCE_VECTORS, _delete)

    ##########################################
    ########### EXPIRED CONTEXTS #############
    ##########################################

    async def cleanup_expired_contexts(self, expiration_hours: float | None = None, dry_run: bool = False) -> BulkCleanupResult:
        """Sweep the retrieval context cache of every course whose entries have expired.

        Meant to run on a schedule. Courses are processed one after another;
        a failing course is reported in the result and does not stop the sweep.

        Args:
            expiration_hours (float | None): Minimum age of an expired entry. Defaults to
                                             CLEANUP_CONTEXT_EXPIRATION_HOURS.
            dry_run (bool): Only count what would be deleted.

        Returns:
            BulkCleanupResult: Per-course outcomes and the collected errors.

        Raises:
            ValueError: If expiration_hours is negative.
        """
        hours = self._context_expiration_hours if expiration_hours is None else expiration_hours
        if hours < 0:
            raise ValueError(f"expiration_hours must not be negative, got {hours}")
        timestamp = datetime.now(timezone.utc)
        threshold = timestamp - timedelta(hours=hours)
        self.logging.info("Starting expired context cleanup (older than %s, dry_run=%s)", threshold.isoformat(), dry_run)

        try:
            course_ids = await self._catalog.do_list_expired_context_courses(threshold)
        except Exception as exc:
            self.logging.error("Failed to list courses with expired contexts: %s", exc)
            return BulkCleanupResult(
                total_deleted=0, courses_processed=0, dry_run=dry_run, errors=[str(exc)], timestamp=timestamp,
            )

        results: list[ContextCleanupResult] = []
        for course_id in course_ids:
            try:
                if dry_run:
                    deleted = await self._catalog.do_count_context_cache(course_id)
                else:
                    deleted = await self._catalog.do_delete_context_cache(course_id)
            except Exception as exc:
                self.logging.warning("Expired context cleanup of course %s failed: %s", course_id, exc)
                results.append(ContextCleanupResult(course_id=course_id, success=False, error=str(exc)))
                continue
            results.append(ContextCleanupResult(course_id=course_id, success=True, deleted_count=deleted))

        errors = [f"Course {r.course_id}: {r.error}" for r in results if not r.success]
        total_deleted = sum(r.deleted_count for r in results)
        self.logging.info(
            "Expired context cleanup complete: %d entries in %d courses, %d errors (dry_run=%s)",
            total_deleted, len(results), len(errors), dry_run,
        )
        return BulkCleanupResult(
            total_deleted=total_deleted,
            courses_processed=len(results),
            dry_run=dry_run,
            results=results,
            errors=errors,
            timestamp=timestamp,
        )

    async def get_context_count(self, course_id: str) -> int:
        """Number of cached retrieval context entries of a course, 0 if it cannot be determined."""
        if not is_valid_uuid(course_id):
            return 0
        try:
            return await self._catalog.do_count_context_cache(course_id)
        except Exception as exc:
            self.logging.warning("Failed to count context entries of course %s: %s", course_id, exc)
            return 0

    async def has_context(self, course_id: str) -> bool:
        return await self.get_context_count(course_id) > 0

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _delete_cache_keys(self, course_id: str) -> int:
        require_uuid("course_id", course_id)
        return await self._cache.do_delete_course_keys(course_id)

    async def _delete_context_cache(self, course_id: str) -> int:
        require_uuid("course_id", course_id)
        return await self._catalog.do_delete_context_cache(course_id)

    async def _delete_parse_cache(self, course_id: str) -> int:
        require_uuid("course_id", course_id)
        files = await self._catalog.do_list_course_files(course_id)
        removed = 0
        for storage_path in {f.storage_path for f in files}:
            if await self._parse_cache.do_delete(storage_path):
                removed += 1
        return removed

    async def _run_resource(self, resource: str, operation: Callable[[], Awaitable[int]]) -> ResourceResult:
        try:
            deleted = await operation()
        except Exception as exc:
            self.logging.error("Cleanup of %s failed: %s", resource, exc)
            return ResourceResult(resource=resource, success=False, error=str(exc) or exc.__class__.__name__)
        self.logging.debug("Cleanup of %s removed %d entries", resource, deleted)
        return ResourceResult(resource=resource, success=True, deleted_count=deleted)
