"""File lifecycle with content deduplication.

Uploads of byte-identical content reuse the stored bytes, the parse results
and the embeddings of an already indexed original: a reference record is
created and the original's vectors are copied under the reference's own
identity. Deletes decrement the original's reference count and free the
physical bytes and the remaining vectors once the last reference is gone.
"""

from datetime import datetime, timezone

from shared.clients.catalog.CatalogClientInterface import CatalogClientInterface
from shared.clients.catalog.models.FileRecord import FileRecord, FileRecordCreate, VectorStatus, is_valid_transition
from shared.clients.catalog.models.Organization import DeduplicationStats
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperFile import get_file_extension, is_valid_uuid, require_uuid
from shared.helper.HelperHash import fingerprint, hash_prefix, make_point_id
from shared.models.errors import FileNotFoundInCatalogError, NoSourceVectorsError, QuotaExceededError
from shared.models.lifecycle import DeleteResult, UploadMetadata, UploadResult
from shared.storage.BlobStoreLocal import BlobStoreLocal
from services.file_lifecycle.QuotaLedger import QuotaLedger

UPSERT_BATCH_SIZE = 100  # max points per upsert call
SCROLL_PAGE_SIZE = 1000  # points per scroll page when reading a donor


class LifecycleService:
    """Coordinates catalog, vector index, blob store and quota for uploads and deletes."""

    def __init__(
        self,
        helper_config: HelperConfig,
        catalog_client: CatalogClientInterface,
        rag_client: RAGClientInterface,
        blob_store: BlobStoreLocal,
        quota_ledger: QuotaLedger | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._catalog = catalog_client
        self._rag = rag_client
        self._blob_store = blob_store
        self._quota = quota_ledger or QuotaLedger(helper_config=helper_config, catalog_client=catalog_client)
        self._upsert_batch_size = int(helper_config.get_number_val("LIFECYCLE_UPSERT_BATCH_SIZE", default=UPSERT_BATCH_SIZE))
        self._scroll_page_size = int(helper_config.get_number_val("LIFECYCLE_SCROLL_PAGE_SIZE", default=SCROLL_PAGE_SIZE))

    ##########################################
    ################ UPLOAD ##################
    ##########################################

    async def handle_upload(self, data: bytes, metadata: UploadMetadata) -> UploadResult:
        """Store an upload, reusing existing content when an indexed original has the same bytes.

        Args:
            data (bytes): The raw file content.
            metadata (UploadMetadata): Filename, tenant, course and MIME type of the upload.

        Returns:
            UploadResult: Which path was taken and the resulting record.

        Raises:
            ValueError: If the upload is empty.
            InvalidIdentifierError: If organization_id or course_id is not a UUID.
            QuotaExceededError: If the tenant has no room left; nothing is kept.
        """
        if not data:
            raise ValueError(f"Uploaded file '{metadata.filename}' is empty.")
        require_uuid("organization_id", metadata.organization_id)
        require_uuid("course_id", metadata.course_id)

        digest = fingerprint(data)
        self.logging.info(
            "Calculated file hash %s for '%s' (organization=%s, course=%s)",
            hash_prefix(digest), metadata.filename, metadata.organization_id, metadata.course_id,
        )

        result = await self.attempt_deduplication(data, digest, metadata)
        if result is not None:
            return result
        return await self.perform_normal_upload(data, digest, metadata)

    async def attempt_deduplication(self, data: bytes, digest: str, metadata: UploadMetadata) -> UploadResult | None:
        """Try to register the upload as a reference to an indexed original.

        Any failure is logged, the partial reference is compensated and None
        is returned so that the caller continues with a normal upload. A
        rejected quota charge is compensated the same way but propagates.

        Returns:
            UploadResult | None: The result if the content was reused, otherwise None.

        Raises:
            QuotaExceededError: If the tenant has no room for the reference.
        """
        try:
            donor = await self._catalog.do_find_donor(digest)
        except Exception as exc:
            self.logging.error("Error searching for duplicate of %s: %s", hash_prefix(digest), exc)
            return None
        if donor is None:
            return None

        self.logging.info(
            "Content deduplication detected: %s matches file %s ('%s')",
            hash_prefix(digest), donor.id, metadata.filename,
        )

        reference: FileRecord | None = None
        incremented = False
        try:
            reference = await self._catalog.do_insert_file_record(FileRecordCreate(
                organization_id=metadata.organization_id,
                course_id=metadata.course_id,
                filename=metadata.filename,
                file_type=get_file_extension(metadata.filename),
                file_size=len(data),
                storage_path=donor.storage_path,
                content_fingerprint=digest,
                mime_type=metadata.mime_type,
                vector_status=VectorStatus.INDEXED,
                original_file_id=donor.id,
                parsed_content=donor.parsed_content,
                markdown_content=donor.markdown_content,
            ))
            await self._catalog.do_increment_reference_count(donor.id)
            incremented = True
            vectors_duplicated = await self.duplicate_vectors(
                donor_file_id=donor.id,
                new_file_id=reference.id,
                new_course_id=metadata.course_id,
                new_organization_id=metadata.organization_id,
            )
            # every tenant pays for its own reference
            await self._quota.increment(metadata.organization_id, len(data))
        except QuotaExceededError:
            # a full tenant has no room on the normal path either
            self.logging.warning(
                "Storage quota exceeded for '%s', abandoning reference %s", metadata.filename, reference.id,
            )
            await self._abandon_reference(reference, donor.id, incremented)
            raise
        except Exception as exc:
            self.logging.error(
                "Deduplication failed for '%s', falling back to normal upload: %s", metadata.filename, exc,
            )
            if reference is not None:
                await self._abandon_reference(reference, donor.id, incremented)
            return None

        self.logging.info(
            "Deduplication complete: file %s references %s, %d vectors duplicated",
            reference.id, donor.id, vectors_duplicated, color="green",
        )
        return UploadResult(
            file_id=reference.id,
            deduplicated=True,
            original_file_id=donor.id,
            vector_status=VectorStatus.INDEXED,
            vectors_duplicated=vectors_duplicated,
        )

    async def perform_normal_upload(self, data: bytes, digest: str, metadata: UploadMetadata) -> UploadResult:
        """Store new content as an original record waiting for processing.

        Raises:
            QuotaExceededError: If the tenant has no room left; the bytes and the record are removed again.
        """
        self.logging.info(
            "No deduplication: processing new file '%s' (%s)", metadata.filename, hash_prefix(digest),
        )
        storage_path = await self._blob_store.do_save(data, metadata.organization_id, metadata.course_id, metadata.filename)

        try:
            record = await self._catalog.do_insert_file_record(FileRecordCreate(
                organization_id=metadata.organization_id,
                course_id=metadata.course_id,
                filename=metadata.filename,
                file_type=get_file_extension(metadata.filename),
                file_size=len(data),
                storage_path=storage_path,
                content_fingerprint=digest,
                mime_type=metadata.mime_type,
                vector_status=VectorStatus.PENDING,
                original_file_id=None,
                reference_count=1,
            ))
        except Exception:
            await self._discard_blob(storage_path)
            raise

        try:
            await self._quota.increment(metadata.organization_id, len(data))
        except Exception:
            await self._discard_new_original(record)
            raise

        self.logging.info("Created new file record %s for '%s' (vector_status=pending)", record.id, metadata.filename)
        return UploadResult(
            file_id=record.id,
            deduplicated=False,
            vector_status=VectorStatus.PENDING,
        )

    ##########################################
    ########### VECTOR DUPLICATION ###########
    ##########################################

    async def duplicate_vectors(self, donor_file_id: str, new_file_id: str, new_course_id: str, new_organization_id: str) -> int:
        """Copy every vector of a donor to a new owner without recomputing embeddings.

        The copies keep the donor's dense and sparse vectors and content
        metadata verbatim; only the tenancy tags and the point IDs change.
        Batches are upserted one after another and each is awaited until
        durably applied.

        Args:
            donor_file_id (str): Record whose points are read.
            new_file_id (str): Record that will own the copies.
            new_course_id (str): Course tag of the copies.
            new_organization_id (str): Tenant tag of the copies.

        Returns:
            int: Number of points written.

        Raises:
            InvalidIdentifierError: If any of the IDs is not a UUID.
            NoSourceVectorsError: If the donor has no points.
        """
        require_uuid("donor_file_id", donor_file_id)
        require_uuid("new_file_id", new_file_id)
        require_uuid("new_course_id", new_course_id)
        require_uuid("new_organization_id", new_organization_id)
        self.logging.info(
            "Duplicating vectors of file %s for file %s (course=%s, organization=%s)",
            donor_file_id, new_file_id, new_course_id, new_organization_id,
        )
        scroll = await self._rag.do_scroll_all(
            filters=[self._rag.build_match_condition("document_id", donor_file_id)],
            with_payload=True,
            with_vector=True,
            page_size=self._scroll_page_size,
        )
        if not scroll.result:
            raise NoSourceVectorsError(donor_file_id)

        now = datetime.now(timezone.utc).isoformat()
        points = [
            self._copy_point(point, new_file_id, new_course_id, new_organization_id, now)
            for point in scroll.result
        ]

        uploaded = 0
        for batch_start in range(0, len(points), self._upsert_batch_size):
            batch = points[batch_start: batch_start + self._upsert_batch_size]
            self.logging.debug(
                "Uploading vector duplication batch %d (%d points) for course %s",
                batch_start // self._upsert_batch_size + 1, len(batch), new_course_id,
            )
            await self._rag.do_upsert_points(batch, wait=True)
            uploaded += len(batch)

        self.logging.info("Vector duplication complete: %d points for course %s", uploaded, new_course_id)
        return uploaded

    @staticmethod
    def _copy_point(point: dict, new_file_id: str, new_course_id: str, new_organization_id: str, timestamp: str) -> dict:
        payload = dict(point.get("payload") or {})
        # without a chunk_id the source point id is the only stable chunk identity
        chunk_id = payload.get("chunk_id")
        if chunk_id is None:
            chunk_id = point.get("id")
        new_payload = VectorPoint.model_validate({
            **payload,
            "document_id": new_file_id,
            "course_id": new_course_id,
            "organization_id": new_organization_id,
            "indexed_at": timestamp,
            "last_updated": timestamp,
        })
        return {
            "id": make_point_id(new_file_id, chunk_id),
            "vector": point.get("vector"),
            "payload": {**payload, **new_payload.model_dump(mode="json", exclude_unset=True)},
        }

    ##########################################
    ################ DELETE ##################
    ##########################################

    async def handle_delete(self, file_id: str) -> DeleteResult:
        """Remove one file reference and free the content once nothing references it.

        Args:
            file_id (str): Record to delete.

        Returns:
            DeleteResult: Whether the physical bytes were freed and how many references remain.

        Raises:
            FileNotFoundInCatalogError: If the record does not exist, or if the original it
                references is gone (nothing shared is freed then).
        """
        record = await self._get_record(file_id)

        target_id = record.owner_id
        self.logging.info(
            "Deleting file %s ('%s', organization=%s, course=%s, original=%s, target=%s)",
            file_id, record.filename, record.organization_id, record.course_id, record.is_original, target_id,
        )

        # only this course's copies, other courses keep theirs
        course_filters = [
            self._rag.build_match_condition("document_id", file_id),
            self._rag.build_match_condition("course_id", record.course_id),
        ]
        vectors_deleted = await self._rag.do_count(course_filters)
        await self._rag.do_delete_points_by_filter(course_filters, wait=True)

        remaining = await self._catalog.do_decrement_reference_count(target_id)
        self.logging.info("Reference count of %s after decrement: %d", target_id, remaining)

        if record.is_original and remaining > 0:
            # the original holds the authoritative count, hand it to a surviving reference
            promoted = await self._catalog.do_promote_reference(file_id)
            if promoted is None:
                await self._catalog.do_delete_file_record(file_id)
            else:
                self.logging.info("File %s is now the original of its content", promoted.id)
        else:
            await self._catalog.do_delete_file_record(file_id)

        if record.file_size > 0:
            await self._quota.decrement(record.organization_id, record.file_size)

        physical_file_deleted = False
        if remaining == 0:
            self.logging.info("Reference count of %s reached zero, deleting physical file %s", target_id, record.storage_path)
            physical_file_deleted = await self._delete_physical_file(record.storage_path)
            vectors_deleted += await self._sweep_vectors(target_id)
            if target_id != file_id:
                await self._delete_original_record(target_id)

        return DeleteResult(
            physical_file_deleted=physical_file_deleted,
            remaining_references=remaining,
            vectors_deleted=vectors_deleted,
            storage_freed_bytes=record.file_size,
        )

    async def delete_vectors_for_document(self, document_id: str, course_id: str) -> bool:
        """Remove one record's course-scoped vectors before its processing is retried.

        Best-effort: a failure is logged and reported as False, the next upsert
        overwrites the same point IDs anyway.
        """
        try:
            await self._rag.do_delete_points_by_filter([
                self._rag.build_match_condition("document_id", document_id),
                self._rag.build_match_condition("course_id", course_id),
            ], wait=True)
        except Exception as exc:
            self.logging.warning(
                "Failed to delete vectors for document %s in course %s (will be overwritten on upsert): %s",
                document_id, course_id, exc,
            )
            return False
        self.logging.info("Vectors deleted for document %s in course %s", document_id, course_id)
        return True

    ##########################################
    ############ STATUS AND STATS ############
    ##########################################

    async def set_vector_status(self, file_id: str, status: VectorStatus) -> FileRecord:
        """Move a record along pending -> indexing -> indexed, or to failed and back to pending.

        Raises:
            FileNotFoundInCatalogError: If the record does not exist.
            ValueError: If the transition is not allowed.
        """
        record = await self._get_record(file_id)
        if not is_valid_transition(record.vector_status, status):
            raise ValueError(
                f"Invalid vector_status transition for file {file_id}: {record.vector_status.value} -> {status.value}"
            )
        return await self._catalog.do_update_vector_status(file_id, status)

    async def get_deduplication_stats(self, organization_id: str) -> DeduplicationStats:
        return await self._catalog.do_get_deduplication_stats(organization_id)

    async def _get_record(self, file_id: str) -> FileRecord:
        # record ids are UUIDs, anything else cannot exist in the catalog
        if not is_valid_uuid(file_id):
            raise FileNotFoundInCatalogError(file_id, "not a valid file id")
        record = await self._catalog.do_get_file_record(file_id)
        if record is None:
            raise FileNotFoundInCatalogError(file_id)
        return record

    ##########################################
    ######### COMPENSATION / CLEANUP #########
    ##########################################

    async def _abandon_reference(self, reference: FileRecord, donor_id: str, incremented: bool) -> None:
        """Undo a partially created reference.

        The record is removed before the count is decremented: if the
        decrement then fails the count stays one too high (the bytes are kept
        longer) instead of too low (the bytes are freed while still in use).
        If the record itself cannot be removed it is marked failed.
        """
        try:
            await self._rag.do_delete_points_by_filter(
                [self._rag.build_match_condition("document_id", reference.id)], wait=True,
            )
        except Exception as exc:
            self.logging.warning("Failed to remove partial vectors of abandoned reference %s: %s", reference.id, exc)

        try:
            await self._catalog.do_delete_file_record(reference.id)
        except Exception as exc:
            self.logging.error("Failed to remove abandoned reference %s, marking it failed: %s", reference.id, exc)
            try:
                await self._catalog.do_update_vector_status(reference.id, VectorStatus.FAILED)
            except Exception as status_exc:
                self.logging.error("Failed to mark abandoned reference %s as failed: %s", reference.id, status_exc)
            return

        if incremented:
            try:
                await self._catalog.do_decrement_reference_count(donor_id)
            except Exception as exc:
                self.logging.error(
                    "Reference count of %s is one too high after abandoning reference %s: %s",
                    donor_id, reference.id, exc,
                )

    async def _discard_new_original(self, record: FileRecord) -> None:
        try:
            await self._catalog.do_delete_file_record(record.id)
        except Exception as exc:
            self.logging.error("Failed to remove file record %s after rejected upload: %s", record.id, exc)
        await self._discard_blob(record.storage_path)

    async def _discard_blob(self, storage_path: str) -> None:
        try:
            await self._blob_store.do_delete_file(storage_path)
        except Exception as exc:
            self.logging.warning("Failed to remove stored bytes %s after rejected upload: %s", storage_path, exc)

    async def _delete_physical_file(self, storage_path: str) -> bool:
        try:
            deleted = await self._blob_store.do_delete_file(storage_path)
        except Exception as exc:
            self.logging.warning("Failed to delete physical file %s: %s", storage_path, exc)
            return False
        if not deleted:
            self.logging.warning("Physical file %s was already missing", storage_path)
        else:
            self.logging.info("Deleted physical file %s", storage_path)
        return deleted

    async def _sweep_vectors(self, document_id: str) -> int:
        filters = [self._rag.build_match_condition("document_id", document_id)]
        try:
            remaining = await self._rag.do_count(filters)
            if remaining:
                await self._rag.do_delete_points_by_filter(filters, wait=True)
        except Exception as exc:
            self.logging.warning("Failed to delete remaining vectors of %s: %s", document_id, exc)
            return 0
        self.logging.info("Deleted %d remaining vectors of %s", remaining, document_id)
        return remaining

    async def _delete_original_record(self, original_id: str) -> None:
        try:
            await self._catalog.do_delete_file_record(original_id)
        except Exception as exc:
            self.logging.warning("Failed to delete original record %s: %s", original_id, exc)
            return
        self.logging.info("Deleted original record %s", original_id)
