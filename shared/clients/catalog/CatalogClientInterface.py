from abc import abstractmethod
from datetime import datetime

from shared.clients.ClientInterface import ClientInterface
from shared.clients.catalog.models.FileRecord import FileRecord, FileRecordCreate, VectorStatus
from shared.clients.catalog.models.Organization import DeduplicationStats, OrganizationQuota
from shared.helper.HelperConfig import HelperConfig


class CatalogClientInterface(ClientInterface):
    """Relational catalog of file records and tenant storage accounting.

    Every counter mutation (reference counts, storage usage) must be a single
    atomic statement on the backend; implementations never read-modify-write
    from application code.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "catalog"
        """
        return "catalog"

    ##########################################
    ############### FILE RECORDS #############
    ##########################################

    @abstractmethod
    async def do_find_donor(self, content_fingerprint: str) -> FileRecord | None:
        """Find a fully indexed original record with the given fingerprint.

        Only records with original_file_id NULL and vector_status "indexed"
        qualify. The lookup must be served by an index on the fingerprint.

        Args:
            content_fingerprint (str): SHA-256 hex digest of the uploaded bytes.

        Returns:
            FileRecord | None: The oldest eligible original, or None.
        """
        pass

    @abstractmethod
    async def do_insert_file_record(self, record: FileRecordCreate) -> FileRecord:
        """Insert a file record and return it with its generated id."""
        pass

    @abstractmethod
    async def do_get_file_record(self, file_id: str) -> FileRecord | None:
        """Load a single file record, or None if it does not exist."""
        pass

    @abstractmethod
    async def do_delete_file_record(self, file_id: str) -> None:
        """Delete a single file record. Deleting a missing record is not an error."""
        pass

    @abstractmethod
    async def do_list_course_files(self, course_id: str) -> list[FileRecord]:
        """List all file records of a course."""
        pass

    @abstractmethod
    async def do_update_vector_status(self, file_id: str, status: VectorStatus) -> FileRecord:
        """Set the vector_status of a record.

        Raises:
            FileNotFoundInCatalogError: If the record does not exist.
        """
        pass

    @abstractmethod
    async def do_increment_reference_count(self, file_id: str) -> int:
        """Atomically add one to the reference_count of an original.

        Returns:
            int: The count after the increment.

        Raises:
            FileNotFoundInCatalogError: If the record no longer exists.
        """
        pass

    @abstractmethod
    async def do_decrement_reference_count(self, file_id: str) -> int:
        """Atomically subtract one from the reference_count of an original, never below zero.

        Returns:
            int: The count after the decrement.

        Raises:
            FileNotFoundInCatalogError: If the record no longer exists.
        """
        pass

    @abstractmethod
    async def do_promote_reference(self, original_id: str) -> FileRecord | None:
        """Hand ownership of the physical bytes to the oldest reference of an original.

        In one atomic step: the oldest reference becomes the original (its
        original_file_id is cleared and it takes over the reference_count),
        every other reference is re-pointed to it, and the old original row
        is deleted.

        Args:
            original_id (str): ID of the original being removed.

        Returns:
            FileRecord | None: The promoted record, or None if the original had no
                               references (in which case nothing is changed).
        """
        pass

    ##########################################
    ############## ORGANIZATIONS #############
    ##########################################

    @abstractmethod
    async def do_get_organization_quota(self, organization_id: str) -> OrganizationQuota:
        """Read the storage accounting of a tenant.

        Raises:
            OrganizationNotFoundError: If the organization does not exist.
        """
        pass

    @abstractmethod
    async def do_adjust_organization_storage(self, organization_id: str, delta_bytes: int) -> OrganizationQuota:
        """Atomically add delta_bytes (may be negative) to storage_used_bytes.

        Returns:
            OrganizationQuota: The accounting after the update.

        Raises:
            OrganizationNotFoundError: If the organization does not exist.
        """
        pass

    @abstractmethod
    async def do_get_deduplication_stats(self, organization_id: str) -> DeduplicationStats:
        """Read the deduplication statistics of a tenant.

        Raises:
            OrganizationNotFoundError: If no statistics row exists for the organization.
        """
        pass

    ##########################################
    ############# CONTEXT CACHE ##############
    ##########################################

    @abstractmethod
    async def do_delete_context_cache(self, course_id: str) -> int:
        """Delete the cached retrieval context rows of a course.

        Returns:
            int: Number of rows deleted.
        """
        pass

    @abstractmethod
    async def do_count_context_cache(self, course_id: str) -> int:
        """Count the cached retrieval context rows of a course."""
        pass

    @abstractmethod
    async def do_list_expired_context_courses(self, threshold: datetime) -> list[str]:
        """List the courses holding context rows that expired before threshold.

        A row is expired when it was created before threshold and its
        expires_at is either before threshold or unset.

        Returns:
            list[str]: Distinct course IDs, in the order the backend returned them.
        """
        pass
