from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class CacheClientInterface(ClientInterface):
    """Key-value cache holding course-scoped entries (retrieval context, locks, progress)."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "cache"
        """
        return "cache"

    @abstractmethod
    def get_course_key_patterns(self, course_id: str) -> list[str]:
        """
        Returns the glob patterns matching every key of a course.

        Args:
            course_id (str): The course whose keys are addressed.

        Returns:
            list[str]: Patterns such as "rag_context:<course_id>:*".
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_delete_by_pattern(self, pattern: str) -> int:
        """
        Deletes every key matching a glob pattern.

        Implementations must walk the keyspace with a cursor and delete in
        batches; a blocking full-keyspace listing is not acceptable.

        Args:
            pattern (str): Glob pattern of the keys to delete.

        Returns:
            int: Number of keys deleted.
        """
        pass

    async def do_delete_course_keys(self, course_id: str) -> int:
        """Deletes every cache key belonging to a course.

        Args:
            course_id (str): The course whose keys are deleted.

        Returns:
            int: Number of keys deleted across all course patterns.
        """
        deleted = 0
        for pattern in self.get_course_key_patterns(course_id):
            deleted += await self.do_delete_by_pattern(pattern)
        return deleted
