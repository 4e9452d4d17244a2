from abc import abstractmethod
from typing import Any
import math

from shared.clients.rag.models.Scroll import ScrollResult
from shared.clients.ClientInterface import ClientInterface

from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    def get_vector_size(self) -> int:
        """
        Returns the dense vector dimensionality used when the collection is created.
        """
        return int(self.get_config_val("VECTOR_SIZE", default=768, val_type="number"))

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_scroll(self) -> str:
        """
        Returns the endpoint path for scroll requests.

        Returns:
            str: The endpoint path for scroll requests (e.g. "/collections/my_col/points/scroll")
        """
        pass

    @abstractmethod
    def _get_endpoint_points(self) -> str:
        """
        Returns the endpoint path for points upsert requests.

        Returns:
            str: The endpoint path for points requests (e.g. "/collections/my_col/points")
        """
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self) -> str:
        """
        Returns the endpoint path for deleting points by filter.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points/delete")
        """
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> str:
        """
        Returns the endpoint path for collection existence check requests.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/exists")
        """
        pass

    @abstractmethod
    def _get_endpoint_create_collection(self) -> str:
        """
        Returns the endpoint path for create collection requests.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col")
        """
        pass

    @abstractmethod
    def _get_endpoint_payload_index(self) -> str:
        """
        Returns the endpoint path for creating a payload field index.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/index")
        """
        pass

    @abstractmethod
    def _get_endpoint_count(self) -> str:
        """Returns the endpoint path for counting points matching a filter.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points/count")
        """
        pass

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    @abstractmethod
    def build_match_condition(self, key: str, value: Any) -> dict:
        """
        Builds a single "payload field equals value" condition in the backend's filter syntax.

        Args:
            key (str): Payload field name (e.g. "document_id").
            value (Any): Value the field must match exactly.

        Returns:
            dict: The condition, usable in any filters list of this interface.
        """
        pass

    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        """
        Builds the request payload for creating the collection with a dense and a sparse vector.

        Args:
            vector_size (int): Dimensionality of the dense vector.
            distance (str): Distance metric of the dense vector.

        Returns:
            dict: The payload for the create collection request.
        """
        pass

    @abstractmethod
    def get_scroll_payload(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: str | int | None = None) -> dict:
        """
        Returns the payload for scroll requests to the RAG backend.

        Args:
            filters (list[dict]): Conditions that all must match.
            with_payload (bool | list | dict): Whether to include the payload, or which payload fields to include.
            with_vector (bool | list): Whether to include the vectors, or which named vectors to include.
            limit (int | None): The maximum number of results to return.
            offset (str | int | None): Pagination cursor returned by the previous scroll page.
                                       None means start from the beginning.

        Returns:
            dict: The payload for the scroll request.
        """
        pass

    @abstractmethod
    def extract_next_page_offset(self, raw_response: dict) -> str | int | None:
        """
        Extracts the pagination cursor for the next scroll page from a raw response.

        Args:
            raw_response (dict): The raw JSON response from the scroll endpoint.

        Returns:
            str | int | None: The cursor for the next page, or None if this was the last page.
        """
        pass

    @abstractmethod
    def get_count_payload(self, filters: list[dict], exact: bool = True) -> dict:
        """Builds the backend-specific request payload for a point count.

        Args:
            filters (list[dict]): Conditions that all must match.
            exact (bool): False allows the backend to return an approximate count.

        Returns:
            dict: The payload for the count request.
        """
        pass

    @abstractmethod
    def get_delete_payload(self, filters: list[dict]) -> dict:
        """
        Builds the backend-specific request payload for a filter-based delete.

        Args:
            filters (list[dict]): Conditions that all must match.

        Returns:
            dict: The payload for the delete request.
        """
        pass

    @abstractmethod
    def extract_scroll_content(self, raw_response: dict) -> dict:
        """
        Extracts the relevant content from a raw scroll response.

        Args:
            raw_response (dict): The raw JSON response from the scroll endpoint.

        Returns:
            dict: A dict with keys "result", "status", "time".
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_existence_check(self) -> bool:
        """Check if the collection exists in the rag backend.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_create_collection(self, vector_size: int = 768, distance: str = "Cosine") -> None:
        """Create the collection in the rag backend.

        Args:
            vector_size (int): The size of the dense vectors in the collection.
            distance (str): The distance metric for the dense vectors.
        """
        await self.do_request(
            method="PUT",
            json=self.get_create_collection_payload(vector_size, distance),
            endpoint=self._get_endpoint_create_collection(),
            raise_on_error=True,
        )

    async def do_create_payload_index(self, field_name: str, field_schema: str = "keyword") -> None:
        """Create a payload index so that filters on the field do not scan the collection.

        Args:
            field_name (str): Payload field to index (e.g. "course_id").
            field_schema (str): Index type of the field.
        """
        await self.do_request(
            method="PUT",
            json={"field_name": field_name, "field_schema": field_schema},
            params={"wait": "true"},
            endpoint=self._get_endpoint_payload_index(),
            raise_on_error=True,
        )

    async def do_upsert_points(self, points: list[dict[str, Any]], wait: bool = True) -> None:
        """Upsert points into the rag backend collection.
        Inserts new points or replaces existing ones if a point with the same ID already exists.

        Args:
            points (list[dict[str, Any]]): The list of points to upsert.
            wait (bool): Return only after the backend has durably applied the batch.
        """
        await self.do_request(
            method="PUT",
            json={"points": points},
            params={"wait": "true" if wait else "false"},
            endpoint=self._get_endpoint_points(),
            raise_on_error=True,
        )

    async def do_delete_points_by_filter(self, filters: list[dict], wait: bool = True) -> None:
        """Deletes all points matching the given conditions from the RAG backend.

        Args:
            filters (list[dict]): Conditions that all must match. Always scoped by
                                  document_id and/or course_id.
            wait (bool): Return only after the deletion has been applied.
        """
        await self.do_request(
            method="POST",
            json=self.get_delete_payload(filters),
            params={"wait": "true" if wait else "false"},
            endpoint=self._get_endpoint_delete_points(),
            raise_on_error=True,
        )

    async def do_scroll(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: str | int | None = None) -> ScrollResult:
        """Scroll a single page from the collection.

        To retrieve all matching points across an arbitrary number of pages use
        do_scroll_all() instead.

        Args:
            filters (list[dict]): Conditions that all must match.
            with_payload (bool | list | dict): Whether to include the payload, or which payload fields to include.
            with_vector (bool | list): Whether to include the vectors.
            limit (int | None): The maximum number of results to return per page.
            offset (str | int | None): Pagination cursor from the previous page's next_page_offset.

        Returns:
            ScrollResult: The page, including next_page_offset when further pages are available.
        """
        resp = await self.do_request(
            method="POST",
            json=self.get_scroll_payload(filters, with_payload, with_vector, limit, offset),
            endpoint=self._get_endpoint_scroll(),
            raise_on_error=True,
        )
        raw_response = resp.json()
        scroll_content = self.extract_scroll_content(raw_response=raw_response)
        return ScrollResult(
            result=scroll_content.get("result", []),
            status=scroll_content.get("status", "ok"),
            time=scroll_content.get("time", 0),
            next_page_offset=self.extract_next_page_offset(raw_response),
        )

    async def do_count(self, filters: list[dict], exact: bool = True) -> int:
        """Count the points matching the given conditions.

        Args:
            filters (list[dict]): Conditions that all must match.
            exact (bool): False trades accuracy for speed on large collections.

        Returns:
            int: Number of matching points.
        """
        resp = await self.do_request(
            method="POST",
            json=self.get_count_payload(filters, exact),
            endpoint=self._get_endpoint_count(),
            raise_on_error=True,
        )
        return int(resp.json().get("result", {}).get("count", 0))

    async def do_scroll_all(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, page_size: int = 1000) -> ScrollResult:
        """Scroll through ALL points matching the conditions, paginating automatically.

        Runs a loop driven by next_page_offset until the backend signals there
        are no more pages, so documents with tens of thousands of chunks are
        read completely.

        Args:
            filters (list[dict]): Conditions that all must match.
            with_payload (bool | list | dict): Whether to include the payload, or which fields.
            with_vector (bool | list): Whether to include the vectors of each point.
            page_size (int): Points requested per page.

        Returns:
            ScrollResult: All matching points. next_page_offset is always None.
        """
        all_points: list[dict] = []
        offset: str | int | None = None
        page = 1
        total_points = await self.do_count(filters)
        total_pages = math.ceil(total_points / page_size) if total_points > 0 else 1
        while True:
            page_result = await self.do_scroll(
                filters=filters,
                with_payload=with_payload,
                with_vector=with_vector,
                limit=page_size,
                offset=offset,
            )
            all_points.extend(page_result.result)
            self.logging.debug(
                "Fetched RAG points page %d of %d from %s, total points so far: %d of %d",
                page, total_pages, self.get_engine_name(), len(all_points), total_points,
            )
            offset = page_result.next_page_offset
            if offset is None:
                break
            page += 1
        return ScrollResult(result=all_points, status="ok", time=0)
