import logging
from collections.abc import Mapping
from typing import Any, TypeVar

from elasticsearch import AsyncElasticsearch
from opensearchpy import AsyncOpenSearch

from .body_converters import BodyConverter
from .call import Call
from .search_request import SearchRequest
from .store_interface import CallCanceledError

logger = logging.getLogger(__name__)

T = TypeVar('T')

SearchClient = AsyncElasticsearch | AsyncOpenSearch

# Missing or closed partitions are treated as empty rather than as errors
SEARCH_PARAMS: Mapping[str, Any] = {
    "ignore_unavailable": True,
    "allow_no_indices": True,
    "expand_wildcards": "open",
}


class SearchCall(Call[T]):
    """One search request against the backend, decoded by a body converter"""

    def __init__(self, client: SearchClient, request: SearchRequest, converter: BodyConverter[T], max_hits: int):
        super().__init__()
        self.client = client
        self.request = request
        self.converter = converter
        self.max_hits = max_hits

    async def _do_execute(self) -> T:
        body = self.request.to_body(self.max_hits)
        logger.debug(f"Searching INDEX: {self.request.index} BODY: {body}")
        response = await self.client.search(index=self.request.index, body=body, **SEARCH_PARAMS)
        if self._canceled:
            raise CallCanceledError(f"Search of {self.request.index} was canceled while in flight")
        # elasticsearch returns an ObjectApiResponse, opensearch-py a plain dict
        return self.converter(getattr(response, "body", response))

    def clone(self) -> "SearchCall[T]":
        return SearchCall(self.client, self.request, self.converter, self.max_hits)

    def __repr__(self) -> str:
        return f"SearchCall({self.request!r})"


class SearchCallFactory:

    def __init__(self, client: SearchClient, max_hits: int = 10_000):
        self.client = client
        self.max_hits = max_hits

    def new_call(self, request: SearchRequest, converter: BodyConverter[T]) -> SearchCall[T]:
        return SearchCall(self.client, request, converter, self.max_hits)
