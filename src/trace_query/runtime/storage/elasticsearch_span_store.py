import logging
import time
from collections.abc import Callable

from trace_query.core.data.query_request import QueryRequest
from trace_query.core.data.span_data import DependencyLink, Span
from trace_query.core.utilities.trace_ids import to_lower_hex

from .body_converters import BodyConverters
from .call import Call
from .index_name_formatter import IndexNameFormatter
from .query_builder import (
    DEPENDENCY,
    LOCAL_SERVICE_NAME,
    MAX_BUCKETS,
    REMOTE_SERVICE_NAME,
    SPAN,
    SPAN_NAME,
    TIMESTAMP_MILLIS,
    TRACE_ID,
    begin_millis,
    trace_filters,
    trace_id_aggregation,
)
from .search_call_factory import SearchCallFactory
from .search_request import Aggregation, Filters, SearchRequest
from .store_config import SpanStoreConfig
from .store_interface import SpanStore
from .trace_search import TraceSearchCall

logger = logging.getLogger(__name__)


def current_time_millis() -> int:
    return int(time.time() * 1000)


class ElasticsearchSpanStore(SpanStore):
    """Reads spans and dependency links from daily Elasticsearch or OpenSearch partitions"""

    def __init__(
        self,
        search: SearchCallFactory,
        config: SpanStoreConfig,
        clock: Callable[[], int] = current_time_millis,
    ):
        self._search = search
        self._index_name_formatter = IndexNameFormatter(config.index, config.date_separator)
        self._all_span_indices = [self._index_name_formatter.format_type(SPAN)]
        self._strict_trace_id = config.strict_trace_id
        self._names_lookback = config.names_lookback
        self._clock = clock

    @property
    def strict_trace_id(self) -> bool:
        return self._strict_trace_id

    @property
    def names_lookback(self) -> int:
        return self._names_lookback

    def get_traces(self, request: QueryRequest) -> Call[list[list[Span]]]:
        end = request.end_ts
        begin = begin_millis(end, request.lookback)

        filters = trace_filters(request, begin, end)
        aggregation = trace_id_aggregation(request.limit)

        indices = self._index_name_formatter.format_type_and_range(SPAN, begin, end)
        if not indices:
            logger.debug(f"No span indices between {begin} and {end}")
            return Call.empty_list()

        search_request = SearchRequest.create(indices).filters(filters).add_aggregation(aggregation)
        return TraceSearchCall(
            self._search,
            request,
            search_request,
            self._all_span_indices,
            self._strict_trace_id,
        )

    def get_trace(self, trace_id_high: int, trace_id_low: int) -> Call[list[Span]]:
        trace_id = to_lower_hex(trace_id_high if self._strict_trace_id else 0, trace_id_low)
        request = SearchRequest.create(self._all_span_indices).term(TRACE_ID, trace_id)
        return self._search.new_call(request, BodyConverters.SPANS)

    def get_service_names(self) -> Call[list[str]]:
        end = self._clock()
        begin = end - self._names_lookback

        indices = self._index_name_formatter.format_type_and_range(SPAN, begin, end)
        if not indices:
            return Call.empty_list()

        # A service may only ever appear as the remote side of a span, so both endpoints count.
        # Span names differ: they are only defined on the local endpoint.
        request = (
            SearchRequest.create(indices)
            .filters(Filters().add_range(TIMESTAMP_MILLIS, begin, end))
            .add_aggregation(Aggregation.terms(LOCAL_SERVICE_NAME, MAX_BUCKETS))
            .add_aggregation(Aggregation.terms(REMOTE_SERVICE_NAME, MAX_BUCKETS))
        )
        return self._search.new_call(request, BodyConverters.SORTED_KEYS)

    def get_span_names(self, service_name: str | None) -> Call[list[str]]:
        if not service_name:
            return Call.empty_list()

        end = self._clock()
        begin = end - self._names_lookback

        indices = self._index_name_formatter.format_type_and_range(SPAN, begin, end)
        if not indices:
            return Call.empty_list()

        filters = (
            Filters()
            .add_range(TIMESTAMP_MILLIS, begin, end)
            .add_term(LOCAL_SERVICE_NAME, service_name.lower())
        )
        request = (
            SearchRequest.create(indices)
            .filters(filters)
            .add_aggregation(Aggregation.terms(SPAN_NAME, MAX_BUCKETS))
        )
        return self._search.new_call(request, BodyConverters.SORTED_KEYS)

    def get_dependencies(self, end_ts: int, lookback: int) -> Call[list[DependencyLink]]:
        begin = begin_millis(end_ts, lookback)

        # Links are pre-aggregated per day and carry no timestamp: return every link of each day
        indices = self._index_name_formatter.format_type_and_range(DEPENDENCY, begin, end_ts)
        if not indices:
            logger.debug(f"No dependency indices between {begin} and {end_ts}")
            return Call.empty_list()

        return self._search.new_call(SearchRequest.create(indices), BodyConverters.DEPENDENCY_LINKS)
