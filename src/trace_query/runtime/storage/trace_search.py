import logging
from enum import Enum

from trace_query.core.data.query_request import QueryRequest
from trace_query.core.data.span_data import Span

from .body_converters import BodyConverters
from .call import Call
from .query_builder import TRACE_ID
from .search_call_factory import SearchCallFactory
from .search_request import SearchRequest
from .store_interface import CallCanceledError
from .trace_grouping import filter_traces, group_by_trace_id, sort_by_trace_ids

logger = logging.getLogger(__name__)


class TraceSearchState(str, Enum):
    BUILT = "built"
    AGGREGATING = "aggregating"
    FETCHING = "fetching"
    GROUPING = "grouping"
    DONE = "done"
    FAILED = "failed"


class TraceSearchCall(Call[list[list[Span]]]):
    """
    Two-phase trace search.

    AGGREGATING: the aggregation request yields matching trace IDs, most recent first.
    FETCHING: all spans of those traces, from every span partition, since a trace can
    outlive the time window used to find it. Skipped when no trace ID matched.
    GROUPING: spans are grouped per trace and ordered like the aggregated trace IDs,
    then 128-bit traces are verified exactly.
    """

    def __init__(
        self,
        search: SearchCallFactory,
        request: QueryRequest,
        aggregation: SearchRequest,
        fetch_indices: list[str],
        strict_trace_id: bool,
    ):
        super().__init__()
        self.search = search
        self.request = request
        self.aggregation = aggregation
        self.fetch_indices = fetch_indices
        self.strict_trace_id = strict_trace_id
        self.search_state = TraceSearchState.BUILT
        self._stage: Call | None = None

    async def _do_execute(self) -> list[list[Span]]:
        try:
            self._transition(TraceSearchState.AGGREGATING)
            trace_ids = await self._issue(self.search.new_call(self.aggregation, BodyConverters.TRACE_IDS))
            if not trace_ids:
                self._transition(TraceSearchState.DONE)
                return []

            self._transition(TraceSearchState.FETCHING)
            fetch = SearchRequest.create(self.fetch_indices).terms(TRACE_ID, trace_ids)
            spans = await self._issue(self.search.new_call(fetch, BodyConverters.SPANS))

            self._transition(TraceSearchState.GROUPING)
            traces = group_by_trace_id(spans, self.strict_trace_id)
            traces = sort_by_trace_ids(traces, trace_ids, self.strict_trace_id)
            traces = filter_traces(self.request, traces)
        except BaseException:
            self.search_state = TraceSearchState.FAILED
            raise
        self._transition(TraceSearchState.DONE)
        return traces

    async def _issue(self, stage: Call):
        if self._canceled:
            raise CallCanceledError(f"Trace search was canceled before {self.search_state.value} started")
        self._stage = stage
        return await stage.execute()

    def _transition(self, state: TraceSearchState) -> None:
        logger.debug(f"Trace search {self.search_state.value} -> {state.value}")
        self.search_state = state

    def _do_cancel(self) -> None:
        if self._stage is not None:
            self._stage.cancel()

    def clone(self) -> "TraceSearchCall":
        return TraceSearchCall(self.search, self.request, self.aggregation, self.fetch_indices, self.strict_trace_id)

    def __repr__(self) -> str:
        return f"TraceSearchCall({self.aggregation!r}, state={self.search_state.value})"
