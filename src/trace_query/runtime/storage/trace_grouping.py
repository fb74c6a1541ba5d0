from collections.abc import Iterable

from trace_query.core.data.query_request import QueryRequest
from trace_query.core.data.span_data import Span
from trace_query.core.utilities.trace_ids import parse_lower_hex

from .store_interface import MalformedResponseError


def _trace_key(trace_id_high: int, trace_id_low: int, strict_trace_id: bool) -> tuple[int, int]:
    return (trace_id_high if strict_trace_id else 0, trace_id_low)


def group_by_trace_id(spans: Iterable[Span] | None, strict_trace_id: bool) -> list[list[Span]]:
    """
    Group spans into traces, in the order each trace ID is first seen.
    Spans keep their arrival order within a trace. Unless strict, the high
    64 bits of the trace ID are ignored.
    """
    if not spans:
        return []

    grouped: dict[tuple[int, int], list[Span]] = {}
    for span in spans:
        key = _trace_key(span.trace_id_high, span.trace_id, strict_trace_id)
        grouped.setdefault(key, []).append(span)
    return list(grouped.values())


def sort_by_trace_ids(traces: list[list[Span]], trace_ids: list[str], strict_trace_id: bool) -> list[list[Span]]:
    """
    Order traces as their IDs were listed by the aggregation.
    Stable: traces with an unlisted ID keep their relative order, last.
    """
    rank: dict[tuple[int, int], int] = {}
    for position, trace_id in enumerate(trace_ids):
        try:
            high, low = parse_lower_hex(trace_id)
        except ValueError as e:
            raise MalformedResponseError(f"Aggregation returned an invalid trace ID: {e}") from e
        rank.setdefault(_trace_key(high, low, strict_trace_id), position)

    def position_of(trace: list[Span]) -> int:
        return rank.get(_trace_key(trace[0].trace_id_high, trace[0].trace_id, strict_trace_id), len(rank))

    return sorted(traces, key=position_of)


def filter_traces(request: QueryRequest, traces: list[list[Span]]) -> list[list[Span]]:
    """
    Drop 128-bit traces that don't match the request exactly.

    Term matches on the tokenized trace ID and the "_q" field are imprecise, so
    traces with a high trace ID are re-checked locally. 64-bit traces are kept as is.
    """
    return [trace for trace in traces if trace[0].trace_id_high == 0 or request.test(trace)]
