from trace_query.core.data.query_request import QueryRequest

from .search_request import Aggregation, Filters

SPAN = "span"
DEPENDENCY = "dependency"

TRACE_ID = "traceId"
TIMESTAMP_MILLIS = "timestamp_millis"
LOCAL_SERVICE_NAME = "localEndpoint.serviceName"
REMOTE_SERVICE_NAME = "remoteEndpoint.serviceName"
SPAN_NAME = "name"
DURATION = "duration"
# indexed as "key" and "key=value" for every annotation value and tag of a span
ANNOTATION_QUERY = "_q"

# To not produce unnecessarily long queries, don't look back further than first backend support
EARLIEST_MS = 1456790400000  # March 2016
# default search.max_buckets of the backend
MAX_BUCKETS = 65_536


def begin_millis(end_ts: int, lookback: int) -> int:
    return max(end_ts - lookback, EARLIEST_MS)


def trace_filters(request: QueryRequest, begin: int, end: int) -> Filters:
    filters = Filters().add_range(TIMESTAMP_MILLIS, begin, end)
    if request.service_name is not None:
        filters.add_term(LOCAL_SERVICE_NAME, request.service_name.lower())

    if request.span_name is not None:
        filters.add_term(SPAN_NAME, request.span_name)

    for key, value in request.annotation_query.items():
        filters.add_term(ANNOTATION_QUERY, key if value == "" else f"{key}={value}")

    if request.min_duration is not None:
        filters.add_range(DURATION, request.min_duration, request.max_duration)
    return filters


def trace_id_aggregation(limit: int) -> Aggregation:
    """
    Trace IDs of the matching spans, most recent first.

    Traces should be ordered by their first span, matching or not. That can't be done
    without heavyweight queries, so this orders on the earliest matching span instead.
    Span start times within a trace are usually close enough for users not to notice.
    """
    return (
        Aggregation.terms(TRACE_ID, limit)
        .add_sub_aggregation(Aggregation.min(TIMESTAMP_MILLIS))
        .order_by(TIMESTAMP_MILLIS, "desc")
    )
