from trace_query.core.data.query_request import QueryRequest
from trace_query.core.data.span_data import Annotation, DependencyLink, Endpoint, Span, SpanKind
from trace_query.runtime.storage.call import Call, Callback, CallState
from trace_query.runtime.storage.elasticsearch_span_store import ElasticsearchSpanStore
from trace_query.runtime.storage.store_interface import SpanStore, StoreException

__all__ = [
    "Annotation",
    "Call",
    "Callback",
    "CallState",
    "DependencyLink",
    "ElasticsearchSpanStore",
    "Endpoint",
    "QueryRequest",
    "Span",
    "SpanKind",
    "SpanStore",
    "StoreException",
]
