from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from trace_query.core.data.query_request import QueryRequest
from trace_query.core.data.span_data import DependencyLink, Span

if TYPE_CHECKING:
    from .call import Call


class StoreException(Exception):
    """Base exception class for Store operations"""
    pass


class MalformedResponseError(StoreException):
    """Raised when a search response does not have the shape a converter expects"""
    pass


class CallCanceledError(StoreException):
    """Raised when a canceled call is executed, or its result arrives after cancel"""
    pass


class IllegalCallStateError(StoreException):
    """Raised when a call is executed more than once"""
    pass


"""
Read-only span store interface. Every operation returns an unexecuted Call.
"""
class SpanStore(ABC):

    @abstractmethod
    def get_traces(self, request: QueryRequest) -> Call[list[list[Span]]]:
        """Traces matching the request, most recent first, at most request.limit of them"""
        pass

    @abstractmethod
    def get_trace(self, trace_id_high: int, trace_id_low: int) -> Call[list[Span]]:
        """Spans of one trace, in storage order"""
        pass

    @abstractmethod
    def get_service_names(self) -> Call[list[str]]:
        pass

    @abstractmethod
    def get_span_names(self, service_name: str | None) -> Call[list[str]]:
        pass

    @abstractmethod
    def get_dependencies(self, end_ts: int, lookback: int) -> Call[list[DependencyLink]]:
        pass
