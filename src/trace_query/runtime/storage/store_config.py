from pydantic import BaseModel, Field


class SpanStoreConfig(BaseModel):
    """Span store configuration, fixed for the lifetime of a store"""
    index: str = "zipkin"
    date_separator: str = "-"
    # when false, only the low 64 bits of trace IDs are used to look up and group traces
    strict_trace_id: bool = True
    # how far back service and span names are looked up, in milliseconds
    names_lookback: int = Field(default=86_400_000, gt=0)
    # hits returned by fetch searches, at most the backend default index.max_result_window
    max_hits: int = Field(default=10_000, gt=0, le=10_000)
