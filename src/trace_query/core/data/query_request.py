from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from trace_query.core.data.span_data import Span


def parse_annotation_query(value: str | None) -> dict[str, str]:
    """
    Parse the textual annotation query, e.g. "error and http.method=GET".
    A bare key means "annotation or tag key present", key=value means an exact tag match.
    """
    result: dict[str, str] = {}
    if not value:
        return result
    for entry in value.split(" and "):
        entry = entry.strip()
        if not entry:
            continue
        key, sep, tag_value = entry.partition("=")
        result[key.strip()] = tag_value.strip() if sep else ""
    return result


class QueryRequest(BaseModel):
    """Trace search criteria. Timestamps and lookback are epoch millis, durations are micros."""
    service_name: str | None = None
    span_name: str | None = None
    annotation_query: dict[str, str] = Field(default_factory=dict)
    min_duration: int | None = Field(default=None, gt=0)
    max_duration: int | None = None
    end_ts: int = Field(gt=0)
    lookback: int = Field(gt=0)
    limit: int = Field(gt=0)

    model_config = ConfigDict(frozen=True)

    @field_validator('service_name', mode='before')
    @classmethod
    def normalize_service_name(cls, v):
        if isinstance(v, str):
            return v.lower() or None
        return v

    @field_validator('span_name', mode='before')
    @classmethod
    def normalize_span_name(cls, v):
        if isinstance(v, str):
            v = v.lower()
            return None if v in ("", "all") else v
        return v

    @field_validator('annotation_query', mode='before')
    @classmethod
    def coerce_annotation_query(cls, v: Any):
        if v is None or isinstance(v, str):
            return parse_annotation_query(v)
        return v

    @model_validator(mode='after')
    def check_duration_bounds(self) -> "QueryRequest":
        if self.max_duration is not None:
            if self.min_duration is None:
                raise ValueError("min_duration is required when specifying max_duration")
            if self.max_duration < self.min_duration:
                raise ValueError("max_duration should be >= min_duration")
        return self

    def test(self, spans: Sequence[Span]) -> bool:
        """
        Exact match of this request against every span of one trace.

        The trace timestamp is the root span's, or the earliest one when there is no root.
        When a service name is set, only spans of that local service can satisfy the
        span name, annotation and duration criteria.
        """
        timestamp = 0
        for span in spans:
            if not span.timestamp:
                continue
            if span.parent_id is None:
                timestamp = span.timestamp
                break
            if timestamp == 0 or timestamp > span.timestamp:
                timestamp = span.timestamp

        if timestamp == 0 or not (self.end_ts - self.lookback) * 1000 <= timestamp <= self.end_ts * 1000:
            return False

        service_name_to_match = self.service_name
        span_name_to_match = self.span_name
        annotation_query_remaining = dict(self.annotation_query)
        tested_duration = self.min_duration is None and self.max_duration is None

        for span in spans:
            if self.service_name is not None and self.service_name != span.local_service_name:
                continue
            service_name_to_match = None

            if span_name_to_match is not None and span_name_to_match == span.name:
                span_name_to_match = None

            for annotation in span.annotations:
                if annotation_query_remaining.get(annotation.value) == "":
                    del annotation_query_remaining[annotation.value]

            for key, value in span.tags.items():
                expected = annotation_query_remaining.get(key)
                if expected is None:
                    continue
                if expected == "" or expected == value:
                    del annotation_query_remaining[key]

            if not tested_duration:
                duration = span.duration or 0
                if self.max_duration is not None:
                    tested_duration = self.min_duration <= duration <= self.max_duration
                else:
                    tested_duration = duration >= self.min_duration

        return (
            service_name_to_match is None
            and span_name_to_match is None
            and not annotation_query_remaining
            and tested_duration
        )
