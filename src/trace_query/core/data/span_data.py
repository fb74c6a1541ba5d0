from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from trace_query.core.utilities.trace_ids import parse_lower_hex, to_lower_hex


class SpanKind(str, Enum):
    CLIENT = "CLIENT"
    SERVER = "SERVER"
    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"


class Endpoint(BaseModel):
    service_name: str | None = Field(default=None, alias="serviceName")
    ipv4: str | None = None
    ipv6: str | None = None
    port: int | None = None

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    @field_validator('service_name', mode='before')
    @classmethod
    def lowercase_service_name(cls, v):
        if isinstance(v, str):
            return v.lower() or None
        return v


class Annotation(BaseModel):
    timestamp: int
    value: str

    model_config = ConfigDict(frozen=True)


class Span(BaseModel):
    """A span document as stored in the span partitions, with its trace ID split in two halves"""
    trace_id_high: int = 0
    trace_id: int
    id: str
    parent_id: str | None = Field(default=None, alias="parentId")
    name: str | None = None
    kind: SpanKind | None = None
    # epoch microseconds
    timestamp: int | None = None
    duration: int | None = None
    local_endpoint: Endpoint | None = Field(default=None, alias="localEndpoint")
    remote_endpoint: Endpoint | None = Field(default=None, alias="remoteEndpoint")
    annotations: tuple[Annotation, ...] = ()
    tags: dict[str, str] = Field(default_factory=dict)
    debug: bool | None = None
    shared: bool | None = None

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    @model_validator(mode='before')
    @classmethod
    def split_trace_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and 'traceId' in data:
            data = dict(data)
            high, low = parse_lower_hex(data.pop('traceId'))
            data.setdefault('trace_id_high', high)
            data.setdefault('trace_id', low)
        return data

    @field_validator('tags', mode='before')
    @classmethod
    def stringify_tags(cls, v):
        if isinstance(v, dict):
            return {str(key): str(value) for key, value in v.items()}
        return v

    @property
    def trace_id_hex(self) -> str:
        return to_lower_hex(self.trace_id_high, self.trace_id)

    @property
    def local_service_name(self) -> str | None:
        return self.local_endpoint.service_name if self.local_endpoint else None

    @property
    def remote_service_name(self) -> str | None:
        return self.remote_endpoint.service_name if self.remote_endpoint else None


class DependencyLink(BaseModel):
    parent: str
    child: str
    call_count: int = Field(default=0, alias="callCount")
    error_count: int = Field(default=0, alias="errorCount")

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")
