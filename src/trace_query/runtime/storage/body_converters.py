from collections.abc import Callable, Iterator, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from trace_query.core.data.span_data import DependencyLink, Span
from trace_query.core.utilities.trace_ids import parse_lower_hex

from .store_interface import MalformedResponseError

T = TypeVar('T')
M = TypeVar('M', bound=BaseModel)

BodyConverter = Callable[[Mapping[str, Any]], T]


def _bucket_keys(body: Mapping[str, Any]) -> Iterator[str]:
    """Bucket keys of every top-level aggregation, in response order"""
    if not isinstance(body, Mapping):
        raise MalformedResponseError(f"Expected a JSON object, got {type(body).__name__}")
    aggregations = body.get("aggregations")
    if aggregations is None:
        return
    try:
        for aggregation in aggregations.values():
            for bucket in aggregation["buckets"]:
                yield str(bucket["key"])
    except (AttributeError, KeyError, TypeError) as e:
        raise MalformedResponseError(f"Unexpected aggregation response: {e!r}") from e


def _sources(body: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    if not isinstance(body, Mapping):
        raise MalformedResponseError(f"Expected a JSON object, got {type(body).__name__}")
    try:
        for hit in body["hits"]["hits"]:
            yield hit["_source"]
    except (KeyError, TypeError) as e:
        raise MalformedResponseError(f"Unexpected search hits: {e!r}") from e


def _parse_sources(body: Mapping[str, Any], model_class: type[M]) -> list[M]:
    try:
        return [model_class.model_validate(source) for source in _sources(body)]
    except ValidationError as e:
        raise MalformedResponseError(f"Could not decode {model_class.__name__}: {e}") from e


def trace_ids(body: Mapping[str, Any]) -> list[str]:
    """Deduplicated bucket keys in bucket order. Every key must be a lower-hex trace ID."""
    keys = list(dict.fromkeys(_bucket_keys(body)))
    for key in keys:
        try:
            parse_lower_hex(key)
        except ValueError as e:
            raise MalformedResponseError(f"Aggregation returned an invalid trace ID: {e}") from e
    return keys


def sorted_keys(body: Mapping[str, Any]) -> list[str]:
    """Sorted union of the bucket keys of all aggregations"""
    return sorted(set(_bucket_keys(body)))


def spans(body: Mapping[str, Any]) -> list[Span]:
    return _parse_sources(body, Span)


def dependency_links(body: Mapping[str, Any]) -> list[DependencyLink]:
    return _parse_sources(body, DependencyLink)


class BodyConverters:
    TRACE_IDS = staticmethod(trace_ids)
    SORTED_KEYS = staticmethod(sorted_keys)
    SPANS = staticmethod(spans)
    DEPENDENCY_LINKS = staticmethod(dependency_links)
