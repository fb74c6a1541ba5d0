from collections.abc import Iterable
from typing import Any


class Aggregation:
    """A bucket or metric aggregation, named after the field it aggregates"""

    def __init__(self, kind: str, field: str, size: int | None = None):
        self.kind = kind
        self.field = field
        self.size = size
        self.order: dict[str, str] | None = None
        self.sub_aggregations: list[Aggregation] = []

    @property
    def name(self) -> str:
        return self.field

    @classmethod
    def terms(cls, field: str, size: int) -> "Aggregation":
        return cls("terms", field, size)

    @classmethod
    def min(cls, field: str) -> "Aggregation":
        return cls("min", field)

    def add_sub_aggregation(self, aggregation: "Aggregation") -> "Aggregation":
        self.sub_aggregations.append(aggregation)
        return self

    def order_by(self, sub_aggregation: str, direction: str) -> "Aggregation":
        self.order = {sub_aggregation: direction}
        return self

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"field": self.field}
        if self.size is not None:
            body["size"] = self.size
        if self.order:
            body["order"] = dict(self.order)
        result: dict[str, Any] = {self.kind: body}
        if self.sub_aggregations:
            result["aggs"] = {agg.name: agg.to_dict() for agg in self.sub_aggregations}
        return result


class Filters:
    """Clauses that must all match, evaluated in filter context"""

    def __init__(self):
        self.clauses: list[dict[str, Any]] = []

    def add_range(self, field: str, from_: int, to: int | None = None) -> "Filters":
        bounds: dict[str, int] = {"gte": from_}
        if to is not None:
            bounds["lte"] = to
        self.clauses.append({"range": {field: bounds}})
        return self

    def add_term(self, field: str, value: str) -> "Filters":
        self.clauses.append({"term": {field: value}})
        return self


class SearchRequest:
    """A search over named indices: optional query, optional aggregations"""

    def __init__(self, indices: Iterable[str]):
        self.indices = list(indices)
        self.query: dict[str, Any] | None = None
        self.aggregations: list[Aggregation] = []

    @classmethod
    def create(cls, indices: Iterable[str]) -> "SearchRequest":
        return cls(indices)

    def filters(self, filters: Filters) -> "SearchRequest":
        self.query = {"bool": {"filter": list(filters.clauses)}}
        return self

    def term(self, field: str, value: str) -> "SearchRequest":
        self.query = {"term": {field: value}}
        return self

    def terms(self, field: str, values: Iterable[str]) -> "SearchRequest":
        self.query = {"terms": {field: list(values)}}
        return self

    def add_aggregation(self, aggregation: Aggregation) -> "SearchRequest":
        self.aggregations.append(aggregation)
        return self

    @property
    def index(self) -> str:
        return ",".join(self.indices)

    def to_body(self, max_hits: int) -> dict[str, Any]:
        """Query DSL body. Aggregation requests don't return hits."""
        body: dict[str, Any] = {"size": 0 if self.aggregations else max_hits}
        if self.query is not None:
            body["query"] = self.query
        if self.aggregations:
            body["aggs"] = {agg.name: agg.to_dict() for agg in self.aggregations}
        return body

    def __repr__(self) -> str:
        return f"SearchRequest(index={self.index!r}, query={self.query!r}, aggregations={[a.name for a in self.aggregations]!r})"
