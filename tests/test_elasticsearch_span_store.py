import asyncio
import unittest

from trace_query.core.data.query_request import QueryRequest
from trace_query.core.data.span_data import DependencyLink
from trace_query.runtime.storage.call import CallState
from trace_query.runtime.storage.elasticsearch_span_store import ElasticsearchSpanStore
from trace_query.runtime.storage.query_builder import EARLIEST_MS
from trace_query.runtime.storage.search_call_factory import SearchCallFactory
from trace_query.runtime.storage.store_config import SpanStoreConfig
from trace_query.runtime.storage.store_interface import CallCanceledError, MalformedResponseError
from trace_query.runtime.storage.trace_search import TraceSearchCall, TraceSearchState
from tests.fake_search_client import FakeSearchClient, span_doc

# 2023-11-14T22:13:20Z
T = 1_700_000_000_000
HOUR = 3_600_000
DAY = 86_400_000

HIGH = "463ac35c9f6413ad"
LOW = "48485a3953bb6124"


def request(**kwargs) -> QueryRequest:
    return QueryRequest(**{"end_ts": T, "lookback": HOUR, "limit": 10, **kwargs})


class SpanStoreTestCase(unittest.IsolatedAsyncioTestCase):
    strict_trace_id = True

    def setUp(self):
        self.client = FakeSearchClient()
        self.store = self.new_store(self.strict_trace_id)

    def new_store(self, strict_trace_id: bool) -> ElasticsearchSpanStore:
        return ElasticsearchSpanStore(
            SearchCallFactory(self.client, max_hits=1_000),
            SpanStoreConfig(strict_trace_id=strict_trace_id, names_lookback=DAY),
            clock=lambda: T,
        )


class TestGetTraces(SpanStoreTestCase):

    async def test_groups_traces_in_aggregation_order(self):
        for doc in (
            span_doc("b2", "4", T - 50_000, service="frontend", name="get"),
            span_doc("a1", "1", T - 10_000, service="frontend", name="get"),
            span_doc("a1", "2", T - 9_000, service="backend", name="query", parent_id="1"),
            span_doc("a1", "3", T - 8_000, service="db", name="select", parent_id="2"),
            span_doc("c3", "5", T - 5_000, service="other", name="get"),
        ):
            self.client.add_span(doc)

        traces = await self.store.get_traces(request(service_name="frontend")).execute()

        self.assertEqual([[s.id for s in trace] for trace in traces], [["1", "2", "3"], ["4"]])
        self.assertEqual([trace[0].trace_id_hex for trace in traces], ["00000000000000a1", "00000000000000b2"])

        aggregation, fetch = self.client.requests
        self.assertEqual(aggregation["index"], "zipkin-span-2023-11-14")
        self.assertEqual(aggregation["body"]["size"], 0)
        self.assertEqual(aggregation["body"]["aggs"]["traceId"]["terms"]["size"], 10)
        self.assertIn(
            {"term": {"localEndpoint.serviceName": "frontend"}},
            aggregation["body"]["query"]["bool"]["filter"],
        )
        self.assertEqual(fetch["index"], "zipkin-span-*")
        self.assertEqual(fetch["body"]["query"], {"terms": {"traceId": ["a1", "b2"]}})
        self.assertTrue(fetch["params"]["ignore_unavailable"])

    async def test_limit_caps_traces(self):
        for i in range(5):
            self.client.add_span(span_doc(f"{i + 1:x}", str(i), T - 10_000 * (i + 1), service="frontend"))

        traces = await self.store.get_traces(request(limit=2)).execute()
        self.assertEqual([trace[0].id for trace in traces], ["0", "1"])

    async def test_fetch_finds_spans_outside_window(self):
        self.client.add_span(span_doc("a1", "1", T - 1_000, service="frontend"))
        self.client.add_span(span_doc("a1", "2", T - 2 * DAY, service="backend", parent_id="1"))

        traces = await self.store.get_traces(request(service_name="frontend")).execute()
        self.assertEqual(sorted(s.id for s in traces[0]), ["1", "2"])

    async def test_no_trace_ids_skips_fetch(self):
        self.client.add_span(span_doc("a1", "1", T - 1_000, service="backend"))

        call = self.store.get_traces(request(service_name="frontend"))
        self.assertEqual(await call.execute(), [])
        self.assertEqual(len(self.client.requests), 1)
        self.assertEqual(call.search_state, TraceSearchState.DONE)

    async def test_no_indices_skips_backend(self):
        call = self.store.get_traces(request(end_ts=EARLIEST_MS - DAY, lookback=HOUR))
        self.assertNotIsInstance(call, TraceSearchCall)
        self.assertEqual(await call.execute(), [])
        self.assertEqual(self.client.requests, [])

    async def test_window_start_is_floored(self):
        end_ts = EARLIEST_MS + HOUR
        await self.store.get_traces(request(end_ts=end_ts, lookback=10 * 365 * DAY)).execute()

        time_range, = [
            clause["range"]["timestamp_millis"]
            for clause in self.client.requests[0]["body"]["query"]["bool"]["filter"]
            if "range" in clause and "timestamp_millis" in clause["range"]
        ]
        self.assertEqual(time_range, {"gte": EARLIEST_MS, "lte": end_ts})
        self.assertEqual(self.client.requests[0]["index"], "zipkin-span-2016-03-01")

    async def test_annotation_query(self):
        self.client.add_span(span_doc("a1", "1", T - 1_000, tags={"http.method": "GET"}, annotations=["error"]))
        self.client.add_span(span_doc("b2", "2", T - 2_000, tags={"http.method": "POST"}, annotations=["error"]))

        traces = await self.store.get_traces(
            request(annotation_query={"http.method": "GET", "error": ""})
        ).execute()

        self.assertEqual([trace[0].id for trace in traces], ["1"])
        self.assertEqual(
            self.client.requests[0]["body"]["query"]["bool"]["filter"][1:],
            [{"term": {"_q": "http.method=GET"}}, {"term": {"_q": "error"}}],
        )

    async def test_128_bit_traces_are_verified_exactly(self):
        # "_q" claims an error the span doesn't have, as a tokenization artifact would
        wide = span_doc(HIGH + LOW, "1", T - 1_000, service="frontend")
        wide["_q"] = ["error"]
        narrow = span_doc("a1", "2", T - 2_000, service="frontend")
        narrow["_q"] = ["error"]
        self.client.add_span(wide)
        self.client.add_span(narrow)

        traces = await self.store.get_traces(request(annotation_query={"error": ""})).execute()

        # 64-bit trace IDs are not re-verified
        self.assertEqual([trace[0].id for trace in traces], ["2"])

    async def test_lenient_mode_groups_on_low_bits(self):
        store = self.new_store(strict_trace_id=False)
        self.client.add_span(span_doc(HIGH + LOW, "1", T - 1_000, service="frontend"))
        self.client.add_span(span_doc(LOW, "2", T - 2_000, service="frontend", parent_id="1"))

        traces = await store.get_traces(request()).execute()
        self.assertEqual([[s.id for s in trace] for trace in traces], [["1", "2"]])

    async def test_backend_failure_propagates(self):
        error = ConnectionError("connection refused")
        self.client.error = error

        call = self.store.get_traces(request())
        with self.assertRaises(ConnectionError) as ctx:
            await call.execute()
        self.assertIs(ctx.exception, error)
        self.assertEqual(call.state, CallState.FAILED)
        self.assertEqual(call.search_state, TraceSearchState.FAILED)
        self.assertEqual(len(self.client.requests), 1)

    async def test_invalid_trace_id_bucket_skips_fetch(self):
        self.client.add_span(span_doc("not-hex", "1", T - 1_000, service="frontend"))

        call = self.store.get_traces(request())
        with self.assertRaises(MalformedResponseError):
            await call.execute()
        self.assertEqual(len(self.client.requests), 1)
        self.assertEqual(call.state, CallState.FAILED)
        self.assertEqual(call.search_state, TraceSearchState.FAILED)

    async def test_cancel_during_aggregation_skips_fetch(self):
        self.client.add_span(span_doc("a1", "1", T - 1_000, service="frontend"))
        self.client.gate = asyncio.Event()

        call = self.store.get_traces(request())
        task = asyncio.create_task(call.execute())
        await self.client.received.wait()
        call.cancel()
        self.client.gate.set()

        with self.assertRaises(CallCanceledError):
            await task
        self.assertEqual(len(self.client.requests), 1)
        self.assertEqual(call.state, CallState.CANCELED)

    async def test_calls_are_single_shot_but_clonable(self):
        self.client.add_span(span_doc("a1", "1", T - 1_000, service="frontend"))
        call = self.store.get_traces(request())
        first = await call.execute()
        second = await call.clone().execute()
        self.assertEqual(first, second)
        self.assertEqual(len(self.client.requests), 4)


class TestGetTrace(SpanStoreTestCase):

    def setUp(self):
        super().setUp()
        self.client.add_span(span_doc(HIGH + LOW, "1", T - 1_000, service="frontend"))
        self.client.add_span(span_doc(LOW, "2", T - 2_000, service="frontend"))

    async def test_strict_matches_all_128_bits(self):
        spans = await self.store.get_trace(int(HIGH, 16), int(LOW, 16)).execute()

        self.assertEqual([s.id for s in spans], ["1"])
        self.assertEqual(self.client.requests[0]["index"], "zipkin-span-*")
        self.assertEqual(self.client.requests[0]["body"]["query"], {"term": {"traceId": HIGH + LOW}})

    async def test_lenient_uses_low_bits(self):
        store = self.new_store(strict_trace_id=False)
        spans = await store.get_trace(int(HIGH, 16), int(LOW, 16)).execute()

        self.assertEqual(self.client.requests[0]["body"]["query"], {"term": {"traceId": LOW}})
        self.assertEqual([s.id for s in spans], ["2"])


class TestGetNames(SpanStoreTestCase):

    def setUp(self):
        super().setUp()
        self.client.add_span(span_doc("a1", "1", T - 1_000, service="frontend", name="get", remote_service="backend"))
        self.client.add_span(span_doc("a1", "2", T - 2_000, service="backend", name="query", remote_service="db"))
        self.client.add_span(span_doc("a1", "3", T - 3_000, service="backend", name="auth"))
        self.client.add_span(span_doc("b2", "4", T - 3 * DAY, service="legacy", name="old"))

    async def test_service_names_include_remote_endpoints(self):
        names = await self.store.get_service_names().execute()

        self.assertEqual(names, ["backend", "db", "frontend"])
        self.assertEqual(self.client.requests[0]["index"], "zipkin-span-2023-11-13,zipkin-span-2023-11-14")
        self.assertEqual(
            list(self.client.requests[0]["body"]["aggs"]),
            ["localEndpoint.serviceName", "remoteEndpoint.serviceName"],
        )

    async def test_span_names(self):
        self.assertEqual(await self.store.get_span_names("Backend").execute(), ["auth", "query"])
        self.assertIn(
            {"term": {"localEndpoint.serviceName": "backend"}},
            self.client.requests[0]["body"]["query"]["bool"]["filter"],
        )

    async def test_span_names_require_service(self):
        self.assertEqual(await self.store.get_span_names("").execute(), [])
        self.assertEqual(await self.store.get_span_names(None).execute(), [])
        self.assertEqual(self.client.requests, [])


class TestGetDependencies(SpanStoreTestCase):

    async def test_returns_links_of_each_day(self):
        self.client.add_dependency(T, {"parent": "frontend", "child": "backend", "callCount": 4})
        self.client.add_dependency(T - DAY, {"parent": "frontend", "child": "backend", "callCount": 2, "errorCount": 1})
        self.client.add_dependency(T - 5 * DAY, {"parent": "legacy", "child": "db", "callCount": 1})

        links = await self.store.get_dependencies(T, DAY).execute()

        self.assertEqual(links, [
            DependencyLink(parent="frontend", child="backend", call_count=4),
            DependencyLink(parent="frontend", child="backend", call_count=2, error_count=1),
        ])
        self.assertEqual(self.client.requests[0]["index"], "zipkin-dependency-2023-11-13,zipkin-dependency-2023-11-14")
        self.assertNotIn("query", self.client.requests[0]["body"])

    async def test_no_indices_skips_backend(self):
        links = await self.store.get_dependencies(EARLIEST_MS - 2 * DAY, DAY).execute()
        self.assertEqual(links, [])
        self.assertEqual(self.client.requests, [])


if __name__ == '__main__':
    unittest.main()
